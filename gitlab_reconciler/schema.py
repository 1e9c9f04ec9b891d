"""Attribute declarations for reconciled resources."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gitlab_reconciler.converters import Converter

_UNSET: Any = object()


class AttrType(str, Enum):
    """Value types an attribute can hold."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    LIST = "list"
    MAP = "map"

    def accepts(self, value: Any) -> bool:
        """Check whether ``value`` is a valid instance of this type."""
        if value is None:
            return True
        if self is AttrType.STRING:
            return isinstance(value, str)
        if self is AttrType.INT:
            return isinstance(value, int) and not isinstance(value, bool)
        if self is AttrType.BOOL:
            return isinstance(value, bool)
        if self is AttrType.LIST:
            return isinstance(value, list | tuple)
        return isinstance(value, dict)


@dataclass(frozen=True, slots=True)
class Attribute:
    """Declaration of a single resource attribute.

    ``remote_name`` defaults to ``name``. Setting it to ``None`` keeps the
    attribute out of request bodies, which is what scope attributes carried
    in the URL (such as ``project``) need.
    """

    name: str
    type: AttrType = AttrType.STRING
    required: bool = False
    optional: bool = False
    computed: bool = False
    sensitive: bool = False
    default: Any = None
    force_new: bool = False
    remote_name: str | None = _UNSET
    converter: "Converter | None" = None
    omit_empty: bool = False
    write_only: bool = False

    def __post_init__(self) -> None:
        if self.remote_name is _UNSET:
            object.__setattr__(self, "remote_name", self.name)
        if self.required and self.computed:
            raise ValueError(f"Attribute {self.name} cannot be required and computed")

    @property
    def computed_only(self) -> bool:
        """Whether only the server ever sets this attribute."""
        return self.computed and not (self.required or self.optional)

    @property
    def sendable(self) -> bool:
        return self.remote_name is not None and not self.computed_only


@dataclass(slots=True)
class ResourceSchema:
    """Ordered set of attributes describing one resource type."""

    resource_type: str
    attributes: list[Attribute] = field(default_factory=list)
    _by_name: dict[str, Attribute] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_name = {}
        for attribute in self.attributes:
            if attribute.name in self._by_name:
                raise ValueError(
                    f"Duplicate attribute {attribute.name} in {self.resource_type}"
                )
            self._by_name[attribute.name] = attribute

    def __iter__(self) -> Iterator[Attribute]:
        return iter(self.attributes)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __getitem__(self, name: str) -> Attribute:
        return self._by_name[name]

    def get(self, name: str) -> Attribute | None:
        return self._by_name.get(name)

    @property
    def names(self) -> list[str]:
        return [attribute.name for attribute in self.attributes]

    def computed_only(self) -> list[Attribute]:
        return [a for a in self.attributes if a.computed_only]

    def force_new(self) -> list[Attribute]:
        return [a for a in self.attributes if a.force_new]

    def sensitive(self) -> list[Attribute]:
        return [a for a in self.attributes if a.sensitive]

    def defaults(self) -> dict[str, Any]:
        """Declared defaults for attributes that have one."""
        return {a.name: a.default for a in self.attributes if a.default is not None}
