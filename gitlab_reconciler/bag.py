"""Attribute bag holding one resource's desired and observed values."""

import copy
from collections.abc import Mapping
from typing import Any

from gitlab_reconciler.exceptions import ValidationError
from gitlab_reconciler.schema import AttrType, ResourceSchema

SENSITIVE_PLACEHOLDER = "(sensitive value)"


class AttributeBag:
    """Typed key-value view of one resource for one reconciliation cycle.

    The bag starts from the last persisted ``state`` with the desired
    ``config`` laid over it. Declared defaults fill attributes that are absent
    from both. ``has_changed`` compares the current value against the
    persisted one, which is what Update uses to build its Diff Set.

    Values written with :meth:`set` (by the state mapper during Read) replace
    the current values; the persisted snapshot is not touched.
    """

    def __init__(
        self,
        schema: ResourceSchema,
        state: Mapping[str, Any] | None = None,
        config: Mapping[str, Any] | None = None,
        identity: str = "",
    ) -> None:
        """Initialize the bag.

        Args:
            schema: Attribute declarations for the resource type.
            state: Last persisted values, if the resource already exists.
            config: Desired values declared by the user.
            identity: Persisted identity, empty when not yet created.
        """
        self.schema = schema
        self._identity = identity or ""

        state = dict(state or {})
        config = dict(config or {})
        for name in (*state, *config):
            self._check_known(name)

        self._old: dict[str, Any] = {}
        self._values: dict[str, Any] = {}
        for attribute in schema:
            self._old[attribute.name] = copy.deepcopy(state.get(attribute.name))

            if attribute.name in config:
                new = config[attribute.name]
            elif attribute.name in state:
                new = state[attribute.name]
            else:
                new = attribute.default
            self._check_type(attribute.name, new)
            self._values[attribute.name] = copy.deepcopy(new)

    def __repr__(self) -> str:
        return (
            f"AttributeBag(resource_type={self.schema.resource_type!r}, "
            f"identity={self._identity!r})"
        )

    # Identity

    @property
    def identity(self) -> str:
        return self._identity

    @identity.setter
    def identity(self, value: str) -> None:
        self._identity = value or ""

    def clear_identity(self) -> None:
        """Mark the resource as absent."""
        self._identity = ""

    @property
    def exists(self) -> bool:
        return self._identity != ""

    # Generic access

    def get(self, name: str) -> Any:
        self._check_known(name)
        return self._values[name]

    def set(self, name: str, value: Any) -> None:
        self._check_known(name)
        self._check_type(name, value)
        self._values[name] = copy.deepcopy(value)

    def set_many(self, values: Mapping[str, Any]) -> None:
        """Set several values at once; nothing is written if any is invalid."""
        for name, value in values.items():
            self._check_known(name)
            self._check_type(name, value)
        for name, value in values.items():
            self._values[name] = copy.deepcopy(value)

    def has_changed(self, name: str) -> bool:
        old, new = self.get_change(name)
        return old != new

    def get_change(self, name: str) -> tuple[Any, Any]:
        self._check_known(name)
        return self._old[name], self._values[name]

    def changed(self) -> list[str]:
        """Names of attributes whose value differs from the persisted one."""
        return [name for name in self.schema.names if self.has_changed(name)]

    def requires_replacement(self) -> list[str]:
        """Changed attributes that cannot be updated in place."""
        if not self.exists:
            return []
        return [a.name for a in self.schema.force_new() if self.has_changed(a.name)]

    # Typed access

    def get_str(self, name: str) -> str | None:
        return self._typed(name, AttrType.STRING)

    def get_int(self, name: str) -> int | None:
        return self._typed(name, AttrType.INT)

    def get_bool(self, name: str) -> bool | None:
        return self._typed(name, AttrType.BOOL)

    def get_list(self, name: str) -> list[Any] | None:
        value = self._typed(name, AttrType.LIST)
        return list(value) if value is not None else None

    def get_map(self, name: str) -> dict[str, Any] | None:
        return self._typed(name, AttrType.MAP)

    # Persistence helpers

    def to_state(self) -> dict[str, Any]:
        """Values to persist after a successful cycle."""
        return copy.deepcopy(self._values)

    def redacted(self) -> dict[str, Any]:
        """Current values with sensitive attributes masked, safe for logs."""
        values = self.to_state()
        for attribute in self.schema.sensitive():
            if values.get(attribute.name) is not None:
                values[attribute.name] = SENSITIVE_PLACEHOLDER
        return values

    # Internals

    def _check_known(self, name: str) -> None:
        if name not in self.schema:
            raise ValidationError(
                f"Unknown attribute {name!r} for {self.schema.resource_type}",
                attribute=name,
            )

    def _check_type(self, name: str, value: Any) -> None:
        attribute = self.schema[name]
        if not attribute.type.accepts(value):
            raise ValidationError(
                f"Attribute {name} expects {attribute.type.value}, "
                f"got {type(value).__name__}",
                attribute=name,
                value=value,
            )

    def _typed(self, name: str, expected: AttrType) -> Any:
        attribute = self.schema.get(name)
        if attribute is None:
            self._check_known(name)
        if attribute.type is not expected:
            raise ValidationError(
                f"Attribute {name} is declared as {attribute.type.value}, "
                f"not {expected.value}",
                attribute=name,
            )
        return self._values[name]
