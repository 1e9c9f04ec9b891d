"""Composite identifier codec.

Every managed resource is persisted under a single identity string. Resources
keyed by more than one value (a project and a hook ID, a group and a user ID)
join their parts with ``:``.

GitLab project and group paths may contain ``/`` but never ``:``, so the
separator is unambiguous for every part except free-form trailing values such
as CI variable keys. Decoding therefore splits from the left at most
``arity - 1`` times and re-joins the remainder into the last part. A trailing
part may only contain the separator when its format declares it free-form.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from gitlab_reconciler.exceptions import MalformedIdentityError

SEPARATOR = ":"


def encode(parts: Sequence[Any], *, free_form_last: bool = False) -> str:
    """Join identity parts into a single identity string.

    Args:
        parts: Ordered identity parts; values are converted with ``str``.
        free_form_last: Whether the last part may contain the separator.

    Returns:
        The encoded identity.

    Raises:
        MalformedIdentityError: If a part is empty or would be ambiguous.
    """
    values = [str(part) for part in parts]
    if not values:
        raise MalformedIdentityError("", "at least one part is required")

    for index, value in enumerate(values):
        is_last = index == len(values) - 1
        if value == "":
            raise MalformedIdentityError(
                SEPARATOR.join(values), f"part {index + 1} is empty"
            )
        if SEPARATOR in value and not (is_last and free_form_last):
            raise MalformedIdentityError(
                SEPARATOR.join(values),
                f"part {index + 1} ({value!r}) contains {SEPARATOR!r}",
            )

    return SEPARATOR.join(values)


def decode(identity: str, arity: int, *, free_form_last: bool = False) -> list[str]:
    """Split an identity string back into exactly ``arity`` parts.

    Args:
        identity: Identity produced by :func:`encode`.
        arity: Expected number of parts.
        free_form_last: Whether the last part may contain the separator.

    Returns:
        The decoded parts, in encoding order.

    Raises:
        MalformedIdentityError: If the segment count does not match or a
            segment is empty.
    """
    if arity < 1:
        raise ValueError("arity must be at least 1")

    parts = identity.split(SEPARATOR, arity - 1)
    if len(parts) != arity:
        raise MalformedIdentityError(
            identity, f"expected {arity} parts separated by {SEPARATOR!r}"
        )
    if not free_form_last and SEPARATOR in parts[-1]:
        raise MalformedIdentityError(
            identity, f"expected {arity} parts separated by {SEPARATOR!r}"
        )
    for index, part in enumerate(parts):
        if part == "":
            raise MalformedIdentityError(identity, f"part {index + 1} is empty")

    return parts


@dataclass(frozen=True, slots=True)
class IdentityFormat:
    """Named, typed layout of a resource identity.

    Example:
        ``IdentityFormat(("project", "hook_id"), int_parts=("hook_id",))``
        encodes ``{"project": "group/app", "hook_id": 7}`` as
        ``"group/app:7"``.
    """

    names: tuple[str, ...]
    int_parts: tuple[str, ...] = ()
    free_form_last: bool = False

    def __post_init__(self) -> None:
        unknown = set(self.int_parts) - set(self.names)
        if unknown:
            raise ValueError(f"Unknown integer identity parts: {sorted(unknown)}")

    @property
    def arity(self) -> int:
        return len(self.names)

    def encode(self, parts: Iterable[Any]) -> str:
        values = list(parts)
        if len(values) != self.arity:
            raise MalformedIdentityError(
                SEPARATOR.join(str(v) for v in values),
                f"expected {self.arity} parts ({self.describe()})",
            )
        return encode(values, free_form_last=self.free_form_last)

    def encode_key(self, key: Mapping[str, Any]) -> str:
        """Encode a mapping holding every named part."""
        missing = [name for name in self.names if key.get(name) in (None, "")]
        if missing:
            raise MalformedIdentityError(
                "", f"missing identity parts {missing} ({self.describe()})"
            )
        return self.encode(key[name] for name in self.names)

    def decode_key(self, identity: str) -> dict[str, Any]:
        """Decode an identity into a mapping of named, typed parts."""
        parts = decode(identity, self.arity, free_form_last=self.free_form_last)
        key: dict[str, Any] = {}
        for name, part in zip(self.names, parts):
            if name in self.int_parts:
                try:
                    key[name] = int(part)
                except ValueError:
                    raise MalformedIdentityError(
                        identity, f"{name} must be an integer, got {part!r}"
                    ) from None
            else:
                key[name] = part
        return key

    def describe(self) -> str:
        """Human readable layout, e.g. ``project:hook_id``."""
        return SEPARATOR.join(self.names)
