"""Value converters between bag values and GitLab API values."""

from collections.abc import Mapping, Sequence
from datetime import date, datetime, timezone
from typing import Any

from gitlab_reconciler.exceptions import ValidationError

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DATE_FORMAT = "%Y-%m-%d"


class Converter:
    """Translate one attribute between its bag and wire representations.

    ``None`` means absent in both directions and is passed through untouched
    by :meth:`to_remote_value` and :meth:`to_bag_value`. A value cleared on
    update is sent as ``cleared``.
    """

    cleared: Any = None

    def to_remote(self, value: Any, attribute: str) -> Any:
        return value

    def to_bag(self, value: Any, attribute: str) -> Any:
        return value

    def to_remote_value(self, value: Any, attribute: str) -> Any:
        if value is None:
            return None
        return self.to_remote(value, attribute)

    def to_bag_value(self, value: Any, attribute: str) -> Any:
        if value is None:
            return None
        return self.to_bag(value, attribute)


class EnumConverter(Converter):
    """Map between declared names and remote constants.

    With no explicit reverse mapping the remote values are assumed to be
    unique, which holds for visibility and creation level strings.
    """

    def __init__(
        self,
        mapping: Mapping[str, Any],
        reverse: Mapping[Any, str] | None = None,
    ) -> None:
        self.mapping = dict(mapping)
        self.reverse = dict(reverse) if reverse is not None else {
            remote: name for name, remote in self.mapping.items()
        }

    @property
    def allowed(self) -> list[str]:
        return list(self.mapping)

    def to_remote(self, value: Any, attribute: str) -> Any:
        try:
            return self.mapping[value]
        except (KeyError, TypeError):
            raise ValidationError(
                f"{value!r} is an invalid value for argument {attribute}; "
                f"acceptable values are: {', '.join(self.allowed)}",
                attribute=attribute,
                value=value,
            ) from None

    def to_bag(self, value: Any, attribute: str) -> Any:
        try:
            return self.reverse[value]
        except (KeyError, TypeError):
            raise ValidationError(
                f"Remote returned unknown value {value!r} for {attribute}",
                attribute=attribute,
                value=value,
            ) from None


VISIBILITY_LEVELS = EnumConverter(
    {"private": "private", "internal": "internal", "public": "public"}
)

SUBGROUP_CREATION_LEVELS = EnumConverter({"owner": "owner", "maintainer": "maintainer"})

PROJECT_CREATION_LEVELS = EnumConverter(
    {"noone": "noone", "developer": "developer", "maintainer": "maintainer"}
)

VARIABLE_TYPES = EnumConverter({"env_var": "env_var", "file": "file"})

# https://docs.gitlab.com/ee/api/members.html#valid-access-levels
ACCESS_LEVELS = EnumConverter(
    {
        "no one": 0,
        "minimal": 5,
        "guest": 10,
        "reporter": 20,
        "developer": 30,
        "maintainer": 40,
        "owner": 50,
        # Deprecated alias of maintainer
        "master": 40,
    },
    reverse={
        0: "no one",
        5: "minimal",
        10: "guest",
        20: "reporter",
        30: "developer",
        40: "maintainer",
        50: "owner",
    },
)


def parse_timestamp(value: str, attribute: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise ValidationError(
            f"{value!r} is not a valid RFC3339 timestamp for {attribute}",
            attribute=attribute,
            value=value,
        ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class TimestampConverter(Converter):
    """RFC3339 timestamps, normalized to UTC with second precision."""

    def to_remote(self, value: Any, attribute: str) -> Any:
        return parse_timestamp(value, attribute).strftime(TIMESTAMP_FORMAT)

    def to_bag(self, value: Any, attribute: str) -> Any:
        return parse_timestamp(value, attribute).strftime(TIMESTAMP_FORMAT)


class DateConverter(Converter):
    """Calendar dates in ``YYYY-MM-DD`` form."""

    def __init__(self, cleared: Any = None) -> None:
        self.cleared = cleared

    def to_remote(self, value: Any, attribute: str) -> Any:
        try:
            return date.fromisoformat(value).strftime(DATE_FORMAT)
        except (TypeError, ValueError):
            raise ValidationError(
                f"{value!r} is not valid for format YYYY-MM-DD",
                attribute=attribute,
                value=value,
            ) from None

    def to_bag(self, value: Any, attribute: str) -> Any:
        # Some endpoints return full timestamps for date-only fields
        return str(value)[:10]


class NestedListConverter(Converter):
    """Flatten a remote array of objects into a list of maps.

    Each remote object is reduced to ``fields`` (bag key to remote key), with
    optional converters applied per bag key.
    """

    def __init__(
        self,
        fields: Mapping[str, str],
        converters: Mapping[str, Converter] | None = None,
    ) -> None:
        self.fields = dict(fields)
        self.converters = dict(converters or {})

    def to_bag(self, value: Any, attribute: str) -> Any:
        if not isinstance(value, Sequence) or isinstance(value, str):
            raise ValidationError(
                f"Expected a list for {attribute}, got {type(value).__name__}",
                attribute=attribute,
                value=value,
            )
        return [self.flatten(item, attribute) for item in value]

    def flatten(self, item: Mapping[str, Any], attribute: str) -> dict[str, Any]:
        flattened = {}
        for key, remote_key in self.fields.items():
            raw = item.get(remote_key)
            converter = self.converters.get(key)
            if converter is not None:
                raw = converter.to_bag_value(raw, f"{attribute}.{key}")
            flattened[key] = raw
        return flattened

    def to_remote(self, value: Any, attribute: str) -> Any:
        expanded = []
        for item in value:
            remote_item = {}
            for key, remote_key in self.fields.items():
                raw = item.get(key)
                converter = self.converters.get(key)
                if converter is not None:
                    raw = converter.to_remote_value(raw, f"{attribute}.{key}")
                if raw is not None:
                    remote_item[remote_key] = raw
            expanded.append(remote_item)
        return expanded
