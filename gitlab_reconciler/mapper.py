"""Bidirectional mapping between attribute bags and GitLab API payloads."""

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.schema import Attribute, ResourceSchema

logger = structlog.get_logger(__name__)

# Attributes resent on every update even when unchanged. Keep this table the
# only place such exceptions are declared, and re-check entries against the
# current upstream API before adding to it.
ALWAYS_SET_FIELDS: dict[str, frozenset[str]] = {
    # Visibility resets to the instance default on update unless resent.
    # https://gitlab.com/gitlab-org/gitlab-ce/issues/38459
    "gitlab_group": frozenset({"visibility_level"}),
    # The edit hook endpoint rejects requests without a url.
    "gitlab_project_hook": frozenset({"url"}),
    # The edit member endpoint rejects requests without an access level.
    "gitlab_group_membership": frozenset({"access_level"}),
}


class StateMapper:
    """Convert attribute bags to request payloads and remote entities to bags."""

    def __init__(self, schema: ResourceSchema, always_set: Iterable[str] = ()) -> None:
        self.schema = schema
        self.always_set = frozenset(always_set)
        unknown = self.always_set - set(schema.names)
        if unknown:
            raise ValueError(
                f"Always-set attributes {sorted(unknown)} are not declared "
                f"by {schema.resource_type}"
            )
        self._logger = logger.bind(resource_type=schema.resource_type)

    @classmethod
    def for_resource(cls, schema: ResourceSchema) -> "StateMapper":
        """Build a mapper using the central always-set table."""
        return cls(schema, ALWAYS_SET_FIELDS.get(schema.resource_type, frozenset()))

    def to_request(self, bag: AttributeBag, only_changed: bool) -> dict[str, Any]:
        """Build a request payload from the bag.

        Args:
            bag: Attribute bag holding the desired values.
            only_changed: False on create (every declared value is sent),
                True on update (changed values plus always-set attributes).

        Returns:
            Request payload keyed by remote names.

        Raises:
            ValidationError: If a value cannot be represented on the wire.
        """
        payload: dict[str, Any] = {}

        for attribute in self.schema:
            if not attribute.sendable:
                continue

            value = bag.get(attribute.name)

            if only_changed:
                if attribute.force_new:
                    continue
                if not (
                    bag.has_changed(attribute.name)
                    or attribute.name in self.always_set
                ):
                    continue
                if value is None and attribute.name in self.always_set:
                    continue
            else:
                if value is None:
                    continue
                if attribute.omit_empty and not value:
                    continue

            payload[attribute.remote_name] = self._to_remote(attribute, value)

        self._logger.debug(
            "Built request payload",
            only_changed=only_changed,
            fields=sorted(payload),
        )
        return payload

    def to_bag(self, entity: Mapping[str, Any], bag: AttributeBag) -> None:
        """Write the remote entity's values into the bag.

        Attributes without a remote name, and write-only attributes the API
        never returns, keep their current bag value. The bag is left
        untouched if any value fails to convert.

        Raises:
            ValidationError: If the remote returned a value the bag cannot hold.
        """
        bag.set_many(self.to_values(entity))

    def to_values(self, entity: Mapping[str, Any]) -> dict[str, Any]:
        """Convert a remote entity into bag values keyed by attribute name."""
        values: dict[str, Any] = {}
        for attribute in self.schema:
            if attribute.remote_name is None or attribute.write_only:
                continue

            raw = entity.get(attribute.remote_name)
            if raw is None:
                values[attribute.name] = attribute.default
            elif attribute.converter is not None:
                values[attribute.name] = attribute.converter.to_bag_value(
                    raw, attribute.name
                )
            else:
                values[attribute.name] = raw
        return values

    def _to_remote(self, attribute: Attribute, value: Any) -> Any:
        if attribute.converter is None:
            return value
        if value is None:
            return attribute.converter.cleared
        return attribute.converter.to_remote_value(value, attribute.name)
