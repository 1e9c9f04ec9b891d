"""Group membership resource."""

from typing import Any

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.converters import ACCESS_LEVELS, DateConverter
from gitlab_reconciler.identity import IdentityFormat
from gitlab_reconciler.resources.base import (
    Entity,
    Key,
    RemoteEndpoint,
    ResourceDefinition,
    path_param,
)
from gitlab_reconciler.schema import Attribute, AttrType, ResourceSchema

GROUP_MEMBERSHIP_SCHEMA = ResourceSchema(
    "gitlab_group_membership",
    [
        Attribute("group_id", required=True, force_new=True, remote_name=None),
        Attribute(
            "user_id", AttrType.INT, required=True, force_new=True, remote_name=None
        ),
        Attribute("access_level", required=True, converter=ACCESS_LEVELS),
        # An empty string removes the expiry
        Attribute("expires_at", optional=True, converter=DateConverter(cleared="")),
    ],
)


class GroupMembershipEndpoint(RemoteEndpoint):
    """``/groups/:id/members`` API."""

    def _members(self, group_id: Any) -> str:
        return f"/groups/{path_param(group_id)}/members"

    async def create(self, scope: Key, request: dict[str, Any]) -> Entity:
        self._logger.debug(
            "Adding group member", group_id=scope["group_id"], user_id=scope["user_id"]
        )
        return await self.client.post_json(
            self._members(scope["group_id"]),
            {"user_id": scope["user_id"], **request},
        )

    async def get(self, key: Key) -> Entity:
        return await self.client.get_json(
            f"{self._members(key['group_id'])}/{key['user_id']}"
        )

    async def update(self, key: Key, request: dict[str, Any]) -> Entity:
        return await self.client.put_json(
            f"{self._members(key['group_id'])}/{key['user_id']}", request
        )

    async def delete(self, key: Key) -> None:
        await self.client.delete(f"{self._members(key['group_id'])}/{key['user_id']}")


class GroupMembershipDefinition(ResourceDefinition):
    """A user's membership in a group."""

    schema = GROUP_MEMBERSHIP_SCHEMA
    identity = IdentityFormat(("group_id", "user_id"), int_parts=("user_id",))

    def endpoint(self, client: GitLabClient) -> RemoteEndpoint:
        return GroupMembershipEndpoint(client)

    def identity_key(self, bag: AttributeBag, entity: Key) -> dict[str, Any]:
        return {"group_id": bag.get("group_id"), "user_id": entity["id"]}
