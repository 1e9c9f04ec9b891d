"""Group resource."""

from typing import Any

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.converters import (
    PROJECT_CREATION_LEVELS,
    SUBGROUP_CREATION_LEVELS,
    VISIBILITY_LEVELS,
)
from gitlab_reconciler.exceptions import RemoteRequestError
from gitlab_reconciler.identity import IdentityFormat
from gitlab_reconciler.resources.base import (
    Entity,
    Key,
    RemoteEndpoint,
    ResourceDefinition,
)
from gitlab_reconciler.schema import Attribute, AttrType, ResourceSchema

ALREADY_MARKED_FOR_DELETION = "Group has been already marked for deletion"

GROUP_SCHEMA = ResourceSchema(
    "gitlab_group",
    [
        Attribute("name", required=True),
        Attribute("path", required=True),
        Attribute("full_path", computed=True),
        Attribute("full_name", computed=True),
        Attribute("web_url", computed=True),
        Attribute("description", optional=True),
        Attribute("lfs_enabled", AttrType.BOOL, optional=True, default=True),
        Attribute(
            "request_access_enabled", AttrType.BOOL, optional=True, default=False
        ),
        Attribute(
            "visibility_level",
            optional=True,
            computed=True,
            remote_name="visibility",
            converter=VISIBILITY_LEVELS,
        ),
        Attribute(
            "subgroup_creation_level",
            optional=True,
            computed=True,
            converter=SUBGROUP_CREATION_LEVELS,
        ),
        Attribute(
            "project_creation_level",
            optional=True,
            computed=True,
            converter=PROJECT_CREATION_LEVELS,
        ),
        Attribute(
            "parent_id",
            AttrType.INT,
            optional=True,
            default=0,
            force_new=True,
            omit_empty=True,
        ),
        Attribute("runners_token", computed=True, sensitive=True),
    ],
)


class GroupEndpoint(RemoteEndpoint):
    """``/groups`` API."""

    async def create(self, scope: Key, request: dict[str, Any]) -> Entity:
        self._logger.debug("Creating group", name=request.get("name"))
        return await self.client.post_json("/groups", request)

    async def get(self, key: Key) -> Entity:
        return await self.client.get_json(f"/groups/{key['group_id']}")

    async def update(self, key: Key, request: dict[str, Any]) -> Entity:
        return await self.client.put_json(f"/groups/{key['group_id']}", request)

    async def delete(self, key: Key) -> None:
        await self.client.delete(f"/groups/{key['group_id']}")


class GroupDefinition(ResourceDefinition):
    """A GitLab group.

    Deleting a group on instances with delayed deletion only marks it; the
    group keeps answering reads with ``marked_for_deletion_on`` set, which is
    treated as gone.
    """

    schema = GROUP_SCHEMA
    identity = IdentityFormat(("group_id",), int_parts=("group_id",))
    deletion_is_async = True

    def endpoint(self, client: GitLabClient) -> RemoteEndpoint:
        return GroupEndpoint(client)

    def identity_key(self, bag: AttributeBag, entity: Key) -> dict[str, Any]:
        return {"group_id": entity["id"]}

    def is_gone(self, entity: Key) -> bool:
        return entity.get("marked_for_deletion_on") is not None

    def delete_already_satisfied(self, error: RemoteRequestError) -> bool:
        return ALREADY_MARKED_FOR_DELETION in (error.response_text or "")
