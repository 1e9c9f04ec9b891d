"""User SSH key resource."""

from contextlib import aclosing
from typing import Any

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.converters import TimestampConverter
from gitlab_reconciler.exceptions import ResourceNotFoundError
from gitlab_reconciler.identity import IdentityFormat
from gitlab_reconciler.pagination import Page, PageRequest, collect
from gitlab_reconciler.resources.base import (
    Entity,
    Key,
    RemoteEndpoint,
    ResourceDefinition,
)
from gitlab_reconciler.schema import Attribute, AttrType, ResourceSchema

TIMESTAMP = TimestampConverter()

USER_SSH_KEY_SCHEMA = ResourceSchema(
    "gitlab_user_sshkey",
    [
        Attribute(
            "user_id", AttrType.INT, required=True, force_new=True, remote_name=None
        ),
        Attribute("title", required=True, force_new=True),
        Attribute("key", required=True, force_new=True),
        Attribute(
            "expires_at", optional=True, force_new=True, converter=TIMESTAMP
        ),
        Attribute("key_id", AttrType.INT, computed=True, remote_name="id"),
        Attribute("created_at", computed=True, converter=TIMESTAMP),
    ],
)


class UserSSHKeyEndpoint(RemoteEndpoint):
    """``/users/:id/keys`` API.

    Keys cannot be fetched individually by user, so reads walk the user's
    paginated key list.
    """

    def _keys(self, user_id: Any) -> str:
        return f"/users/{user_id}/keys"

    async def create(self, scope: Key, request: dict[str, Any]) -> Entity:
        self._logger.debug(
            "Adding SSH key", user_id=scope["user_id"], title=request.get("title")
        )
        return await self.client.post_json(self._keys(scope["user_id"]), request)

    async def get(self, key: Key) -> Entity:
        async def fetch(page_request: PageRequest) -> Page[Entity]:
            return await self.list(key, page_request)

        async with aclosing(collect(fetch, page_size=self.client.page_size)) as keys:
            async for entity in keys:
                if entity.get("id") == key["key_id"]:
                    return entity
        raise ResourceNotFoundError(
            f"SSH key {key['key_id']} of user {key['user_id']} not found"
        )

    async def delete(self, key: Key) -> None:
        await self.client.delete(f"{self._keys(key['user_id'])}/{key['key_id']}")

    async def list(self, scope: Key, page_request: PageRequest) -> Page[Entity]:
        return await self.client.get_page(self._keys(scope["user_id"]), page_request)


class UserSSHKeyDefinition(ResourceDefinition):
    """An SSH key registered for a user. Every attribute forces replacement."""

    schema = USER_SSH_KEY_SCHEMA
    identity = IdentityFormat(("user_id", "key_id"), int_parts=("user_id", "key_id"))

    def endpoint(self, client: GitLabClient) -> RemoteEndpoint:
        return UserSSHKeyEndpoint(client)

    def identity_key(self, bag: AttributeBag, entity: Key) -> dict[str, Any]:
        return {"user_id": bag.get("user_id"), "key_id": entity["id"]}
