"""Project webhook resource."""

from typing import Any

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.identity import IdentityFormat
from gitlab_reconciler.resources.base import (
    Entity,
    Key,
    RemoteEndpoint,
    ResourceDefinition,
    path_param,
)
from gitlab_reconciler.schema import Attribute, AttrType, ResourceSchema

EVENT_FLAGS = (
    "issues_events",
    "confidential_issues_events",
    "merge_requests_events",
    "tag_push_events",
    "note_events",
    "confidential_note_events",
    "job_events",
    "pipeline_events",
    "wiki_page_events",
    "deployment_events",
    "releases_events",
)

PROJECT_HOOK_SCHEMA = ResourceSchema(
    "gitlab_project_hook",
    [
        Attribute("project", required=True, force_new=True, remote_name=None),
        Attribute("hook_id", AttrType.INT, computed=True, remote_name="id"),
        Attribute("url", required=True),
        # The API never returns the secret token
        Attribute("token", optional=True, sensitive=True, write_only=True, omit_empty=True),
        Attribute("push_events", AttrType.BOOL, optional=True, default=True),
        Attribute("push_events_branch_filter", optional=True),
        *(
            Attribute(flag, AttrType.BOOL, optional=True, default=False)
            for flag in EVENT_FLAGS
        ),
        Attribute("enable_ssl_verification", AttrType.BOOL, optional=True, default=True),
    ],
)


class ProjectHookEndpoint(RemoteEndpoint):
    """``/projects/:id/hooks`` API."""

    def _hooks(self, project: Any) -> str:
        return f"/projects/{path_param(project)}/hooks"

    async def create(self, scope: Key, request: dict[str, Any]) -> Entity:
        self._logger.debug("Creating project hook", project=scope["project"])
        return await self.client.post_json(self._hooks(scope["project"]), request)

    async def get(self, key: Key) -> Entity:
        return await self.client.get_json(
            f"{self._hooks(key['project'])}/{key['hook_id']}"
        )

    async def update(self, key: Key, request: dict[str, Any]) -> Entity:
        return await self.client.put_json(
            f"{self._hooks(key['project'])}/{key['hook_id']}", request
        )

    async def delete(self, key: Key) -> None:
        await self.client.delete(f"{self._hooks(key['project'])}/{key['hook_id']}")


class ProjectHookDefinition(ResourceDefinition):
    """A webhook attached to a project."""

    schema = PROJECT_HOOK_SCHEMA
    identity = IdentityFormat(("project", "hook_id"), int_parts=("hook_id",))

    def endpoint(self, client: GitLabClient) -> RemoteEndpoint:
        return ProjectHookEndpoint(client)

    def identity_key(self, bag: AttributeBag, entity: Key) -> dict[str, Any]:
        return {"project": bag.get("project"), "hook_id": entity["id"]}
