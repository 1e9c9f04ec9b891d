"""Pipeline schedule variable resource."""

from typing import Any

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.converters import VARIABLE_TYPES
from gitlab_reconciler.exceptions import ResourceNotFoundError
from gitlab_reconciler.identity import IdentityFormat
from gitlab_reconciler.resources.base import (
    Entity,
    Key,
    RemoteEndpoint,
    ResourceDefinition,
    path_param,
)
from gitlab_reconciler.schema import Attribute, AttrType, ResourceSchema

PIPELINE_SCHEDULE_VARIABLE_SCHEMA = ResourceSchema(
    "gitlab_pipeline_schedule_variable",
    [
        Attribute("project", required=True, force_new=True, remote_name=None),
        Attribute(
            "pipeline_schedule_id",
            AttrType.INT,
            required=True,
            force_new=True,
            remote_name=None,
        ),
        Attribute("key", required=True, force_new=True),
        Attribute("value", required=True, sensitive=True),
        Attribute(
            "variable_type",
            optional=True,
            default="env_var",
            converter=VARIABLE_TYPES,
        ),
    ],
)


class PipelineScheduleVariableEndpoint(RemoteEndpoint):
    """``/projects/:id/pipeline_schedules/:schedule_id/variables`` API.

    There is no endpoint returning a single schedule variable, so reads fetch
    the schedule and pick the variable out of it.
    """

    def _schedule(self, project: Any, schedule_id: Any) -> str:
        return f"/projects/{path_param(project)}/pipeline_schedules/{schedule_id}"

    def _variable(self, key: Key) -> str:
        schedule = self._schedule(key["project"], key["pipeline_schedule_id"])
        return f"{schedule}/variables/{path_param(key['key'])}"

    async def create(self, scope: Key, request: dict[str, Any]) -> Entity:
        schedule = self._schedule(scope["project"], scope["pipeline_schedule_id"])
        self._logger.debug(
            "Creating pipeline schedule variable",
            project=scope["project"],
            pipeline_schedule_id=scope["pipeline_schedule_id"],
            key=request.get("key"),
        )
        return await self.client.post_json(f"{schedule}/variables", request)

    async def get(self, key: Key) -> Entity:
        schedule = await self.client.get_json(
            self._schedule(key["project"], key["pipeline_schedule_id"])
        )
        for variable in schedule.get("variables") or []:
            if variable.get("key") == key["key"]:
                return variable
        raise ResourceNotFoundError(
            f"Pipeline schedule variable {key['key']!r} no longer exists"
        )

    async def update(self, key: Key, request: dict[str, Any]) -> Entity:
        return await self.client.put_json(self._variable(key), request)

    async def delete(self, key: Key) -> None:
        await self.client.delete(self._variable(key))


class PipelineScheduleVariableDefinition(ResourceDefinition):
    """A variable passed to the pipelines a schedule triggers.

    Variable keys are free-form, so the key is the last identity part.
    """

    schema = PIPELINE_SCHEDULE_VARIABLE_SCHEMA
    identity = IdentityFormat(
        ("project", "pipeline_schedule_id", "key"),
        int_parts=("pipeline_schedule_id",),
        free_form_last=True,
    )

    def endpoint(self, client: GitLabClient) -> RemoteEndpoint:
        return PipelineScheduleVariableEndpoint(client)

    def identity_key(self, bag: AttributeBag, entity: Key) -> dict[str, Any]:
        return {
            "project": bag.get("project"),
            "pipeline_schedule_id": bag.get("pipeline_schedule_id"),
            "key": entity["key"],
        }
