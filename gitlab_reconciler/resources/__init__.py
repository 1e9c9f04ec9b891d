"""Resource definitions."""

from .base import RemoteEndpoint, ResourceDefinition
from .group_memberships import GroupMembershipDefinition
from .groups import GroupDefinition
from .pipeline_schedule_variables import PipelineScheduleVariableDefinition
from .project_hooks import ProjectHookDefinition
from .user_ssh_keys import UserSSHKeyDefinition

__all__ = [
    "GroupDefinition",
    "GroupMembershipDefinition",
    "PipelineScheduleVariableDefinition",
    "ProjectHookDefinition",
    "RemoteEndpoint",
    "ResourceDefinition",
    "UserSSHKeyDefinition",
]
