"""GitLab resource reconciler.

An async library that converges declared GitLab resources with the live
state of a GitLab instance.
"""

__version__ = "0.1.0"

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.config import Config
from gitlab_reconciler.orchestrator import ResourceOrchestrator

__all__ = [
    "AttributeBag",
    "Config",
    "GitLabClient",
    "ResourceOrchestrator",
    "__version__",
]
