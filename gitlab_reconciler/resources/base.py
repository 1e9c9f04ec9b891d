"""Abstract base classes for resource definitions and their remote endpoints."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, ClassVar
from urllib.parse import quote

import structlog

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.exceptions import RemoteRequestError
from gitlab_reconciler.identity import IdentityFormat
from gitlab_reconciler.pagination import Page, PageRequest
from gitlab_reconciler.schema import ResourceSchema

logger = structlog.get_logger(__name__)

Entity = dict[str, Any]
Key = Mapping[str, Any]


def path_param(value: Any) -> str:
    """Encode a project or group reference for use in a URL path.

    GitLab accepts numeric IDs or URL-encoded full paths (``group%2Fapp``).
    """
    return quote(str(value), safe="")


class RemoteEndpoint(ABC):
    """Typed remote operations for one entity kind.

    ``scope`` holds the parent references needed to create an entity (for
    example the project a hook belongs to). ``key`` is a decoded identity.
    Every failure surfaces as a :class:`RemoteRequestError` carrying the
    HTTP status.
    """

    def __init__(self, client: GitLabClient) -> None:
        self.client = client
        self._logger = logger.bind(endpoint=self.__class__.__name__)

    @abstractmethod
    async def create(self, scope: Key, request: dict[str, Any]) -> Entity:
        """Create the entity and return it as the API reports it."""
        pass

    @abstractmethod
    async def get(self, key: Key) -> Entity:
        """Fetch a single entity."""
        pass

    async def update(self, key: Key, request: dict[str, Any]) -> Entity:
        """Update the entity in place."""
        raise NotImplementedError(
            f"{self.__class__.__name__} does not support in-place updates"
        )

    @abstractmethod
    async def delete(self, key: Key) -> None:
        """Delete the entity."""
        pass

    async def list(self, scope: Key, page_request: PageRequest) -> Page[Entity]:
        """Fetch one page of the parent collection."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support listing")


class ResourceDefinition(ABC):
    """Declaration of one managed resource type.

    A definition ties together the attribute schema, the identity layout and
    the remote endpoint, plus the few resource-specific predicates the
    orchestrator consults. It holds no per-resource state.
    """

    schema: ClassVar[ResourceSchema]
    identity: ClassVar[IdentityFormat]

    # Whether deletion finishes in the background and must be awaited.
    deletion_is_async: ClassVar[bool] = False

    @property
    def resource_type(self) -> str:
        return self.schema.resource_type

    @abstractmethod
    def endpoint(self, client: GitLabClient) -> RemoteEndpoint:
        """Build the endpoint serving this resource type."""
        pass

    @abstractmethod
    def identity_key(self, bag: AttributeBag, entity: Key) -> dict[str, Any]:
        """Identity parts for an entity returned by the API.

        Parent references usually come from the bag, server-assigned IDs
        from the entity.
        """
        pass

    def scope(self, bag: AttributeBag) -> dict[str, Any]:
        """Identity parts already known before the entity exists."""
        scope = {}
        for name in self.identity.names:
            if name in self.schema and bag.get(name) is not None:
                scope[name] = bag.get(name)
        return scope

    def key_to_bag(self, key: Key, bag: AttributeBag) -> None:
        """Restore attributes carried in the identity, e.g. after an import."""
        bag.set_many({name: value for name, value in key.items() if name in self.schema})

    def is_gone(self, entity: Key) -> bool:
        """Whether an entity the API still returns should count as deleted."""
        return False

    def delete_already_satisfied(self, error: RemoteRequestError) -> bool:
        """Whether a failed delete means the entity is already being removed."""
        return False

    def describe(self, entity: Key | None) -> str:
        """Short state label used while waiting for deletion."""
        if entity is None:
            return "deleted"
        return "deleted" if self.is_gone(entity) else "deleting"
