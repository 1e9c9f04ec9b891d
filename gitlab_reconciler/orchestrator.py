"""Create, read, update and delete cycles for one resource type."""

import asyncio
from typing import Any

import structlog

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.classifier import is_not_found
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.config import PollingConfig
from gitlab_reconciler.exceptions import (
    OperationCancelledError,
    RemoteRequestError,
    ResourceNotFoundError,
    ValidationError,
)
from gitlab_reconciler.mapper import StateMapper
from gitlab_reconciler.poller import CompletionPoller, PollState
from gitlab_reconciler.resources.base import Entity, ResourceDefinition

logger = structlog.get_logger(__name__)


class ResourceOrchestrator:
    """Drive reconciliation cycles for one resource type.

    Each entry point works on a single :class:`AttributeBag` and keeps no
    state between calls, so one orchestrator can serve many resources
    concurrently. Create and Update always finish with a Read, leaving the
    bag holding the server's values rather than only the requested ones.

    Only a remote 404 is absorbed (on Read and Delete). Every other error
    propagates unchanged.
    """

    def __init__(
        self,
        definition: ResourceDefinition,
        client: GitLabClient,
        polling: PollingConfig | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            definition: Resource type to reconcile.
            client: Shared GitLab client.
            polling: Settings for waiting on asynchronous deletion.
        """
        self.definition = definition
        self.client = client
        self.endpoint = definition.endpoint(client)
        self.mapper = StateMapper.for_resource(definition.schema)
        self.poller = CompletionPoller(polling)
        self._logger = logger.bind(resource_type=definition.resource_type)

    def new_bag(
        self,
        config: dict[str, Any] | None = None,
        state: dict[str, Any] | None = None,
        identity: str = "",
    ) -> AttributeBag:
        """Build an attribute bag for this resource type."""
        return AttributeBag(self.definition.schema, state=state, config=config, identity=identity)

    async def create(self, bag: AttributeBag) -> None:
        """Create the remote entity described by the bag, then read it back.

        Raises:
            ValidationError: If a required value is missing or invalid. No
                remote call is made.
            RemoteRequestError: If the remote create fails. The bag's identity
                stays empty.
        """
        self._check_bag(bag)
        self._check_required(bag)
        request = self.mapper.to_request(bag, only_changed=False)
        scope = self.definition.scope(bag)

        self._logger.info("Creating resource", scope=scope, fields=sorted(request))
        entity = await self.endpoint.create(scope, request)

        identity = self.definition.identity.encode_key(
            self.definition.identity_key(bag, entity)
        )
        bag.identity = identity
        self._logger.info("Created resource", identity=identity)

        await self.read(bag)

    async def read(self, bag: AttributeBag) -> None:
        """Refresh the bag from the remote entity.

        A missing entity clears the bag's identity instead of failing.

        Raises:
            MalformedIdentityError: If the stored identity cannot be decoded.
            RemoteRequestError: For any failure other than not found. The bag
                is left untouched.
        """
        self._check_bag(bag)
        if not bag.exists:
            self._logger.debug("Skipping read of resource without identity")
            return

        log = self._logger.bind(identity=bag.identity)
        key = self.definition.identity.decode_key(bag.identity)

        log.debug("Reading resource")
        try:
            entity = await self.endpoint.get(key)
        except RemoteRequestError as e:
            if not is_not_found(e):
                raise
            log.warning("Resource not found, removing from state")
            bag.clear_identity()
            return

        if self.definition.is_gone(entity):
            log.warning("Resource is pending deletion, removing from state")
            bag.clear_identity()
            return

        values = self.mapper.to_values(entity)
        values.update({name: v for name, v in key.items() if name in self.definition.schema})
        bag.set_many(values)

        identity = self.definition.identity.encode_key(
            self.definition.identity_key(bag, entity)
        )
        if identity != bag.identity:
            log.info("Resource identity changed", new_identity=identity)
        bag.identity = identity

    async def update(self, bag: AttributeBag) -> None:
        """Send changed attributes to the remote entity, then read it back.

        Nothing is sent, and nothing is read, when no attribute changed and
        the resource type has no always-set attributes with a value.

        Raises:
            ValidationError: If a changed attribute cannot be updated in place
                or cannot be represented on the wire.
            RemoteRequestError: If the remote update fails.
        """
        self._check_bag(bag)
        self._check_required(bag)
        if not bag.exists:
            raise ValidationError(
                f"Cannot update {self.definition.resource_type} without an identity"
            )

        replace = bag.requires_replacement()
        if replace:
            raise ValidationError(
                f"Attributes {replace} of {self.definition.resource_type} "
                "cannot be updated in place"
            )

        log = self._logger.bind(identity=bag.identity)
        request = self.mapper.to_request(bag, only_changed=True)
        if not request:
            log.debug("No changes to apply")
            return

        key = self.definition.identity.decode_key(bag.identity)
        log.info("Updating resource", fields=sorted(request))
        await self.endpoint.update(key, request)

        await self.read(bag)

    async def delete(self, bag: AttributeBag, cancel_event: asyncio.Event | None = None) -> None:
        """Delete the remote entity and clear the bag's identity.

        Deleting an entity that is already gone succeeds. For resource types
        removed in the background, waits until the API stops reporting it.

        Args:
            bag: Attribute bag of the resource to delete.
            cancel_event: Setting this event stops waiting for deletion.

        Raises:
            RemoteRequestError: For any failure other than not found.
            PollTimeoutError: If background deletion did not finish in time.
            OperationCancelledError: If ``cancel_event`` was set while waiting.
        """
        self._check_bag(bag)
        if not bag.exists:
            self._logger.debug("Skipping delete of resource without identity")
            return

        log = self._logger.bind(identity=bag.identity)
        key = self.definition.identity.decode_key(bag.identity)

        log.info("Deleting resource")
        try:
            await self.endpoint.delete(key)
        except RemoteRequestError as e:
            if is_not_found(e):
                log.info("Resource already deleted")
                bag.clear_identity()
                return
            if not self.definition.delete_already_satisfied(e):
                raise
            log.info("Resource deletion already in progress")

        if self.definition.deletion_is_async:
            resource = f"{self.definition.resource_type} {bag.identity}"

            async def probe() -> Entity | None:
                try:
                    return await self.endpoint.get(key)
                except RemoteRequestError as e:
                    if is_not_found(e):
                        return None
                    raise

            result = await self.poller.wait(
                resource,
                probe,
                lambda entity: entity is None or self.definition.is_gone(entity),
                describe=self.definition.describe,
                cancel_event=cancel_event,
            )
            if result.state is PollState.CANCELLED:
                raise OperationCancelledError(resource)

        bag.clear_identity()
        log.info("Deleted resource")

    async def import_resource(self, bag: AttributeBag, identity: str) -> None:
        """Adopt an existing remote entity under ``identity``.

        Attributes carried in the identity (such as the parent project) are
        restored into the bag before the remaining values are read.

        Raises:
            MalformedIdentityError: If ``identity`` does not match the layout.
            ResourceNotFoundError: If no such entity exists.
        """
        self._check_bag(bag)
        key = self.definition.identity.decode_key(identity)
        self._logger.info("Importing resource", identity=identity)

        bag.identity = identity
        self.definition.key_to_bag(key, bag)
        await self.read(bag)

        if not bag.exists:
            raise ResourceNotFoundError(
                f"Cannot import non-existent {self.definition.resource_type} "
                f"{identity!r} (expected {self.definition.identity.describe()})"
            )

    def requires_replace(self, bag: AttributeBag) -> list[str]:
        """Changed attributes that force the resource to be recreated."""
        self._check_bag(bag)
        return bag.requires_replacement()

    def _check_bag(self, bag: AttributeBag) -> None:
        if bag.schema.resource_type != self.definition.resource_type:
            raise ValidationError(
                f"Bag for {bag.schema.resource_type} passed to "
                f"{self.definition.resource_type} orchestrator"
            )

    def _check_required(self, bag: AttributeBag) -> None:
        missing = [
            attribute.name
            for attribute in self.definition.schema
            if attribute.required and bag.get(attribute.name) is None
        ]
        if missing:
            raise ValidationError(
                f"Missing required attributes for {self.definition.resource_type}: "
                f"{', '.join(missing)}",
                attribute=missing[0],
            )
