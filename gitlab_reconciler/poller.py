"""Waiting for operations the remote system completes in the background."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from gitlab_reconciler.config import PollingConfig
from gitlab_reconciler.exceptions import PollTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PollState(str, Enum):
    """States of a completion poll."""

    PENDING = "pending"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PollResult(Generic[T]):
    """Outcome of :meth:`CompletionPoller.wait`."""

    state: PollState
    value: T | None
    elapsed: float
    probes: int


class CompletionPoller:
    """Re-run a probe until a terminal condition, a deadline or cancellation.

    The poller waits ``initial_delay``, then probes every ``interval``. Before
    each probe it checks the deadline; the final sleep is shortened so the
    timeout fires at the deadline rather than a full interval later.
    """

    def __init__(self, config: PollingConfig | None = None) -> None:
        self.config = config or PollingConfig()

    async def wait(
        self,
        resource: str,
        probe: Callable[[], Awaitable[T]],
        is_done: Callable[[T], bool],
        *,
        describe: Callable[[T], str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> PollResult[T]:
        """Poll until ``is_done(probe())`` holds.

        Args:
            resource: Name used in logs and errors, e.g. ``gitlab_group 42``.
            probe: Coroutine function observing the remote state.
            is_done: Terminal predicate over the probe's result.
            describe: Renders a probe result as a short state label.
            cancel_event: Setting this event stops the wait promptly.

        Returns:
            A DONE result with the terminal probe value, or a CANCELLED result.

        Raises:
            PollTimeoutError: If the deadline passes first.
            Exception: Whatever the probe raises, unchanged.
        """
        log = logger.bind(resource=resource)
        start = time.monotonic()
        deadline = start + self.config.timeout
        probes = 0
        last_state: str | None = None

        log.debug(
            "Waiting for remote operation to complete",
            interval=self.config.interval,
            initial_delay=self.config.initial_delay,
            timeout=self.config.timeout,
        )

        delay = min(self.config.initial_delay, self.config.timeout)
        if await self._sleep(delay, cancel_event):
            return self._cancelled(log, start, probes)

        while True:
            if time.monotonic() >= deadline:
                raise self._timed_out(log, resource, start, probes, last_state)

            try:
                result = await probe()
            except Exception as e:
                log.error(
                    "Completion probe failed",
                    state=PollState.ERROR.value,
                    error=str(e),
                    probes=probes + 1,
                )
                raise
            probes += 1

            if is_done(result):
                elapsed = time.monotonic() - start
                log.info("Remote operation completed", elapsed=round(elapsed, 3), probes=probes)
                return PollResult(PollState.DONE, result, elapsed, probes)

            last_state = describe(result) if describe else PollState.PENDING.value
            log.debug("Remote operation still pending", probes=probes, state=last_state)

            remaining = deadline - time.monotonic()
            if remaining <= self.config.interval:
                # No room for another probe before the deadline
                if await self._sleep(max(0.0, remaining), cancel_event):
                    return self._cancelled(log, start, probes)
                raise self._timed_out(log, resource, start, probes, last_state)

            if await self._sleep(self.config.interval, cancel_event):
                return self._cancelled(log, start, probes)

    def _timed_out(
        self,
        log: Any,
        resource: str,
        start: float,
        probes: int,
        last_state: str | None,
    ) -> PollTimeoutError:
        elapsed = time.monotonic() - start
        log.warning(
            "Timed out waiting for remote operation",
            elapsed=round(elapsed, 3),
            probes=probes,
            last_state=last_state,
        )
        return PollTimeoutError(resource, elapsed, last_state)

    async def _sleep(self, seconds: float, cancel_event: asyncio.Event | None) -> bool:
        """Sleep, returning True if cancellation was requested."""
        if cancel_event is None:
            await asyncio.sleep(seconds)
            return False
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _cancelled(self, log: Any, start: float, probes: int) -> PollResult[Any]:
        elapsed = time.monotonic() - start
        log.info("Stopped waiting for remote operation", reason="cancelled", probes=probes)
        return PollResult(PollState.CANCELLED, None, elapsed, probes)
