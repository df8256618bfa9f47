"""Polling state machine for generation jobs.

``transition`` is a pure ``(state, event) -> state`` function. ``JobPoller``
feeds it events produced by status checks and drives the timing through an
injected clock and sleep coroutine, so tests can run a ten minute budget
without waiting for it.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol, Union

from tunegen.config import Config
from tunegen.errors import StatusUnavailable, TransportError
from tunegen.models import (
    Failed,
    GenerationJob,
    GenerationParams,
    JobState,
    Pending,
    Submitted,
    TimedOut,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusReceived:
    state: JobState


@dataclass(frozen=True)
class StatusMissing:
    reason: str


@dataclass(frozen=True)
class TransportLost:
    reason: str


@dataclass(frozen=True)
class Expired:
    elapsed: float


PollEvent = Union[StatusReceived, StatusMissing, TransportLost, Expired]


def transition(state: JobState, event: PollEvent) -> JobState:
    if state.terminal:
        return state
    if isinstance(event, StatusReceived):
        return event.state
    if isinstance(event, StatusMissing):
        # the check happened, so the job is no longer merely submitted
        return Pending() if isinstance(state, Submitted) else state
    if isinstance(event, TransportLost):
        return Failed(f"Status check failed: {event.reason}")
    if isinstance(event, Expired):
        return TimedOut(event.elapsed)
    raise TypeError(f"Unknown poll event: {event!r}")


class StatusSource(Protocol):
    async def query_status(
        self, task_id: str, params: Optional[GenerationParams] = None
    ) -> GenerationJob: ...


UpdateCallback = Callable[[GenerationJob], Union[None, Awaitable[None]]]


class JobPoller:
    """Polls one job until it succeeds, fails or runs out of time."""

    def __init__(
        self,
        client: StatusSource,
        task_id: str,
        params: Optional[GenerationParams] = None,
        *,
        grace: float = 5,
        interval: float = 10,
        timeout: float = 600,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_update: Optional[UpdateCallback] = None,
    ):
        self.client = client
        self.grace = grace
        self.interval = interval
        self.timeout = timeout
        self.job = GenerationJob(task_id=task_id, params=params)
        self.history: List[JobState] = [self.job.state]
        self.checks = 0
        self.unavailable_checks = 0
        self.cancelled = False

        self._clock = clock
        self._sleep = sleep
        self._on_update = on_update
        self._started = clock()
        self._task: Optional["asyncio.Task[GenerationJob]"] = None

    @classmethod
    def from_config(
        cls,
        client: StatusSource,
        task_id: str,
        config: Config,
        params: Optional[GenerationParams] = None,
        **kwargs,
    ) -> "JobPoller":
        return cls(
            client,
            task_id,
            params,
            grace=config.poll_grace_seconds,
            interval=config.poll_interval_seconds,
            timeout=config.poll_timeout_seconds,
            **kwargs,
        )

    @property
    def task_id(self) -> str:
        return self.job.task_id

    @property
    def state(self) -> JobState:
        return self.job.state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def elapsed(self) -> float:
        return self._clock() - self._started

    def start(self) -> Optional["asyncio.Task[GenerationJob]"]:
        """Schedule ``run`` once. Returns None when already cancelled."""
        if self._task is None and not self.cancelled:
            self._task = asyncio.ensure_future(self.run())
        return self._task

    def cancel(self) -> None:
        """Stop polling. A check already in flight is abandoned."""
        if self.job.is_terminal or self.cancelled:
            return
        self.cancelled = True
        if self._task is not None:
            self._task.cancel()
        logger.info("Stopped polling task %s in state %s", self.task_id, self.state.name)

    async def wait(self) -> GenerationJob:
        task = self.start()
        if task is None:
            return self.job
        await asyncio.wait({task})
        if not task.cancelled():
            # surfaces errors raised inside run()
            task.result()
        return self.job

    async def run(self) -> GenerationJob:
        if self.cancelled:
            return self.job

        await self._sleep(self.grace)

        while not self.job.is_terminal and not self.cancelled:
            elapsed = self.elapsed()
            if elapsed >= self.timeout:
                await self._apply(Expired(elapsed))
                break

            await self._apply(await self._check())
            if self.job.is_terminal or self.cancelled:
                break

            remaining = self.timeout - self.elapsed()
            if remaining <= self.interval:
                # final sleep: the budget is spent when it returns
                await self._sleep(max(remaining, 0))
                if not self.cancelled:
                    await self._apply(Expired(max(self.elapsed(), self.timeout)))
                break

            await self._sleep(self.interval)

        logger.info(
            "Task %s finished as %s after %d checks",
            self.task_id,
            "CANCELLED" if self.cancelled else self.state.name,
            self.checks,
        )
        return self.job

    async def _check(self) -> PollEvent:
        self.checks += 1
        try:
            report = await self.client.query_status(self.task_id, self.job.params)
        except StatusUnavailable as exc:
            self.unavailable_checks += 1
            logger.warning("Status unavailable for task %s: %s", self.task_id, exc)
            return StatusMissing(str(exc))
        except TransportError as exc:
            logger.error("Giving up on task %s: %s", self.task_id, exc)
            return TransportLost(str(exc))
        return StatusReceived(report.state)

    async def _apply(self, event: PollEvent) -> None:
        self.job.state = transition(self.job.state, event)
        self.job.updated_at = time.time()
        self.history.append(self.job.state)

        if self._on_update is not None:
            result = self._on_update(self.job)
            if inspect.isawaitable(result):
                await result
