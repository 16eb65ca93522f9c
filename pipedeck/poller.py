"""
Poller - Track a background task until it succeeds or fails.

The JobStatusPoller implements:
- A pending -> polling -> {succeeded | failed} state machine per task
- Sequential poll steps scheduled after a delay (never two lookups in flight)
- Indefinite retry on lookup errors, using a longer backoff interval
- Cancellation: a new session for the same task, or close(), invalidates
  the previous session before it can publish or reschedule

Poll step flow:
1. Sleep (initial delay, normal interval, or backoff interval)
2. Check the session is still current
3. Fetch the task's progress log
4. Let the ProgressPolicy interpret it (possibly consulting a nested job)
5. Publish the new snapshot if anything changed; stop on a terminal status

Progress policies:
- JobLinkedProgress: the second entry links a nested job whose status is
  authoritative (connection syncs)
- FinalEntryProgress: the last entry's own status decides (workspace builds)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence

from pipedeck.clients import JobDetailClient, TaskStatusClient
from pipedeck.schemas import (
    JobLinkedEntry,
    PollState,
    PollStatus,
    ProgressEntry,
    StatusEntry,
)


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 3.0
DEFAULT_BACKOFF_S = 5.0

JOB_SUCCEEDED = "succeeded"
JOB_FAILED = "failed"

Sleep = Callable[[float], Awaitable[Any]]
Listener = Callable[[PollState], None]


@dataclass(frozen=True)
class PollStep:
    """
    Interpretation of one progress log.

    A step without a status means "keep polling".
    """
    status: Optional[PollStatus] = None
    job_id: Optional[str] = None
    job_status: Optional[str] = None
    logs: tuple[str, ...] = ()
    result: Any = None
    failure_message: Optional[str] = None


class ProgressPolicy(ABC):
    """Decides what a task's progress log means."""

    @abstractmethod
    async def evaluate(
        self,
        entries: Sequence[ProgressEntry],
        jobs: JobDetailClient,
    ) -> PollStep:
        """
        Interpret a progress log.

        Args:
            entries: The task's current progress entries
            jobs: Client for nested job lookups

        Returns:
            PollStep describing the outcome

        Raises:
            Exception: Lookup failures propagate to the poller, which backs off
        """
        pass


class JobLinkedProgress(ProgressPolicy):
    """
    Decide from the second progress entry.

    The first entry is always the "enqueued" marker. The second either links
    a nested job, whose status is authoritative, or reports a failure of its
    own. Anything shorter is not ready yet.
    """

    DECISION_INDEX = 1

    async def evaluate(
        self,
        entries: Sequence[ProgressEntry],
        jobs: JobDetailClient,
    ) -> PollStep:
        if len(entries) <= self.DECISION_INDEX:
            return PollStep()

        entry = entries[self.DECISION_INDEX]

        if isinstance(entry, JobLinkedEntry):
            job_id = entry.embedded_job_id
            detail = await jobs.fetch_job_detail(job_id)
            if detail.status == JOB_SUCCEEDED:
                return PollStep(
                    status=PollStatus.SUCCEEDED,
                    job_id=job_id,
                    job_status=detail.status,
                    result=detail.to_dict(),
                )
            if detail.status == JOB_FAILED:
                return PollStep(
                    status=PollStatus.FAILED,
                    job_id=job_id,
                    job_status=detail.status,
                    logs=detail.logs,
                    failure_message=f"Job {job_id} failed",
                )
            return PollStep(job_id=job_id, job_status=detail.status)

        if isinstance(entry, StatusEntry):
            return PollStep(status=PollStatus.FAILED, failure_message=entry.status)

        return PollStep()


class FinalEntryProgress(ProgressPolicy):
    """
    Decide from the status of the last progress entry.

    Used for tasks that report their own outcome (workspace builds). The
    failure message is taken from the failing entry.
    """

    def __init__(self, success_status: str = "completed", failure_status: str = "failed"):
        self.success_status = success_status
        self.failure_status = failure_status

    async def evaluate(
        self,
        entries: Sequence[ProgressEntry],
        jobs: JobDetailClient,
    ) -> PollStep:
        if not entries:
            return PollStep()

        last = entries[-1]
        status = getattr(last, "status", None)
        if status == self.success_status:
            return PollStep(status=PollStatus.SUCCEEDED)
        if status == self.failure_status:
            return PollStep(
                status=PollStatus.FAILED,
                failure_message=last.message or status,
            )
        return PollStep()


class TrackingHandle:
    """
    One tracking session for a task.

    Exposes the latest snapshot, a stream of snapshots, and cancellation.

    Usage:
        handle = poller.track(task_id)
        async for state in handle:
            render(state)
        final = await handle.wait()
    """

    def __init__(self, task_id: str, generation: int, listener: Optional[Listener] = None):
        self.task_id = task_id
        self.generation = generation
        self._state = PollState(task_id=task_id, generation=generation)
        self._listener = listener
        self._queue: "asyncio.Queue[Optional[PollState]]" = asyncio.Queue()
        self._queue.put_nowait(self._state)
        self._cancelled = False
        self._finished = False
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> PollState:
        """Latest snapshot."""
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        """True once the session can publish nothing more."""
        return self._finished

    def cancel(self) -> None:
        """Stop tracking. Pending sleeps and lookups are abandoned."""
        if self._cancelled or self._finished:
            return
        self._cancelled = True
        if (
            self._task is not None
            and not self._task.done()
            and self._task is not asyncio.current_task()
        ):
            self._task.cancel()
        self._finish()

    async def wait(self) -> PollState:
        """Wait until the session ends and return the last snapshot."""
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._state

    def __aiter__(self) -> AsyncIterator[PollState]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[PollState]:
        while True:
            state = await self._queue.get()
            if state is None:
                return
            yield state

    def _publish(self, state: PollState) -> None:
        if self._finished or state == self._state:
            return
        self._state = state
        self._queue.put_nowait(state)
        if self._listener is not None:
            self._listener(state)

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(None)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Tracking task {self.task_id} crashed",
                exc_info=task.exception(),
                extra={"task_id": self.task_id, "event": "poll_crashed"},
            )
        self._finish()


class JobStatusPoller:
    """
    Polls task progress until a terminal state.

    Usage:
        poller = JobStatusPoller(tasks=client, jobs=client)
        handle = poller.track(task_id)
        final = await handle.wait()

    track() must be called from a running event loop. Each session runs as
    its own asyncio task; lookups for one task are strictly sequential.
    """

    def __init__(
        self,
        tasks: TaskStatusClient,
        jobs: JobDetailClient,
        policy: Optional[ProgressPolicy] = None,
        interval: float = DEFAULT_INTERVAL_S,
        backoff_interval: float = DEFAULT_BACKOFF_S,
        sleep: Optional[Sleep] = None,
    ):
        """
        Initialize the poller.

        Args:
            tasks: Client for task progress lookups
            jobs: Client for nested job lookups
            policy: How progress logs are interpreted (default: JobLinkedProgress)
            interval: Delay between normal poll steps, in seconds
            backoff_interval: Delay after a failed lookup, in seconds
            sleep: Awaitable sleep function (default: asyncio.sleep)
        """
        self._tasks = tasks
        self._jobs = jobs
        self._policy = policy or JobLinkedProgress()
        self._interval = interval
        self._backoff_interval = backoff_interval
        self._sleep = sleep or asyncio.sleep
        self._sessions: dict[str, TrackingHandle] = {}
        self._generation = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def backoff_interval(self) -> float:
        return self._backoff_interval

    def track(
        self,
        task_id: str,
        initial_delay: float = 0.0,
        listener: Optional[Listener] = None,
    ) -> TrackingHandle:
        """
        Start tracking a task.

        Any earlier session for the same task id is cancelled first.

        Args:
            task_id: Task identifier returned by the triggering action
            initial_delay: Delay before the first poll, in seconds
            listener: Called with every published snapshot

        Returns:
            TrackingHandle for the new session
        """
        loop = asyncio.get_running_loop()

        previous = self._sessions.get(task_id)
        if previous is not None:
            logger.debug(f"Superseding tracking session {previous.generation} for task {task_id}")
            previous.cancel()

        self._generation += 1
        handle = TrackingHandle(task_id, self._generation, listener)
        self._sessions[task_id] = handle

        task = loop.create_task(self._run(handle, initial_delay))
        handle._task = task
        task.add_done_callback(handle._on_task_done)

        logger.info(
            f"Tracking task {task_id} (generation {handle.generation})",
            extra={"task_id": task_id, "event": "poll_started"},
        )
        return handle

    def close(self) -> None:
        """Cancel every live session."""
        for handle in list(self._sessions.values()):
            handle.cancel()
        self._sessions.clear()

    def _is_current(self, handle: TrackingHandle) -> bool:
        return not handle.cancelled and self._sessions.get(handle.task_id) is handle

    async def _run(self, handle: TrackingHandle, initial_delay: float) -> None:
        """Poll loop for one session."""
        delay = initial_delay
        try:
            while True:
                await self._sleep(delay)
                if not self._is_current(handle):
                    return

                if handle.state.status == PollStatus.PENDING:
                    handle._publish(replace(handle.state, status=PollStatus.POLLING))

                try:
                    entries = await self._tasks.fetch_task_progress(handle.task_id)
                    step = await self._policy.evaluate(entries, self._jobs)
                except Exception as e:
                    logger.warning(
                        f"Lookup for task {handle.task_id} failed, "
                        f"retrying in {self._backoff_interval}s: {e}",
                        extra={"task_id": handle.task_id, "event": "poll_retry"},
                    )
                    delay = self._backoff_interval
                    continue

                if not self._is_current(handle):
                    return

                state = _apply_step(handle.state, entries, step)
                handle._publish(state)

                if state.is_terminal:
                    logger.info(
                        f"Task {handle.task_id} {state.status.value}",
                        extra={"task_id": handle.task_id, "event": f"poll_{state.status.value}"},
                    )
                    return

                delay = self._interval
        finally:
            if self._sessions.get(handle.task_id) is handle:
                del self._sessions[handle.task_id]
            handle._finish()


def _apply_step(state: PollState, entries: Sequence[ProgressEntry], step: PollStep) -> PollState:
    """Fold a PollStep into the current snapshot."""
    changes: dict[str, Any] = {"progress_log": tuple(entries)}
    if step.job_id is not None:
        changes["job_id"] = step.job_id
    if step.job_status is not None:
        changes["job_status"] = step.job_status
    if step.status is not None:
        changes["status"] = step.status
        changes["logs"] = step.logs
        changes["result"] = step.result
        changes["failure_message"] = step.failure_message
    return replace(state, **changes)
