"""Task worker -- one task identifier's lifecycle, end to end.

Manifesto:
    A recurring task may be deployed to any number of processes. Each of
    them runs a ``TaskWorker`` for the same id, and the shared row decides
    which one actually runs it in a given window. A worker must survive a
    flaky database, step aside when a newer deploy rewrites the task's
    settings in a format it no longer understands, and stop promptly when
    asked, without ever running the work twice at once.

Architecture::

    start(settings)
      │  parse + round-trip settings ──► InvalidSettings
      │  upsert record ───────────────► PersistenceFailure
      ▼
    ┌──────────────────────── background asyncio.Task ────────────────────┐
    │                                                                      │
    │   ┌─► cancelled? ── yes ──► STOPPED                                  │
    │   │       │ no                                                       │
    │   │       ▼                                                          │
    │   │   POLLING   find_claimable(id)          error/none → NOT_READY   │
    │   │       ▼                                                          │
    │   │   DECIDING  parse settings_json         unparsable → ABORTED ──► STOPPED
    │   │             claim(id, ticket)           lost race  → NOT_READY   │
    │   │       ▼                                                          │
    │   │   EXECUTING fn()                        failure logged           │
    │   │             release(id, ticket, cadence)   (always, in finally) │
    │   │       ▼                                                          │
    │   └── SLEEPING  min(poll interval, cancel token)                     │
    │                                                                      │
    └──────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Running fn() after find_claimable() alone
    ✅ Only after claim() moved the ticket from NULL to ours
    ❌ Raising loop failures into the caller of start()
    ✅ Logging them from the task's done-callback
    ❌ Retrying every store error on the next poll
    ✅ Only retryable ones; anything else ends the loop

Tags:
    taskrelay, scheduling, worker, asyncio, control-loop

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from datetime import timedelta
from enum import Enum
from typing import Any

from taskrelay.core.errors import (
    InvalidSettings,
    PersistenceFailure,
    RelayError,
    categorize_error,
    is_retryable,
)
from taskrelay.core.logging import LogContext, get_logger
from taskrelay.core.timestamps import new_ticket

from .cancel import CancelToken
from .store import TaskStore
from .types import (
    TaskSettingsV1,
    parse_task_settings,
    serialize_task_settings,
    settings_to_dict,
)

WORK_CHECK_FREQUENCY = timedelta(seconds=5)

TaskFn = Callable[[], None] | Callable[[], Awaitable[None]]


class PollResult(str, Enum):
    """Outcome of one poll-and-maybe-run step."""

    NOT_READY = "not-ready"
    ABORTED = "aborted"
    RAN = "ran"


class WorkerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    DECIDING = "deciding"
    EXECUTING = "executing"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class TaskWorker:
    """Runs *fn* for *task_id* whenever this process wins the shared row.

    Example:
        >>> worker = TaskWorker("nightly-sync", sync_accounts, store)
        >>> await worker.start({
        ...     "version": 1,
        ...     "initialDelayDuration": "PT1M",
        ...     "recurringAtMostEveryDuration": "PT1H",
        ... })
        >>> # ... later ...
        >>> worker.stop()
    """

    def __init__(
        self,
        task_id: str,
        fn: TaskFn,
        store: TaskStore,
        logger: Any = None,
        *,
        poll_interval: timedelta = WORK_CHECK_FREQUENCY,
    ) -> None:
        self.task_id = task_id
        self._fn = fn
        self._store = store
        self._logger = (logger or get_logger(__name__)).bind(task_id=task_id)
        self._poll_interval = poll_interval
        self._cancel_token = CancelToken.create()
        self._state = WorkerState.IDLE
        self._loop_task: asyncio.Task[None] | None = None
        # (ticket, cadence) of a run whose release did not reach the store
        self._pending_release: tuple[str, timedelta] | None = None

    # === Lifecycle ===

    async def start(self, settings: TaskSettingsV1 | Mapping[str, Any] | str) -> None:
        """Persist *settings* and launch the control loop in the background.

        A worker that has been stopped cannot be restarted; create a new one.

        Raises:
            InvalidSettings: The settings do not validate.
            PersistenceFailure: The task record could not be written.
        """
        if self._cancel_token.is_cancelled:
            self._logger.warning(
                "task_worker.already_stopped",
                detail="start() ignored, create a new worker instead",
            )
            return

        parsed = await self._persist_task(settings)

        if self._loop_task is not None and not self._loop_task.done():
            self._logger.debug("task_worker.settings_updated", settings=settings_to_dict(parsed))
            return

        self._logger.debug("task_worker.starting", settings=settings_to_dict(parsed))

        self._loop_task = asyncio.create_task(
            self._run_loop(), name=f"task-worker:{self.task_id}"
        )
        self._loop_task.add_done_callback(self._on_loop_done)

    def stop(self) -> None:
        """Cancel the worker. Does not wait for the loop to exit; see :meth:`join`."""
        self._cancel_token.cancel()

    async def join(self, timeout: float | None = None) -> bool:
        """Wait for the control loop to finish.

        Returns:
            True if the loop has finished (or never started), False on timeout.
        """
        if self._loop_task is None:
            return True
        done, _ = await asyncio.wait({self._loop_task}, timeout=timeout)
        return bool(done)

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        self._state = WorkerState.STOPPED
        if task.cancelled():
            self._logger.debug("task_worker.cancelled")
            return
        error = task.exception()
        if error is None:
            self._logger.debug("task_worker.finished")
        elif isinstance(error, RelayError):
            self._logger.warning("task_worker.failed", error=str(error), **error.to_dict())
        else:
            self._logger.warning(
                "task_worker.failed",
                error=str(error),
                error_type=type(error).__name__,
                category=categorize_error(error).value,
            )

    # === Control loop ===

    async def _run_loop(self) -> None:
        try:
            while not self._cancel_token.is_cancelled:
                result = await self._run_once()
                if result is PollResult.ABORTED:
                    return

                self._state = WorkerState.SLEEPING
                await self._cancel_token.sleep(self._poll_interval.total_seconds())
        finally:
            self._state = WorkerState.STOPPED

    async def _run_once(self) -> PollResult:
        """One poll-and-maybe-run step.

        Store errors that are not retryable propagate and end the loop.
        """
        if self._pending_release is not None and not await self._retry_release():
            return PollResult.NOT_READY

        self._state = WorkerState.POLLING
        settings = await self._find_ready_task()
        if not isinstance(settings, TaskSettingsV1):
            return settings

        ticket = new_ticket()
        try:
            claimed = await self._store.claim(self.task_id, ticket)
        except Exception as e:
            if not is_retryable(e):
                raise
            self._log_store_failure("task_worker.claim_failed", e, "will try again later")
            return PollResult.NOT_READY

        if not claimed:
            self._logger.debug("task_worker.claim_lost")
            return PollResult.NOT_READY

        self._state = WorkerState.EXECUTING
        try:
            await self._execute(ticket)
        finally:
            await self._release(ticket, settings.recurring_at_most_every_duration)
        return PollResult.RAN

    async def _find_ready_task(self) -> TaskSettingsV1 | PollResult:
        """Check if the task is due and unclaimed, and read back its settings."""
        try:
            record = await self._store.find_claimable(self.task_id)
        except Exception as e:
            if not is_retryable(e):
                raise
            self._log_store_failure("task_worker.fetch_failed", e, "will try again later")
            return PollResult.NOT_READY

        if record is None:
            return PollResult.NOT_READY

        self._state = WorkerState.DECIDING
        try:
            return parse_task_settings(record.settings_json)
        except InvalidSettings as e:
            self._logger.info(
                "task_worker.settings_unparsable",
                error=str(e),
                field=e.field,
                detail=(
                    "aborting and assuming that a newer version of the task has "
                    "been issued and is being handled by other workers"
                ),
            )
            return PollResult.ABORTED

    async def _execute(self, ticket: str) -> None:
        """Invoke the work function; failures are isolated to this run.

        Anything *fn* logs through structlog carries the task id and ticket.
        """
        try:
            async with LogContext(task_id=self.task_id, ticket=ticket):
                if inspect.iscoroutinefunction(self._fn):
                    await self._fn()
                else:
                    result = await asyncio.to_thread(self._fn)
                    if inspect.isawaitable(result):
                        await result
        except Exception as e:
            self._logger.warning(
                "task_worker.run_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
        else:
            self._logger.debug("task_worker.run_completed")

    async def _release(self, ticket: str, run_again_in: timedelta) -> None:
        try:
            released = await self._store.release(self.task_id, ticket, run_again_in)
        except Exception as e:
            if not is_retryable(e):
                raise
            self._log_store_failure(
                "task_worker.release_failed", e, "will retry before the next poll", ticket=ticket
            )
            self._pending_release = (ticket, run_again_in)
            return

        if not released:
            self._logger.warning("task_worker.ticket_missing", ticket=ticket)

    async def _retry_release(self) -> bool:
        ticket, run_again_in = self._pending_release
        self._pending_release = None
        await self._release(ticket, run_again_in)
        return self._pending_release is None

    def _log_store_failure(self, event: str, error: Exception, detail: str, **extra: Any) -> None:
        self._logger.warning(
            event,
            error=str(error),
            category=categorize_error(error).value,
            detail=detail,
            **extra,
        )

    # === Persistence ===

    async def _persist_task(self, settings: TaskSettingsV1 | Mapping[str, Any] | str) -> TaskSettingsV1:
        """Perform the initial store of the task info."""
        parsed = parse_task_settings(settings)
        settings_json = serialize_task_settings(parsed)
        # Make sure workers will definitely be able to read it back again
        parse_task_settings(settings_json)

        # An existing record only gets its settings replaced, keeping its
        # schedule and any in-flight ticket
        try:
            await self._store.upsert_settings(self.task_id, settings_json, parsed.initial_delay)
        except Exception as e:
            raise PersistenceFailure(
                f"Failed to persist task {self.task_id}, {e}", cause=e
            ).with_context(task_id=self.task_id, operation="upsert") from e

        return parsed
