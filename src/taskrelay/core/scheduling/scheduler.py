"""Task scheduler -- keeps track of the workers one process runs.

The scheduler is the per-process registry of ``TaskWorker`` instances:
schedule a task by id, replace it with a new definition, unschedule it,
and stop everything on shutdown. Cross-process exclusivity is entirely the
workers' business; the scheduler never talks to other processes.

Tags:
    taskrelay, scheduling, service, registry
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from taskrelay.core.errors import RelayError
from taskrelay.core.logging import get_logger
from taskrelay.core.orm import create_relay_engine
from taskrelay.core.settings import RelaySettings

from .store import SqlTaskStore, TaskStore
from .types import TaskSettingsV1
from .worker import WORK_CHECK_FREQUENCY, TaskFn, TaskWorker

logger = get_logger(__name__)


class TaskScheduler:
    """Creates, tracks and stops the task workers of one process.

    Example:
        >>> scheduler = TaskScheduler.from_settings()
        >>> await scheduler.schedule_task(
        ...     "nightly-sync",
        ...     sync_accounts,
        ...     {"version": 1, "recurringAtMostEveryDuration": "PT1H"},
        ... )
        >>> # ... on shutdown ...
        >>> await scheduler.shutdown(timeout=10)
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        poll_interval: timedelta = WORK_CHECK_FREQUENCY,
    ) -> None:
        self.store = store
        self.poll_interval = poll_interval
        self._workers: dict[str, TaskWorker] = {}

    @classmethod
    def from_settings(cls, settings: RelaySettings | None = None) -> TaskScheduler:
        """Build the engine and store from configuration and create the schema."""
        settings = settings or RelaySettings()
        engine = create_relay_engine(settings.database_url, echo=settings.echo_sql)
        store = SqlTaskStore(engine)
        store.create_schema()
        return cls(store, poll_interval=settings.poll_interval)

    async def schedule_task(
        self,
        task_id: str,
        fn: TaskFn,
        settings: TaskSettingsV1 | Mapping[str, Any] | str,
    ) -> TaskWorker:
        """Start a worker for *task_id*, replacing any worker already tracked for it.

        Raises:
            InvalidSettings: The settings do not validate.
            PersistenceFailure: The task record could not be written.
        """
        worker = TaskWorker(task_id, fn, self.store, poll_interval=self.poll_interval)
        try:
            await worker.start(settings)
        except RelayError as e:
            logger.warning("task_scheduler.schedule_failed", task_id=task_id, **e.to_dict())
            raise

        previous = self._workers.pop(task_id, None)
        if previous is not None:
            logger.info("task_scheduler.replaced", task_id=task_id)
            previous.stop()

        self._workers[task_id] = worker
        logger.info("task_scheduler.scheduled", task_id=task_id)
        return worker

    def unschedule(self, task_id: str) -> bool:
        """Stop and forget the worker for *task_id*.

        Returns:
            True if a worker was stopped, False if none was tracked
        """
        worker = self._workers.pop(task_id, None)
        if worker is None:
            return False
        worker.stop()
        logger.info("task_scheduler.unscheduled", task_id=task_id)
        return True

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop every tracked worker and wait for their loops to exit."""
        workers = list(self._workers.values())
        self._workers.clear()
        for worker in workers:
            worker.stop()
        if workers:
            results = await asyncio.gather(*(w.join(timeout) for w in workers))
            stuck = [w.task_id for w, done in zip(workers, results) if not done]
            if stuck:
                logger.warning("task_scheduler.shutdown_incomplete", task_ids=stuck)
        logger.info("task_scheduler.shutdown", workers=len(workers))

    def get_worker(self, task_id: str) -> TaskWorker | None:
        return self._workers.get(task_id)

    @property
    def task_ids(self) -> list[str]:
        return sorted(self._workers)
