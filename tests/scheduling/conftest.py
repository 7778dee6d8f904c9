"""Pytest fixtures for scheduling tests."""

import pytest
import pytest_asyncio

from taskrelay.core.scheduling import TaskWorker
from tests._support.fault_injection import FAST_POLL, FlakyStore


@pytest.fixture
def flaky_store(store):
    return FlakyStore(store)


@pytest_asyncio.fixture
async def make_worker():
    """Factory for TaskWorkers that are stopped and joined at teardown."""
    created: list[TaskWorker] = []

    def _make(task_id, fn, store, *, poll_interval=FAST_POLL, logger=None) -> TaskWorker:
        worker = TaskWorker(task_id, fn, store, logger, poll_interval=poll_interval)
        created.append(worker)
        return worker

    yield _make

    for worker in created:
        worker.stop()
    for worker in created:
        await worker.join(timeout=5.0)
