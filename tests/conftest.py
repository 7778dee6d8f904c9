"""
Shared pytest fixtures and configuration for taskrelay tests.

This module provides:
- Auto-marking of tests by location
- A file-backed SQLite store per test (tmp_path)
- Settings payload factories
- Structured log capture

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.

    async def test_something(store, settings_payload):
        ...
"""

import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

# Ensure taskrelay package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taskrelay.core.orm import create_relay_engine
from taskrelay.core.scheduling import SqlTaskStore


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """SQLite file shared by every store created in one test."""
    return f"sqlite:///{tmp_path / 'relay.db'}"


@pytest.fixture
def store(db_url: str) -> Generator[SqlTaskStore, None, None]:
    """SqlTaskStore with the relay_tasks schema created."""
    engine = create_relay_engine(db_url)
    task_store = SqlTaskStore(engine)
    task_store.create_schema()
    yield task_store
    engine.dispose()


@pytest.fixture
def other_store(db_url: str, store: SqlTaskStore) -> Generator[SqlTaskStore, None, None]:
    """A second, independent store on the same database -- a sibling process."""
    engine = create_relay_engine(db_url)
    yield SqlTaskStore(engine)
    engine.dispose()


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings_payload():
    """Factory for V1 settings payloads in wire form."""

    def _make(
        every: str = "PT1H",
        initial_delay: str | None = "PT0S",
        **extra: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"version": 1, "recurringAtMostEveryDuration": every}
        if initial_delay is not None:
            payload["initialDelayDuration"] = initial_delay
        payload.update(extra)
        return payload

    return _make


# =============================================================================
# Logging Fixtures
# =============================================================================


@pytest.fixture
def captured_logs() -> Generator[list[dict[str, Any]], None, None]:
    """Structured log events emitted during the test."""
    with structlog.testing.capture_logs() as logs:
        yield logs
