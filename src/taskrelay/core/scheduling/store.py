"""Task record store -- the only coordination medium between workers.

Manifesto:
    Workers in different processes never talk to each other. They agree
    on who runs a task through one row in ``relay_tasks`` and two
    conditional updates: *claim* sets the ticket only if it is still NULL
    and the row is still due, *release* clears it only if it is still
    ours while writing the next schedule. That is compare-and-swap on a
    row, and it needs nothing beyond what every SQL database offers.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │  relay_tasks                                                       │
    │  id │ settings_json │ next_run_start_at │ current_run_ticket       │
    └────────────────────────────────────────────────────────────────────┘

    Every "now" below is the database clock, read inside the same
    transaction, so hosts with skewed clocks still agree on eligibility.

    upsert_settings(id, json, initial_delay)
        INSERT … (next_run_start_at = now + initial_delay)
        ON CONFLICT (id) DO UPDATE SET settings_json
    find_claimable(id)
        SELECT … WHERE id = :id AND next_run_start_at < :now
                   AND current_run_ticket IS NULL
    claim(id, ticket)
        UPDATE … SET current_run_ticket = :ticket
        WHERE id = :id AND next_run_start_at < :now
          AND current_run_ticket IS NULL                   → rowcount == 1
    release(id, ticket, run_again_in)
        UPDATE … SET current_run_ticket = NULL, next_run_start_at = now + :delay
        WHERE id = :id AND current_run_ticket = :ticket    → rowcount == 1

Guardrails:
    ❌ Reading the row, checking the ticket in Python, then writing it
    ✅ Putting the check in the UPDATE's WHERE clause
    ❌ Comparing against the calling process's clock
    ✅ Reading the database clock in the statement's transaction
    ❌ Letting SQLAlchemy errors escape the store
    ✅ Wrapping them in StoreUnavailable so the worker can retry next poll

Tags:
    taskrelay, scheduling, persistence, sqlalchemy, compare-and-swap

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, TypeVar, runtime_checkable

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from taskrelay.core.errors import StoreUnavailable
from taskrelay.core.logging import get_logger
from taskrelay.core.orm.base import RelayBase
from taskrelay.core.orm.tables import TaskTable
from taskrelay.core.timestamps import ensure_utc

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TaskRecord:
    """Snapshot of one ``relay_tasks`` row."""

    id: str
    settings_json: str
    next_run_start_at: datetime
    current_run_ticket: str | None = None


@runtime_checkable
class TaskStore(Protocol):
    """Async contract the worker needs from the shared store.

    Implementations judge eligibility and compute schedules against one
    shared clock, never the caller's.
    """

    async def upsert_settings(
        self, task_id: str, settings_json: str, initial_delay: timedelta
    ) -> None:
        """Insert a new record due after *initial_delay*, or overwrite only
        ``settings_json`` of an existing one."""
        ...

    async def find_claimable(self, task_id: str) -> TaskRecord | None:
        """Return the record if it is due and unclaimed, else None."""
        ...

    async def claim(self, task_id: str, ticket: str) -> bool:
        """Set the ticket if the record is still due and unclaimed."""
        ...

    async def release(self, task_id: str, ticket: str, run_again_in: timedelta) -> bool:
        """Clear our ticket and schedule the next run in one update."""
        ...

    async def get(self, task_id: str) -> TaskRecord | None:
        """Return the record regardless of its state."""
        ...


class SqlTaskStore:
    """SQLAlchemy implementation of :class:`TaskStore`.

    Statements are plain SQLAlchemy Core, executed on a worker thread so
    the event loop running the workers never blocks on the database.

    Example:
        >>> engine = create_relay_engine("sqlite:///relay.db")
        >>> store = SqlTaskStore(engine)
        >>> store.create_schema()
        >>> await store.upsert_settings("nightly-sync", settings_json, timedelta(0))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._table = TaskTable.__table__

    def create_schema(self) -> None:
        """Create ``relay_tasks`` if it does not exist yet."""
        RelayBase.metadata.create_all(self.engine, tables=[self._table])

    # === Store operations ===

    async def upsert_settings(
        self, task_id: str, settings_json: str, initial_delay: timedelta
    ) -> None:
        def _upsert(conn: Connection) -> None:
            values = {
                "id": task_id,
                "settings_json": settings_json,
                "next_run_start_at": self._db_now(conn) + initial_delay,
                "current_run_ticket": None,
            }
            dialect = conn.dialect.name
            if dialect in ("sqlite", "postgresql"):
                stmt_insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = stmt_insert(self._table).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[self._table.c.id],
                    set_={"settings_json": stmt.excluded.settings_json},
                )
                conn.execute(stmt)
                return

            # Portable fallback: insert, and merge settings when the row exists
            try:
                with conn.begin_nested():
                    conn.execute(insert(self._table).values(**values))
            except IntegrityError:
                conn.execute(
                    update(self._table)
                    .where(self._table.c.id == task_id)
                    .values(settings_json=settings_json)
                )

        await self._run("upsert", task_id, _upsert)

    async def find_claimable(self, task_id: str) -> TaskRecord | None:
        def _find(conn: Connection) -> TaskRecord | None:
            row = conn.execute(
                select(self._table)
                .where(self._table.c.id == task_id)
                .where(self._table.c.next_run_start_at < self._db_now(conn))
                .where(self._table.c.current_run_ticket.is_(None))
            ).first()
            return self._to_record(row) if row is not None else None

        return await self._run("find_claimable", task_id, _find)

    async def claim(self, task_id: str, ticket: str) -> bool:
        def _claim(conn: Connection) -> bool:
            result = conn.execute(
                update(self._table)
                .where(self._table.c.id == task_id)
                .where(self._table.c.next_run_start_at < self._db_now(conn))
                .where(self._table.c.current_run_ticket.is_(None))
                .values(current_run_ticket=ticket)
            )
            return result.rowcount == 1

        return await self._run("claim", task_id, _claim)

    async def release(self, task_id: str, ticket: str, run_again_in: timedelta) -> bool:
        def _release(conn: Connection) -> bool:
            result = conn.execute(
                update(self._table)
                .where(self._table.c.id == task_id)
                .where(self._table.c.current_run_ticket == ticket)
                .values(
                    current_run_ticket=None,
                    next_run_start_at=self._db_now(conn) + run_again_in,
                )
            )
            return result.rowcount == 1

        return await self._run("release", task_id, _release)

    async def get(self, task_id: str) -> TaskRecord | None:
        def _get(conn: Connection) -> TaskRecord | None:
            row = conn.execute(
                select(self._table).where(self._table.c.id == task_id)
            ).first()
            return self._to_record(row) if row is not None else None

        return await self._run("get", task_id, _get)

    # === Internals ===

    async def _run(self, operation: str, task_id: str, fn: Callable[[Connection], T]) -> T:
        """Run *fn* in its own transaction on a worker thread."""

        def _in_transaction() -> T:
            with self.engine.begin() as conn:
                return fn(conn)

        try:
            return await asyncio.to_thread(_in_transaction)
        except SQLAlchemyError as e:
            logger.debug("task_store.operation_failed", operation=operation, task_id=task_id, error=str(e))
            raise StoreUnavailable(f"Task store {operation} failed: {e}", cause=e).with_context(
                task_id=task_id, operation=operation
            ) from e

    @staticmethod
    def _db_now(conn: Connection) -> datetime:
        """Current time according to the database, as aware UTC."""
        dialect = conn.dialect.name
        if dialect == "sqlite":
            # CURRENT_TIMESTAMP has whole-second resolution; %f keeps milliseconds
            value = conn.execute(select(func.strftime("%Y-%m-%d %H:%M:%f", "now"))).scalar_one()
            return ensure_utc(datetime.fromisoformat(value))
        value = conn.execute(select(func.now())).scalar_one()
        return ensure_utc(value)

    @staticmethod
    def _to_record(row) -> TaskRecord:
        return TaskRecord(
            id=row.id,
            settings_json=row.settings_json,
            next_run_start_at=ensure_utc(row.next_run_start_at),
            current_run_ticket=row.current_run_ticket,
        )
