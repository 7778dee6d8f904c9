"""taskrelay core -- primitives for coordinating periodic work.

Manifesto:
    A recurring job deployed to several processes must run in exactly one
    of them per eligible window. The only thing those processes share is a
    database, so the database row *is* the lock: a conditional update hands
    out a ticket, and the same row carries the next schedule.

Architecture::

    Layer 1 -- Types & Errors
        errors.py          Structured error hierarchy (RelayError, TransientError)
        timestamps.py      UTC helpers + ticket generation (stdlib-only)

    Layer 2 -- Ambient
        logging.py         structlog configuration + get_logger()
        settings.py        RelaySettings (pydantic-settings, RELAY_ prefix)
        orm/               SQLAlchemy 2.0 engine factory + relay_tasks table

    Layer 3 -- Scheduling
        scheduling/cancel.py     CancelToken (interruptible sleeps)
        scheduling/types.py      TaskSettingsV1 wire schema
        scheduling/store.py      TaskStore protocol + SqlTaskStore
        scheduling/worker.py     TaskWorker control loop
        scheduling/scheduler.py  TaskScheduler worker registry

Tags:
    taskrelay, core, scheduling, distributed-coordination
"""

from taskrelay.core.errors import (
    ErrorCategory,
    ErrorContext,
    InvalidSettings,
    PersistenceFailure,
    RelayError,
    StoreUnavailable,
    TransientError,
)
from taskrelay.core.scheduling import (
    WORK_CHECK_FREQUENCY,
    CancelToken,
    PollResult,
    SqlTaskStore,
    TaskRecord,
    TaskScheduler,
    TaskSettingsV1,
    TaskStore,
    TaskWorker,
    WorkerState,
)

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "RelayError",
    "TransientError",
    "InvalidSettings",
    "PersistenceFailure",
    "StoreUnavailable",
    # Scheduling
    "WORK_CHECK_FREQUENCY",
    "CancelToken",
    "PollResult",
    "SqlTaskStore",
    "TaskRecord",
    "TaskScheduler",
    "TaskSettingsV1",
    "TaskStore",
    "TaskWorker",
    "WorkerState",
]
