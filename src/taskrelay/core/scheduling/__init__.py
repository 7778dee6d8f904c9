"""Scheduling package for taskrelay.

Manifesto:
    Recurring work deployed to several processes needs more than a
    ``while True: sleep()`` per process. It needs a claim on a shared row
    before running (so two processes never run it at once), a schedule
    that lives next to the claim (so it survives restarts), and a sleep
    that can be cut short (so shutdown is prompt).

┌──────────────────────────────────────────────────────────────────────────────┐
│  TASKRELAY SCHEDULING                                                         │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from taskrelay.core.scheduling import TaskScheduler                │   │
│  │                                                                      │   │
│  │   scheduler = TaskScheduler.from_settings()                          │   │
│  │   await scheduler.schedule_task(                                     │   │
│  │       "nightly-sync",                                                │   │
│  │       sync_accounts,                                                 │   │
│  │       {"version": 1, "recurringAtMostEveryDuration": "PT1H"},        │   │
│  │   )                                                                  │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Architecture:                                                                │
│                                                                               │
│   process A                      process B                                   │
│   ┌──────────────┐               ┌──────────────┐                            │
│   │ TaskWorker   │               │ TaskWorker   │                            │
│   │ CancelToken  │               │ CancelToken  │                            │
│   └──────┬───────┘               └──────┬───────┘                            │
│          │ claim / release              │ claim / release                    │
│          ▼                              ▼                                    │
│   ┌─────────────────────────────────────────────────────┐                    │
│   │  relay_tasks (SqlTaskStore)                          │                    │
│   └─────────────────────────────────────────────────────┘                    │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    taskrelay, scheduling, distributed-coordination, asyncio

Doc-Types:
    package-overview, architecture-map, module-index
"""

from __future__ import annotations

from .cancel import CancelToken
from .scheduler import TaskScheduler
from .store import SqlTaskStore, TaskRecord, TaskStore
from .types import TaskSettingsV1, parse_task_settings, serialize_task_settings
from .worker import WORK_CHECK_FREQUENCY, PollResult, TaskWorker, WorkerState

__all__ = [
    # Cancellation
    "CancelToken",
    # Settings
    "TaskSettingsV1",
    "parse_task_settings",
    "serialize_task_settings",
    # Store
    "TaskStore",
    "TaskRecord",
    "SqlTaskStore",
    # Worker
    "WORK_CHECK_FREQUENCY",
    "PollResult",
    "TaskWorker",
    "WorkerState",
    # Service
    "TaskScheduler",
]
