"""SQLAlchemy 2.0 persistence layer for the shared task table.

Modules
-------
base        RelayBase (declarative base)
session     Engine factory with SQLite tweaks
tables      TaskTable (``relay_tasks``)

Tags:
    taskrelay, orm, sqlalchemy, declarative
"""

from __future__ import annotations

from taskrelay.core.orm.base import RelayBase
from taskrelay.core.orm.session import create_relay_engine
from taskrelay.core.orm.tables import TaskTable

__all__ = [
    "RelayBase",
    "TaskTable",
    "create_relay_engine",
]
