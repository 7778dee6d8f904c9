"""Task table definition -- one row per logical task.

Tags:
    taskrelay, orm, sqlalchemy, tables, scheduling

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from taskrelay.core.orm.base import RelayBase


class TaskTable(RelayBase):
    """Shared coordination row for one task.

    ``current_run_ticket`` is only ever set by a conditional claim and
    cleared by the matching release; ``settings_json`` is the only column a
    redefinition touches.
    """

    __tablename__ = "relay_tasks"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    settings_json: Mapped[str] = mapped_column(Text, nullable=False)
    next_run_start_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    current_run_ticket: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("relay_tasks_next_run_start_at_idx", "next_run_start_at"),
    )
