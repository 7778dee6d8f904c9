"""Environment-driven configuration for taskrelay processes.

Every process that runs workers needs to agree on where the shared store
lives and how often to poll it. ``RelaySettings`` reads those values from
``RELAY_``-prefixed environment variables (or a ``.env`` file) and
validates them at startup.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not on the first poll
    - **Environment-driven:** Reads from env vars and .env files
    - **Sensible defaults:** A local SQLite file works out of the box

Examples:
    >>> from taskrelay.core.settings import RelaySettings
    >>> settings = RelaySettings(database_url="postgresql://db/tasks")
    >>> settings.poll_interval.total_seconds()
    5.0

Tags:
    settings, configuration, pydantic, environment
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskrelay.core.logging import configure_logging


class RelaySettings(BaseSettings):
    """Settings shared by every process that runs task workers.

    Fields
    ──────
    database_url          : SQLAlchemy URL of the shared task store
    poll_interval_seconds : Delay between readiness checks of one worker
    log_level             : Structlog log level
    log_json              : JSON logs (True), console (False), auto (None)
    echo_sql              : Log every SQL statement
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Store ────────────────────────────────────────────────────
    database_url: str = "sqlite:///relay.db"
    echo_sql: bool = False

    # ── Workers ──────────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=5.0, gt=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(seconds=self.poll_interval_seconds)

    def configure_logging(self, service: str = "taskrelay") -> None:
        """Apply ``log_level`` and ``log_json`` to structlog."""
        configure_logging(level=self.log_level, json_format=self.log_json, service=service)
