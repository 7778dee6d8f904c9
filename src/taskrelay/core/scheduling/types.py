"""Versioned task settings -- the wire form stored in ``settings_json``.

Manifesto:
    Settings outlive the code that wrote them. A worker from last week's
    deploy may read a row written by this week's deploy, so parsing is a
    single fallible step: either the payload is exactly a V1 document this
    worker understands, or it is "somebody else's task now". It never
    crashes the worker.

Wire form (JSON)::

    {
      "version": 1,
      "initialDelayDuration": "PT30S",            # optional, ISO-8601
      "recurringAtMostEveryDuration": "PT5M"      # required, ISO-8601
    }

Unknown keys are ignored. Any other ``version`` is rejected, so a newer
schema reads as unparsable to an older worker.

Tags:
    taskrelay, scheduling, settings, pydantic, versioning
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from taskrelay.core.errors import InvalidSettings

# Longest accepted duration; anything larger could not be added to "now"
MAX_DURATION = timedelta(days=365 * 100)


class TaskSettingsV1(BaseModel):
    """Version 1 of the task settings schema.

    Attributes:
        version: Schema version tag, always ``1``.
        initial_delay_duration: Delay before the first eligible run. Only
            applied when the task record is first created.
        recurring_at_most_every_duration: Cadence; the next run becomes
            eligible this long after the previous one finished.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    version: Literal[1]
    initial_delay_duration: timedelta | None = Field(
        default=None, alias="initialDelayDuration"
    )
    recurring_at_most_every_duration: timedelta = Field(
        alias="recurringAtMostEveryDuration"
    )

    @field_validator("initial_delay_duration", "recurring_at_most_every_duration")
    @classmethod
    def _within_bounds(cls, value: timedelta | None) -> timedelta | None:
        if value is None:
            return value
        if value < timedelta(0):
            raise ValueError("duration must not be negative")
        if value > MAX_DURATION:
            raise ValueError(f"duration must not exceed {MAX_DURATION.days} days")
        return value

    @property
    def initial_delay(self) -> timedelta:
        return self.initial_delay_duration or timedelta(0)


def parse_task_settings(payload: TaskSettingsV1 | Mapping[str, Any] | str | bytes) -> TaskSettingsV1:
    """Parse and validate settings from any supported representation.

    Raises:
        InvalidSettings: Malformed JSON, a different version, a missing
            cadence, or a bad duration.
    """
    if isinstance(payload, TaskSettingsV1):
        return payload
    try:
        if isinstance(payload, (str, bytes)):
            return TaskSettingsV1.model_validate_json(payload)
        return TaskSettingsV1.model_validate(payload)
    except PydanticValidationError as e:
        field, value = _first_error_location(e)
        raise InvalidSettings(
            f"Invalid task settings: {e}", field=field, value=value, cause=e
        ) from e
    except (TypeError, ValueError) as e:
        raise InvalidSettings(f"Invalid task settings: {e}", cause=e) from e


def serialize_task_settings(settings: TaskSettingsV1) -> str:
    """Canonical JSON text for ``settings_json`` (camelCase keys, ISO-8601 durations)."""
    return settings.model_dump_json(by_alias=True)


def settings_to_dict(settings: TaskSettingsV1) -> dict[str, Any]:
    """Wire form as a plain dict, for logging."""
    return json.loads(serialize_task_settings(settings))


def _first_error_location(error: PydanticValidationError) -> tuple[str | None, Any]:
    """Wire name and offending input of the first validation error, if it has one."""
    details = error.errors()
    if not details or not details[0].get("loc"):
        return None, None
    first = details[0]
    field = ".".join(str(part) for part in first["loc"])
    value = first.get("input") if first.get("type") != "missing" else None
    return field, value
