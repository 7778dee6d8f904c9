"""
Structured error types for taskrelay.

Provides a small hierarchy of typed errors with metadata for retry
decisions, categorization, and root cause analysis through error chaining.

Callers of ``TaskWorker.start()`` only ever see two failures: the settings
were rejected (``InvalidSettings``) or the store refused the write
(``PersistenceFailure``). Everything that goes wrong after the loop is
running is logged, never raised, and the store surfaces driver problems as
``StoreUnavailable`` so the loop can tell "try again next poll" apart from
programming errors.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different domains
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry metadata for logging
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       RelayError                                 │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientError        ValidationError      DatabaseError       │
        │  (retryable=True)      (VALIDATION)         (DATABASE)          │
        │       │                     │                    │               │
        │  StoreUnavailable      InvalidSettings     PersistenceFailure   │
        │  (DATABASE)                                                      │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    Chaining errors for root cause:

    >>> try:
    ...     raise ConnectionError("database is locked")
    ... except ConnectionError as e:
    ...     raise PersistenceFailure("Failed to persist task", cause=e)
    Traceback (most recent call last):
    ...
    PersistenceFailure: Failed to persist task

Guardrails:
    ❌ DON'T: Raise a bare Exception from the store
    ✅ DO: Wrap driver errors in StoreUnavailable with cause=

    ❌ DON'T: Set retryable=True for validation errors
    ✅ DO: Let the error type's default_retryable handle it

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        DATABASE: Connection pool, query timeout, lock contention
        NETWORK: Connection, timeout, DNS errors
        VALIDATION: Schema, constraint violations
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    # Infrastructure errors (usually transient)
    DATABASE = "DATABASE"
    NETWORK = "NETWORK"

    # Data errors
    VALIDATION = "VALIDATION"

    # Internal errors
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover what the scheduling core knows about a failure; any
    other key/value pairs go in ``metadata``. ``to_dict()`` serializes all
    non-None fields for logging.

    Attributes:
        task_id: Task identifier the error relates to
        ticket: Run ticket held at the time of failure
        operation: Store operation that failed (upsert, claim, release, ...)
        metadata: Additional key-value pairs
    """

    task_id: str | None = None
    ticket: str | None = None
    operation: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["task_id", "ticket", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RelayError(Exception):
    """
    Base exception for all taskrelay errors.

    All RelayError instances carry:
    - **category:** ErrorCategory enum for classification
    - **retryable:** Boolean indicating if the operation can be retried
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying exception for chaining

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = RelayError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> error = RelayError("Claim failed").with_context(task_id="t1")
        >>> error.context.task_id
        't1'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RelayError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StoreUnavailable("Claim failed", cause=e).with_context(
                task_id="t1", operation="claim"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Usually Retryable)
# =============================================================================


class TransientError(RelayError):
    """
    Temporary error that may succeed on retry.

    The worker loop treats these as "not ready yet" and tries again on the
    next poll.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class StoreUnavailable(TransientError):
    """The task store could not complete an operation (connectivity, locking, timeout)."""

    default_category = ErrorCategory.DATABASE


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(RelayError):
    """
    Data validation error.

    Never retryable - data must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class InvalidSettings(ValidationError):
    """Task settings failed schema validation or could not be deserialized."""

    pass


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(RelayError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class PersistenceFailure(DatabaseError):
    """The task record could not be written when starting a worker."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, RelayError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, RelayError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RelayError",
    "TransientError",
    "StoreUnavailable",
    "ValidationError",
    "InvalidSettings",
    "DatabaseError",
    "PersistenceFailure",
    "is_retryable",
    "categorize_error",
]
