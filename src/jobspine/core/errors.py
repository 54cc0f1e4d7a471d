"""
Structured error types for jobspine.

Every failure that crosses the public API of the queue or the scheduler is a
:class:`JobSpineError`. Errors carry a category, an explicit retry flag and a
chained cause, so callers can decide whether to try again without parsing
messages.

Manifesto:
    - **Typed hierarchy:** store faults, malformed records and invalid input
      are different types, never one generic ``Exception``
    - **Explicit retry semantics:** a :class:`StoreError` is retryable by the
      caller; a :class:`DeserializationError` is not
    - **No internal retries:** this package reports, the caller decides
    - **Error chaining:** the underlying ``redis`` exception is kept as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       JobSpineError                          │
        │          (category, retryable, context, cause)               │
        ├──────────────────────────────────────────────────────────────┤
        │  TransientError        ParseError           ValidationError  │
        │  (retryable=True)      (PARSE)              (VALIDATION)     │
        │       │                    │                                 │
        │  StoreError          SerializationError                     │
        │                      DeserializationError                    │
        │                                                              │
        │  OrchestrationError    JobNotFoundError     CronJobNotFound  │
        │  (ORCHESTRATION)       (NOT_FOUND)          (NOT_FOUND)      │
        │       │                                                      │
        │  ScheduleError                                               │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = StoreError("connection refused")
    >>> error.retryable
    True
    >>> error.with_context(key="jobs:queue:default/queue:high").context.key
    'jobs:queue:default/queue:high'

Tags:
    error-handling, exception-hierarchy, retry-logic, jobspine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and alert routing."""

    STORE = "STORE"  # Redis connectivity, protocol errors
    PARSE = "PARSE"  # (De)serialization of stored records
    VALIDATION = "VALIDATION"  # Bad input, invalid cron expressions
    ORCHESTRATION = "ORCHESTRATION"  # Scheduler state errors
    NOT_FOUND = "NOT_FOUND"  # Unknown job / cron id
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Typed fields cover what the queue and scheduler know at the failure
    site; anything else goes into ``metadata``.
    """

    queue: str | None = None
    job_id: str | None = None
    cron_id: str | None = None
    key: str | None = None
    operation: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["queue", "job_id", "cron_id", "key", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class JobSpineError(Exception):
    """
    Base exception for all jobspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only pass what differs from the default.

    Examples:
        >>> error = JobSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
        >>> error.to_dict()["error_type"]
        'JobSpineError'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StoreError("LPUSH failed", cause=exc).with_context(
                queue="default", job_id=job.id
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
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable by the caller)
# =============================================================================


class TransientError(JobSpineError):
    """Temporary error that may succeed if the caller tries again."""

    default_category = ErrorCategory.STORE
    default_retryable = True


class StoreError(TransientError):
    """The backing store could not be reached or rejected a command.

    Raised for every ``redis.exceptions.RedisError``; the original exception
    is chained as ``cause``.
    """

    default_category = ErrorCategory.STORE


# =============================================================================
# PARSE ERRORS
# =============================================================================


class ParseError(JobSpineError):
    """A stored record could not be converted to or from bytes."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class SerializationError(ParseError):
    """A job or cron record could not be serialized (e.g. payload is not JSON)."""


class DeserializationError(ParseError):
    """A stored record is malformed and cannot be loaded."""


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(JobSpineError):
    """
    Invalid input. Never retryable - the input must be fixed.
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


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(JobSpineError):
    """Scheduler state error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class ScheduleError(OrchestrationError):
    """The scheduler is disabled or refuses a schedule (e.g. capacity)."""


# =============================================================================
# NOT FOUND
# =============================================================================


class JobNotFoundError(JobSpineError):
    """Job not found in the queue namespace (never stored, or expired)."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}", context=ErrorContext(job_id=job_id))


class CronJobNotFoundError(JobSpineError):
    """Cron job not found in the scheduler index."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, cron_id: str):
        self.cron_id = cron_id
        super().__init__(f"Cron job not found: {cron_id}", context=ErrorContext(cron_id=cron_id))


__all__ = [
    "CronJobNotFoundError",
    "DeserializationError",
    "ErrorCategory",
    "ErrorContext",
    "JobNotFoundError",
    "JobSpineError",
    "OrchestrationError",
    "ParseError",
    "ScheduleError",
    "SerializationError",
    "StoreError",
    "TransientError",
    "ValidationError",
]
