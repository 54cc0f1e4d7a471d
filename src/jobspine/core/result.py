"""
Result envelope for operations whose failure is an expected outcome.

``dequeue`` has three outcomes a worker must tell apart: a job was claimed,
the queue is empty, or the store is broken. Returning ``None`` for both of the
last two hides outages behind idle workers, so ``dequeue`` returns a
``Result[Job | None]`` instead::

    Ok(job)          claimed a job
    Ok(None)         every tier was empty
    Err(StoreError)  the store failed; the job stays on its ready list

Examples:
    >>> from jobspine.core.result import Ok, Err
    >>> match queue.dequeue():
    ...     case Ok(None):
    ...         idle()
    ...     case Ok(job):
    ...         run(job)
    ...     case Err(error):
    ...         back_off(error)

Tags:
    result-pattern, error-handling, jobspine
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value (which may itself be ``None``)."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result containing the exception that caused it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


__all__ = ["Err", "Ok", "Result"]
