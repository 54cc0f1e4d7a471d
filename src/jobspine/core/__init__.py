"""Core building blocks shared by the queue, the scheduler and the CLI."""

from jobspine.core.errors import (
    CronJobNotFoundError,
    DeserializationError,
    ErrorCategory,
    JobNotFoundError,
    JobSpineError,
    ScheduleError,
    SerializationError,
    StoreError,
    ValidationError,
)
from jobspine.core.result import Err, Ok, Result

__all__ = [
    "CronJobNotFoundError",
    "DeserializationError",
    "Err",
    "ErrorCategory",
    "JobNotFoundError",
    "JobSpineError",
    "Ok",
    "Result",
    "ScheduleError",
    "SerializationError",
    "StoreError",
    "ValidationError",
]
