"""
jobspine configuration.

Usage:
    from jobspine.core.config import get_settings, create_job_queue

    settings = get_settings()
    queue = create_job_queue(settings)
"""

from .factory import create_job_queue, create_redis_client, create_scheduler
from .settings import JobSpineSettings, clear_settings_cache, get_settings

__all__ = [
    "JobSpineSettings",
    "clear_settings_cache",
    "create_job_queue",
    "create_redis_client",
    "create_scheduler",
    "get_settings",
]
