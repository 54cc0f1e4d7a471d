"""jobspine - Redis-backed priority job queue and cron scheduler."""

__version__ = "0.1.0"
