"""Background scheduling of the review sync jobs."""

from localdirectory.scheduler.jobs import SyncScheduler

__all__ = ["SyncScheduler"]
