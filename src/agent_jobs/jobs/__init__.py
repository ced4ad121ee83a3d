"""Background job lifecycle: models, persistent store, and manager."""

from agent_jobs.jobs.manager import JobManager
from agent_jobs.jobs.models import (
    TERMINAL_STATUSES,
    Job,
    JobEvents,
    JobProgress,
    JobStatus,
    JobType,
    LoopJob,
    PollResult,
    SingleShotJob,
    StartJobOptions,
)
from agent_jobs.jobs.store import RESTART_INTERRUPTED_ERROR, JobStore

__all__ = [
    "RESTART_INTERRUPTED_ERROR",
    "TERMINAL_STATUSES",
    "Job",
    "JobEvents",
    "JobManager",
    "JobProgress",
    "JobStatus",
    "JobStore",
    "JobType",
    "LoopJob",
    "PollResult",
    "SingleShotJob",
    "StartJobOptions",
]
