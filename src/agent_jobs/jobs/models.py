"""Domain models for background jobs and their lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from agent_jobs.clock import utc_now
from agent_jobs.executors.models import (
    ExecuteOptions,
    ExecuteResult,
    IterationOutcome,
    LoopOptions,
    LoopResult,
)


class JobStatus(str, Enum):
    """Job lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class JobType(str, Enum):
    """Execution strategy used for a job."""

    SINGLE_SHOT = "single-shot"
    LOOP = "loop"


@dataclass(slots=True)
class JobProgress:
    """Progress snapshot updated as execution proceeds."""

    current_iteration: int = 0
    total_iterations: int | None = None
    current_task_id: str | None = None
    tasks_completed: int = 0
    tasks_total: int = 0
    last_update: datetime = field(default_factory=utc_now)
    message: str | None = None


@dataclass(slots=True, kw_only=True)
class JobBase:
    """Fields shared by every job variant; store operations use only these."""

    id: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    progress: JobProgress | None = None

    type: ClassVar[JobType]

    @property
    def finished(self) -> bool:
        return self.status.is_terminal


@dataclass(slots=True, kw_only=True)
class SingleShotJob(JobBase):
    """Job wrapping a single worker dispatch.

    ``options`` and ``result`` are plain dicts when the job was recovered
    from a persisted file.
    """

    options: ExecuteOptions | dict[str, Any]
    result: ExecuteResult | dict[str, Any] | None = None

    type: ClassVar[JobType] = JobType.SINGLE_SHOT


@dataclass(slots=True, kw_only=True)
class LoopJob(JobBase):
    """Job wrapping a full loop run over a backlog."""

    options: LoopOptions | dict[str, Any]
    result: LoopResult | dict[str, Any] | None = None
    iterations: list[IterationOutcome] = field(default_factory=list)

    type: ClassVar[JobType] = JobType.LOOP


Job = SingleShotJob | LoopJob


@dataclass(slots=True, frozen=True)
class PollResult:
    """Read-only status snapshot returned by polling."""

    id: str
    status: JobStatus
    finished: bool
    progress: JobProgress | None = None
    result: Any = None
    error: str | None = None
    duration_ms: int | None = None


@dataclass(slots=True)
class StartJobOptions:
    """Options for starting a job."""

    job_id: str | None = None


@dataclass(slots=True)
class JobEvents:
    """Lifecycle hooks; each is best-effort and may be left unset."""

    on_job_started: Callable[[Job], None] | None = None
    on_job_progress: Callable[[Job, JobProgress], None] | None = None
    on_job_completed: Callable[[Job], None] | None = None
    on_job_failed: Callable[[Job, BaseException | None], None] | None = None
    on_job_cancelled: Callable[[Job], None] | None = None
