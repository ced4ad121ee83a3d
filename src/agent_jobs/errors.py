"""Error taxonomy shared by executors, workers, and the job subsystem."""

from __future__ import annotations

from typing import Any


class AgentJobsError(RuntimeError):
    """Base error carrying a stable machine-readable code."""

    code = "error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class OutputValidationError(AgentJobsError):
    """Worker output did not match the expected output schema."""

    code = "validation"


class WorkerTimeoutError(AgentJobsError):
    """Worker process exceeded its time bound and was terminated."""

    code = "timeout"

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"Worker timed out after {timeout_seconds:g}s",
            details={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class WorkerProcessError(AgentJobsError):
    """Worker process could not be started or exited abnormally."""

    code = "process"

    def __init__(self, message: str, *, exit_code: int | None = None, transient: bool) -> None:
        super().__init__(message, details={"exit_code": exit_code, "transient": transient})
        self.exit_code = exit_code
        self.transient = transient


class TaskIncompleteError(AgentJobsError):
    """Loop stopped before every backlog item was completed."""

    code = "incomplete"

    def __init__(self, completed_tasks: int, total_tasks: int) -> None:
        super().__init__(
            f"Only {completed_tasks}/{total_tasks} tasks completed",
            details={"completed_tasks": completed_tasks, "total_tasks": total_tasks},
        )
        self.completed_tasks = completed_tasks
        self.total_tasks = total_tasks


class JobNotFoundError(AgentJobsError, KeyError):
    """Operation referenced a job id the store does not know."""

    code = "not-found"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}", details={"job_id": job_id})
        self.job_id = job_id

    def __str__(self) -> str:
        return str(self.args[0])


class AdmissionRejectedError(AgentJobsError):
    """Concurrency limit reached; the caller decides whether to retry."""

    code = "admission-rejected"

    def __init__(self, max_concurrent_jobs: int) -> None:
        super().__init__(
            f"Maximum concurrent jobs limit reached ({max_concurrent_jobs}). "
            "Wait for some jobs to complete or increase the limit.",
            details={"max_concurrent_jobs": max_concurrent_jobs},
        )
        self.max_concurrent_jobs = max_concurrent_jobs


class PersistenceError(AgentJobsError):
    """Job file could not be read or written."""

    code = "io"


class JobStateError(AgentJobsError):
    """Operation is not allowed in the job's current status."""

    code = "invalid-state"


class DuplicateJobError(AgentJobsError):
    """Caller-supplied job id is already in use."""

    code = "duplicate"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job already exists: {job_id}", details={"job_id": job_id})
        self.job_id = job_id
