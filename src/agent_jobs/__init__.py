"""Background job orchestration for CLI coding agents.

Jobs are started without blocking, run in background threads, persist their
state to JSON files, and are observed by polling:

    manager = JobManager(CliWorker(command_template=...))
    job_id = manager.start_loop(LoopOptions(task_file=Path("backlog.json")))
    status = manager.poll(job_id)
"""

from agent_jobs.backlog import Backlog, BacklogItem
from agent_jobs.cancellation import CancellationToken
from agent_jobs.errors import (
    AdmissionRejectedError,
    AgentJobsError,
    DuplicateJobError,
    JobNotFoundError,
    JobStateError,
    OutputValidationError,
    PersistenceError,
    TaskIncompleteError,
    WorkerProcessError,
    WorkerTimeoutError,
)
from agent_jobs.executors.models import (
    ErrorStrategy,
    ExecuteOptions,
    ExecuteResult,
    IterationOutcome,
    LoopOptions,
    LoopResult,
)
from agent_jobs.jobs.manager import JobManager
from agent_jobs.jobs.models import (
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
from agent_jobs.jobs.store import JobStore
from agent_jobs.progress_log import ProgressEntry, ProgressLog
from agent_jobs.worker import CliWorker, WorkerInvoker, WorkerRequest, WorkerResult

__version__ = "0.1.0"

__all__ = [
    "AdmissionRejectedError",
    "AgentJobsError",
    "Backlog",
    "BacklogItem",
    "CancellationToken",
    "CliWorker",
    "DuplicateJobError",
    "ErrorStrategy",
    "ExecuteOptions",
    "ExecuteResult",
    "IterationOutcome",
    "Job",
    "JobEvents",
    "JobManager",
    "JobNotFoundError",
    "JobProgress",
    "JobStateError",
    "JobStatus",
    "JobStore",
    "JobType",
    "LoopJob",
    "LoopOptions",
    "LoopResult",
    "OutputValidationError",
    "PersistenceError",
    "PollResult",
    "ProgressEntry",
    "ProgressLog",
    "SingleShotJob",
    "StartJobOptions",
    "TaskIncompleteError",
    "WorkerInvoker",
    "WorkerProcessError",
    "WorkerRequest",
    "WorkerResult",
    "WorkerTimeoutError",
    "__version__",
]
