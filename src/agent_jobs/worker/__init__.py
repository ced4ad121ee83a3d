"""Worker invoker implementations."""

from agent_jobs.worker.base import WorkerInvoker, WorkerRequest, WorkerResult
from agent_jobs.worker.cli_worker import CliWorker

__all__ = [
    "CliWorker",
    "WorkerInvoker",
    "WorkerRequest",
    "WorkerResult",
]
