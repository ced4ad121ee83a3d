"""Job manager: launches background jobs and exposes poll/cancel/wait."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import fields, replace
from pathlib import Path
from typing import Any
from uuid import uuid4

from agent_jobs.cancellation import CancellationToken
from agent_jobs.clock import utc_now
from agent_jobs.config import Settings
from agent_jobs.errors import (
    AdmissionRejectedError,
    DuplicateJobError,
    JobNotFoundError,
    JobStateError,
)
from agent_jobs.executors.loop import LoopExecutor
from agent_jobs.executors.models import ExecuteOptions, IterationOutcome, LoopOptions
from agent_jobs.executors.single_shot import SingleShotExecutor
from agent_jobs.jobs.models import (
    Job,
    JobEvents,
    JobProgress,
    JobStatus,
    LoopJob,
    PollResult,
    SingleShotJob,
    StartJobOptions,
)
from agent_jobs.jobs.store import JobStore
from agent_jobs.worker.base import WorkerInvoker

logger = logging.getLogger(__name__)


class JobManager:
    """Creates jobs, runs each one on its own daemon thread, answers polls.

    The manager never mutates a job record itself: every status, progress,
    result and iteration change goes through the store.
    """

    def __init__(
        self,
        invoker: WorkerInvoker,
        *,
        settings: Settings | None = None,
        store: JobStore | None = None,
        workdir_root: Path | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store or JobStore(self.settings.store)
        self._single_shot = SingleShotExecutor(
            invoker=invoker,
            workdir_root=workdir_root or self.settings.worker.workdir_root,
            default_timeout_seconds=self.settings.worker.timeout_seconds,
        )
        self._loop = LoopExecutor(self._single_shot)
        self._events = JobEvents()
        self._lock = threading.Lock()
        # Held from the capacity check until the new job's thread is registered.
        self._admission_lock = threading.Lock()
        self._initialized = False
        self._threads: dict[str, threading.Thread] = {}
        self._tokens: dict[str, CancellationToken] = {}

    def initialize(self) -> None:
        with self._lock:
            if self._initialized:
                return
            self._initialized = True
        self.store.initialize()

    def set_event_handlers(self, events: JobEvents) -> None:
        for item in fields(JobEvents):
            handler = getattr(events, item.name)
            if handler is not None:
                setattr(self._events, item.name, handler)

    def start_single_shot(
        self,
        options: ExecuteOptions,
        start_options: StartJobOptions | None = None,
    ) -> str:
        """Persist a pending single-shot job and launch it; returns the job id."""

        self.initialize()
        with self._admission_lock:
            job_id = self._admit(start_options)
            job = SingleShotJob(
                id=job_id,
                options=options,
                progress=JobProgress(tasks_total=1, message="Job created"),
            )
            self.store.save(job)
            self._launch(job_id, self._run_single_shot, options)
        return job_id

    def start_loop(
        self,
        options: LoopOptions,
        start_options: StartJobOptions | None = None,
    ) -> str:
        """Persist a pending loop job and launch it; returns the job id."""

        self.initialize()
        token = options.cancel_token or CancellationToken()
        options = replace(options, cancel_token=token)
        with self._admission_lock:
            job_id = self._admit(start_options)
            job = LoopJob(
                id=job_id,
                options=options,
                progress=JobProgress(
                    total_iterations=options.max_iterations,
                    tasks_total=0,
                    message="Job created",
                ),
            )
            self.store.save(job)
            with self._lock:
                self._tokens[job_id] = token
            self._launch(job_id, self._run_loop, options)
        return job_id

    def poll(self, job_id: str) -> PollResult:
        """Read-only snapshot of a job; never raises because the job failed."""

        self.initialize()
        job = self._require(job_id)
        finished = job.status.is_terminal
        duration_ms = None
        if finished and job.started_at is not None and job.completed_at is not None:
            duration_ms = int((job.completed_at - job.started_at).total_seconds() * 1000)
        return PollResult(
            id=job.id,
            status=job.status,
            finished=finished,
            progress=replace(job.progress) if job.progress is not None else None,
            result=job.result if finished else None,
            error=job.error if job.status == JobStatus.FAILED else None,
            duration_ms=duration_ms,
        )

    def wait_for_completion(
        self,
        job_id: str,
        poll_interval_seconds: float = 1.0,
        timeout_seconds: float | None = None,
    ) -> PollResult:
        deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds
        while True:
            snapshot = self.poll(job_id)
            if snapshot.finished:
                return snapshot
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"Job {job_id} did not finish within {timeout_seconds}s")
            time.sleep(poll_interval_seconds)

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending or running job; False when it already finished."""

        self.initialize()
        job = self._require(job_id)
        if job.status.is_terminal:
            return False
        if not self.store.update_status(job_id, JobStatus.CANCELLED):
            return False
        with self._lock:
            token = self._tokens.get(job_id)
        if token is not None:
            token.cancel()
        self.store.update_progress(job_id, message="Job cancelled")
        logger.info("Job %s cancelled", job_id)
        self._fire("on_job_cancelled", self.store.get(job_id))
        return True

    def get_job(self, job_id: str) -> Job | None:
        self.initialize()
        return self.store.get(job_id)

    def get_all_jobs(
        self,
        status: JobStatus | str | Iterable[JobStatus | str] | None = None,
    ) -> list[Job]:
        self.initialize()
        return sorted(self.store.get_all(status), key=lambda job: job.created_at)

    def delete_job(self, job_id: str) -> None:
        """Delete a finished job; running or pending jobs must be cancelled first."""

        self.initialize()
        job = self._require(job_id)
        if not job.status.is_terminal:
            raise JobStateError(
                f"Cannot delete job {job_id} while it is {job.status.value}",
                details={"job_id": job_id, "status": job.status.value},
            )
        self.store.delete(job_id)

    def cleanup(self) -> int:
        self.initialize()
        return self.store.cleanup()

    def get_running_count(self) -> int:
        self.initialize()
        return self.store.count(JobStatus.RUNNING)

    def close(self) -> None:
        self.store.close()

    def _admit(self, start_options: StartJobOptions | None) -> str:
        job_id = (start_options.job_id if start_options else None) or str(uuid4())
        if self.store.has(job_id):
            raise DuplicateJobError(job_id)
        limit = self.settings.manager.max_concurrent_jobs
        if limit is not None and self._in_flight_count() >= limit:
            logger.warning("Rejecting job %s: %d jobs already in flight", job_id, limit)
            raise AdmissionRejectedError(limit)
        return job_id

    def _in_flight_count(self) -> int:
        with self._lock:
            launched = list(self._threads)
        count = 0
        for job_id in launched:
            job = self.store.get(job_id)
            if job is not None and not job.status.is_terminal:
                count += 1
        return count

    def _launch(self, job_id: str, target: Callable[[str, Any], None], options: Any) -> None:
        thread = threading.Thread(
            target=self._run_guarded,
            args=(job_id, target, options),
            daemon=True,
            name=f"job-{job_id[:8]}",
        )
        with self._lock:
            self._threads[job_id] = thread
        thread.start()
        logger.info("Job %s launched on thread %s", job_id, thread.name)

    def _run_guarded(self, job_id: str, target: Callable[[str, Any], None], options: Any) -> None:
        try:
            target(job_id, options)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Job %s crashed", job_id)
            self._finish_failed(job_id, str(exc), exc)
        finally:
            with self._lock:
                self._threads.pop(job_id, None)
                self._tokens.pop(job_id, None)

    def _run_single_shot(self, job_id: str, options: ExecuteOptions) -> None:
        if not self.store.update_status(job_id, JobStatus.RUNNING):
            logger.info("Job %s finished before it started; skipping", job_id)
            return
        self.store.update_progress(job_id, message="Running worker")
        self._fire("on_job_started", self.store.get(job_id))

        result = self._single_shot.execute(options)
        self.store.update_result(job_id, result)
        self.store.update_progress(
            job_id,
            tasks_completed=1,
            message="Worker finished" if result.success else "Worker failed",
        )
        if result.success:
            self._finish_completed(job_id)
        else:
            self._finish_failed(job_id, result.error or "Task failed", None)

    def _run_loop(self, job_id: str, options: LoopOptions) -> None:
        if not self.store.update_status(job_id, JobStatus.RUNNING):
            logger.info("Job %s finished before it started; skipping", job_id)
            return
        self.store.update_progress(job_id, message="Running loop")
        self._fire("on_job_started", self.store.get(job_id))

        user_hook = options.on_iteration

        def on_iteration(outcome: IterationOutcome) -> None:
            self.store.append_iteration(job_id, outcome)
            progress = self.store.update_progress(
                job_id,
                current_iteration=outcome.iteration,
                current_task_id=outcome.task_id,
            )
            if user_hook is not None:
                try:
                    user_hook(outcome)
                except Exception:
                    logger.exception("Iteration callback failed for job %s", job_id)
            self._fire("on_job_progress", self.store.get(job_id), progress)

        def on_progress(**partial: Any) -> None:
            self.store.update_progress(job_id, **partial)

        result = self._loop.execute(
            replace(options, on_iteration=on_iteration),
            on_progress=on_progress,
        )
        self.store.update_result(job_id, result)
        self.store.update_progress(
            job_id,
            tasks_completed=result.final_state.tasks_completed,
            tasks_total=result.final_state.tasks_total,
            message="Loop finished" if result.success else "Loop stopped",
        )
        if result.success:
            self._finish_completed(job_id)
        else:
            self._finish_failed(job_id, result.error or "Loop failed", None)

    def _finish_completed(self, job_id: str) -> None:
        if self.store.update_status(job_id, JobStatus.COMPLETED):
            logger.info("Job %s completed", job_id)
            self._fire("on_job_completed", self.store.get(job_id))

    def _finish_failed(self, job_id: str, error: str, exc: BaseException | None) -> None:
        if not self.store.has(job_id):
            return
        if self.store.update_status(job_id, JobStatus.FAILED, error=error):
            logger.warning("Job %s failed: %s", job_id, error)
            self._fire("on_job_failed", self.store.get(job_id), exc)

    def _fire(self, name: str, *args: Any) -> None:
        handler = getattr(self._events, name)
        if handler is None or args[0] is None:
            return
        try:
            handler(*args)
        except Exception:
            logger.exception("Job event handler %s failed", name)

    def _require(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job


def elapsed_ms(job: Job) -> int | None:
    """Milliseconds since the job started, up to completion when finished."""

    if job.started_at is None:
        return None
    end = job.completed_at or utc_now()
    return int((end - job.started_at).total_seconds() * 1000)
