"""Authoritative job storage with optional crash-resilient file persistence."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

from agent_jobs.clock import utc_now
from agent_jobs.config import StoreSettings
from agent_jobs.contracts import load_json, write_json_atomic
from agent_jobs.errors import JobNotFoundError
from agent_jobs.executors.models import IterationOutcome
from agent_jobs.jobs.models import Job, JobProgress, JobStatus, LoopJob
from agent_jobs.jobs.serialization import deserialize_job, serialize_job

logger = logging.getLogger(__name__)

RESTART_INTERRUPTED_ERROR = "Job was interrupted by process restart"

_PROGRESS_UPDATE_FIELDS = frozenset(
    item.name for item in fields(JobProgress) if item.name != "last_update"
)


class JobStore:
    """In-memory job records mirrored to one JSON file per job.

    Memory is the source of truth; file writes are best-effort and their
    failures are logged, never raised. Mutations of one job id are
    serialized by a per-job lock.
    """

    def __init__(self, settings: StoreSettings | None = None) -> None:
        self.settings = settings or StoreSettings()
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._job_locks: dict[str, threading.RLock] = {}
        self._cleanup_timer: _CleanupTimer | None = None
        if self.settings.cleanup_interval_seconds > 0:
            self._cleanup_timer = _CleanupTimer(
                callback=self.cleanup,
                interval_seconds=self.settings.cleanup_interval_seconds,
            )
            self._cleanup_timer.start()

    def initialize(self) -> None:
        """Load persisted jobs and reconcile the ones interrupted mid-flight."""

        if not self.settings.persist_to_file:
            return
        store_dir = self.settings.store_dir
        try:
            store_dir.mkdir(parents=True, exist_ok=True)
            paths = sorted(store_dir.glob("*.json"))
        except OSError as error:
            logger.warning("Job store %s unavailable, starting empty: %s", store_dir, error)
            return

        loaded = 0
        for path in paths:
            try:
                job = deserialize_job(load_json(path))
            except (OSError, ValueError, TypeError, KeyError) as error:
                logger.warning("Skipping unreadable job file %s: %s", path, error)
                continue

            if job.status == JobStatus.RUNNING:
                job.status = JobStatus.FAILED
                job.error = RESTART_INTERRUPTED_ERROR
                job.completed_at = utc_now()
                logger.warning("Job %s was running at shutdown; marked failed", job.id)
                self.save(job)
                loaded += 1
                continue

            if job.status.is_terminal and self._is_expired(job):
                self._unlink(path)
                continue

            with self._lock:
                self._jobs[job.id] = job
            loaded += 1
        logger.info("Loaded %d persisted jobs from %s", loaded, store_dir)

    def save(self, job: Job) -> None:
        with self._lock_for(job.id):
            with self._lock:
                self._jobs[job.id] = job
            self._persist(job)

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def get_all(
        self,
        status: JobStatus | str | Iterable[JobStatus | str] | None = None,
    ) -> list[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        if status is None:
            return jobs
        if isinstance(status, JobStatus | str):
            wanted = {JobStatus(status)}
        else:
            wanted = {JobStatus(entry) for entry in status}
        return [job for job in jobs if job.status in wanted]

    def has(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def count(self, status: JobStatus | str | None = None) -> int:
        return len(self.get_all(status))

    def update_status(self, job_id: str, status: JobStatus | str, error: str | None = None) -> bool:
        """Transition a job; returns False when the job is already terminal."""

        status = JobStatus(status)
        with self._lock_for(job_id):
            job = self._require(job_id)
            if job.status.is_terminal:
                logger.debug(
                    "Ignoring %s -> %s for terminal job %s",
                    job.status.value,
                    status.value,
                    job_id,
                )
                return False
            now = utc_now()
            job.status = status
            if status == JobStatus.RUNNING and job.started_at is None:
                job.started_at = now
            if status.is_terminal:
                job.completed_at = now
            if error is not None:
                job.error = error
            self._persist(job)
        return True

    def update_progress(self, job_id: str, **partial: Any) -> JobProgress:
        """Merge non-None progress fields onto the last known snapshot."""

        unknown = set(partial) - _PROGRESS_UPDATE_FIELDS
        if unknown:
            raise TypeError(f"Unknown progress fields: {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in partial.items() if value is not None}
        with self._lock_for(job_id):
            job = self._require(job_id)
            previous = job.progress or JobProgress()
            now = utc_now()
            progress = replace(previous, **changes, last_update=max(now, previous.last_update))
            job.progress = progress
            self._persist(job)
        return progress

    def update_result(self, job_id: str, result: Any) -> None:
        with self._lock_for(job_id):
            job = self._require(job_id)
            job.result = result
            self._persist(job)

    def append_iteration(self, job_id: str, outcome: IterationOutcome) -> None:
        with self._lock_for(job_id):
            job = self._require(job_id)
            if not isinstance(job, LoopJob):
                raise TypeError(f"Job {job_id} is not a loop job")
            job.iterations.append(outcome)
            self._persist(job)

    def delete(self, job_id: str) -> None:
        with self._lock_for(job_id):
            with self._lock:
                self._jobs.pop(job_id, None)
            if self.settings.persist_to_file:
                self._unlink(self._job_path(job_id))
        with self._lock:
            self._job_locks.pop(job_id, None)

    def cleanup(self) -> int:
        """Delete terminal jobs older than the configured max age."""

        with self._lock:
            expired = [
                job.id
                for job in self._jobs.values()
                if job.status.is_terminal and self._is_expired(job)
            ]
        for job_id in expired:
            self.delete(job_id)
        if expired:
            logger.info("Cleaned up %d expired jobs", len(expired))
        return len(expired)

    def close(self) -> None:
        if self._cleanup_timer is not None:
            self._cleanup_timer.stop()
            self._cleanup_timer = None

    def _require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _lock_for(self, job_id: str) -> threading.RLock:
        with self._lock:
            lock = self._job_locks.get(job_id)
            if lock is None:
                lock = threading.RLock()
                self._job_locks[job_id] = lock
            return lock

    def _is_expired(self, job: Job) -> bool:
        reference = job.completed_at or job.created_at
        age = (utc_now() - reference).total_seconds()
        return age > self.settings.max_job_age_seconds

    def _job_path(self, job_id: str) -> Path:
        return self.settings.store_dir / f"{job_id}.json"

    def _persist(self, job: Job) -> None:
        if not self.settings.persist_to_file:
            return
        try:
            write_json_atomic(self._job_path(job.id), serialize_job(job))
        except (OSError, TypeError, ValueError) as error:
            logger.warning("Failed to persist job %s: %s", job.id, error)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as error:
            logger.warning("Failed to delete job file %s: %s", path, error)


class _CleanupTimer:
    """Owned background thread that runs the cleanup sweep periodically."""

    def __init__(self, *, callback: Callable[[], int], interval_seconds: float) -> None:
        self._callback = callback
        self._interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="job-store-cleanup")

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)

    def _run(self) -> None:
        while not self._stop.wait(timeout=self._interval_seconds):
            try:
                self._callback()
            except Exception:
                logger.exception("Job cleanup sweep failed")
