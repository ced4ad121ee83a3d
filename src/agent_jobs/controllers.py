"""Controllers for agent-jobs CLI commands."""

from __future__ import annotations

import json
import queue
import time
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_jobs.backlog import Backlog
from agent_jobs.config import Settings
from agent_jobs.errors import JobNotFoundError, JobStateError
from agent_jobs.executors.models import (
    ErrorStrategy,
    ErrorStrategyMode,
    ExecuteOptions,
    IterationOutcome,
    LoopMode,
    LoopOptions,
)
from agent_jobs.jobs.manager import JobManager, elapsed_ms
from agent_jobs.jobs.models import Job, JobStatus, LoopJob, PollResult, StartJobOptions
from agent_jobs.worker.cli_worker import CliWorker


class JobRunFailedError(RuntimeError):
    """Raised after a foreground job ends in a status other than completed."""


@dataclass(slots=True)
class RunCommand:
    """CLI input for a single-shot job."""

    store_dir: Path | None
    prompt: str
    job_id: str | None = None
    model: str | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class LoopCommand:
    """CLI input for a loop job over a backlog file."""

    store_dir: Path | None
    task_file: Path
    progress_file: Path | None = None
    max_iterations: int = 100
    mode: str = LoopMode.CODE.value
    fail_fast: bool = False
    job_id: str | None = None
    model: str | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class JobsListCommand:
    """CLI input for job listing."""

    store_dir: Path | None
    status: str | None = None


@dataclass(slots=True)
class JobMutateCommand:
    """CLI input for show/delete operations on one job."""

    store_dir: Path | None
    job_id: str


@dataclass(slots=True)
class JobsCleanupCommand:
    """CLI input for expired-job cleanup."""

    store_dir: Path | None


@dataclass(slots=True)
class BacklogCommand:
    """CLI input for backlog inspection."""

    task_file: Path


class JobsCliController:
    """Runs jobs in the foreground and inspects the persisted job store."""

    def run(self, command: RunCommand) -> Iterator[str]:
        settings = _settings(command.store_dir)
        with _manager(settings) as manager:
            job_id = manager.start_single_shot(
                ExecuteOptions(
                    prompt=command.prompt,
                    timeout_seconds=command.timeout_seconds,
                    model=command.model,
                ),
                StartJobOptions(job_id=command.job_id),
            )
            yield f"Job started: job_id={job_id} type=single-shot"
            snapshot = yield from _follow(manager, job_id, settings=settings)

        yield from _render_finished(snapshot)
        result = snapshot.result
        if result is not None:
            yield f"Output dir: {_field(result, 'output_dir') or '-'}"
            data = _field(result, "data")
            if data is not None:
                yield f"Data: {json.dumps(data, ensure_ascii=False, sort_keys=True)}"
        if snapshot.status != JobStatus.COMPLETED:
            raise JobRunFailedError(f"Job {job_id} finished with status {snapshot.status.value}")

    def run_loop(self, command: LoopCommand) -> Iterator[str]:
        settings = _settings(command.store_dir)
        lines: queue.Queue[str] = queue.Queue()

        def on_iteration(outcome: IterationOutcome) -> None:
            lines.put(_format_iteration(outcome))

        with _manager(settings) as manager:
            job_id = manager.start_loop(
                LoopOptions(
                    task_file=command.task_file,
                    max_iterations=command.max_iterations,
                    mode=LoopMode(command.mode),
                    progress_file=command.progress_file,
                    on_iteration=on_iteration,
                    error_strategy=(
                        ErrorStrategy(mode=ErrorStrategyMode.FAIL_FAST)
                        if command.fail_fast
                        else None
                    ),
                    timeout_seconds=command.timeout_seconds,
                    model=command.model,
                ),
                StartJobOptions(job_id=command.job_id),
            )
            yield f"Job started: job_id={job_id} type=loop task_file={command.task_file}"
            snapshot = yield from _follow(manager, job_id, settings=settings, lines=lines)

        yield from _render_finished(snapshot)
        result = snapshot.result
        if result is not None:
            yield (
                f"Loop result: completed={_field(result, 'completed')} "
                f"iterations={len(_field(result, 'iterations') or [])} "
                f"total_duration_ms={_field(result, 'total_duration_ms')}"
            )
        if snapshot.status != JobStatus.COMPLETED:
            raise JobRunFailedError(f"Job {job_id} finished with status {snapshot.status.value}")

    def list_jobs(self, command: JobsListCommand) -> list[str]:
        settings = _settings(command.store_dir)
        with _manager(settings) as manager:
            jobs = manager.get_all_jobs(JobStatus(command.status) if command.status else None)

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.id} type={job.type.value} status={job.status.value} "
                f"created_at={job.created_at.isoformat()} progress={_progress_text(job)}",
            )
        return lines

    def show_job(self, command: JobMutateCommand) -> list[str]:
        settings = _settings(command.store_dir)
        with _manager(settings) as manager:
            job = manager.get_job(command.job_id)
        if job is None:
            return [f"Job not found: {command.job_id}"]

        duration = elapsed_ms(job)
        lines = [
            f"Job: {job.id}",
            f"Type: {job.type.value}",
            f"Status: {job.status.value}",
            f"Created: {job.created_at.isoformat()}",
            f"Started: {job.started_at.isoformat() if job.started_at else '-'}",
            f"Completed: {job.completed_at.isoformat() if job.completed_at else '-'}",
            f"Duration ms: {duration if duration is not None else '-'}",
            f"Error: {job.error or '-'}",
            f"Progress: {_progress_text(job)}",
        ]
        if job.progress is not None and job.progress.message:
            lines.append(f"Message: {job.progress.message}")
        if isinstance(job, LoopJob):
            lines.append(f"Iterations: {len(job.iterations)}")
            lines.extend(f"  {_format_iteration(outcome)}" for outcome in job.iterations)
        return lines

    def delete_job(self, command: JobMutateCommand) -> list[str]:
        settings = _settings(command.store_dir)
        with _manager(settings) as manager:
            try:
                manager.delete_job(command.job_id)
            except JobNotFoundError:
                return [f"Job not found: {command.job_id}"]
            except JobStateError as error:
                return [f"Job not deleted: {error}"]
        return [f"Job deleted: {command.job_id}"]

    def cleanup(self, command: JobsCleanupCommand) -> list[str]:
        settings = _settings(command.store_dir)
        with _manager(settings) as manager:
            removed = manager.cleanup()
        return [
            f"Expired jobs removed: {removed} "
            f"(max_age_seconds={settings.store.max_job_age_seconds:g})",
        ]

    def backlog_next(self, command: BacklogCommand) -> list[str]:
        backlog = Backlog.load(command.task_file)
        item = backlog.next_item()
        if item is None:
            return ["Backlog complete: no remaining items"]
        lines = [
            f"Next item: {item.id} priority={item.priority} "
            f"complexity={item.estimated_complexity}",
            f"Title: {item.title}",
        ]
        if item.description:
            lines.append(f"Description: {item.description}")
        lines.extend(f"  - {criterion}" for criterion in item.acceptance_criteria)
        return lines

    def backlog_status(self, command: BacklogCommand) -> list[str]:
        backlog = Backlog.load(command.task_file)
        completed, total = backlog.progress()
        lines = [
            f"Project: {backlog.project}",
            f"Branch: {backlog.branch_name or '-'}",
            f"Progress: {completed}/{total}",
        ]
        for item in sorted(backlog.items, key=lambda entry: entry.priority):
            mark = "x" if item.passes else " "
            lines.append(f"  [{mark}] {item.id} priority={item.priority} {item.title}")
        return lines


def _settings(store_dir: Path | None) -> Settings:
    settings = Settings.from_env(store_dir=store_dir)
    settings.store.persist_to_file = True
    settings.store.cleanup_interval_seconds = 0
    settings.validate()
    return settings


@contextmanager
def _manager(settings: Settings) -> Iterator[JobManager]:
    worker = CliWorker(
        command_template=settings.worker.command_template,
        default_model=settings.worker.model,
        default_permission_mode=settings.worker.permission_mode,
        graceful_shutdown_seconds=settings.worker.graceful_shutdown_seconds,
    )
    manager = JobManager(worker, settings=settings)
    manager.initialize()
    try:
        yield manager
    finally:
        manager.close()


def _follow(
    manager: JobManager,
    job_id: str,
    *,
    settings: Settings,
    lines: queue.Queue[str] | None = None,
) -> Generator[str, None, PollResult]:
    """Yield progress lines until the job finishes; returns the final poll."""

    last_message = None
    while True:
        snapshot = manager.poll(job_id)
        if lines is not None:
            yield from _drain(lines)
        message = snapshot.progress.message if snapshot.progress else None
        if message and message != last_message:
            last_message = message
            yield f"Progress: {message}"
        if snapshot.finished:
            return snapshot
        time.sleep(settings.manager.poll_interval_seconds)


def _drain(lines: queue.Queue[str]) -> Iterator[str]:
    while True:
        try:
            yield lines.get_nowait()
        except queue.Empty:
            return


def _render_finished(snapshot: PollResult) -> Iterator[str]:
    duration = snapshot.duration_ms if snapshot.duration_ms is not None else "-"
    yield f"Job finished: status={snapshot.status.value} duration_ms={duration}"
    if snapshot.error:
        yield f"Error: {snapshot.error}"


def _format_iteration(outcome: IterationOutcome) -> str:
    if outcome.passed:
        verdict = "passed"
    elif outcome.success:
        verdict = "not-passed"
    else:
        verdict = "failed"
    line = (
        f"Iteration {outcome.iteration}: task={outcome.task_id} {verdict} "
        f"duration_ms={outcome.duration_ms}"
    )
    if outcome.error:
        line += f" error={outcome.error}"
    return line


def _progress_text(job: Job) -> str:
    if job.progress is None:
        return "-"
    return f"{job.progress.tasks_completed}/{job.progress.tasks_total}"


def _field(result: Any, name: str) -> Any:
    if isinstance(result, dict):
        return result.get(name)
    return getattr(result, name, None)
