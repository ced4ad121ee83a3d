"""CLI entrypoint for agent-jobs."""

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

import rich_click as click
from rich.console import Console
from rich.logging import RichHandler

from agent_jobs import __version__
from agent_jobs.controllers import (
    BacklogCommand,
    JobMutateCommand,
    JobRunFailedError,
    JobsCleanupCommand,
    JobsCliController,
    JobsListCommand,
    LoopCommand,
    RunCommand,
)
from agent_jobs.errors import AgentJobsError
from agent_jobs.executors.models import LoopMode
from agent_jobs.jobs.models import JobStatus

click.rich_click.USE_MARKDOWN = True
JOBS_CONTROLLER = JobsCliController()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="agent-jobs")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level for diagnostics written to stderr.",
)
def agent_jobs(log_level: str) -> None:
    """Background jobs for CLI coding agents."""

    _configure_logging(log_level)


@agent_jobs.command("run")
@click.option("--prompt", required=True, help="Task prompt passed to the worker.")
@click.option("--store-dir", type=click.Path(path_type=Path), default=None, help="Job store dir.")
@click.option("--job-id", default=None, help="Explicit job id; a uuid is generated otherwise.")
@click.option("--model", default=None, help="Model override for the worker.")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Worker timeout; defaults to AGENT_JOBS_TIMEOUT_SECONDS.",
)
def run(
    prompt: str,
    store_dir: Path | None,
    job_id: str | None,
    model: str | None,
    timeout_seconds: float | None,
) -> None:
    """Run one prompt as a single-shot job and wait for the result."""

    _run_foreground(
        JOBS_CONTROLLER.run(
            RunCommand(
                store_dir=store_dir,
                prompt=prompt,
                job_id=job_id,
                model=model,
                timeout_seconds=timeout_seconds,
            ),
        ),
    )


@agent_jobs.command("loop")
@click.option(
    "--task-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="Backlog JSON file.",
)
@click.option(
    "--progress-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Markdown progress log; truncated at loop start.",
)
@click.option(
    "--max-iterations",
    type=click.IntRange(min=1),
    default=100,
    show_default=True,
    help="Upper bound on worker dispatches.",
)
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in LoopMode], case_sensitive=False),
    default=LoopMode.CODE.value,
    show_default=True,
    help="Prompt framing for backlog items.",
)
@click.option(
    "--fail-fast/--continue-on-error",
    default=False,
    show_default=True,
    help="Stop at the first failed iteration.",
)
@click.option("--store-dir", type=click.Path(path_type=Path), default=None, help="Job store dir.")
@click.option("--job-id", default=None, help="Explicit job id; a uuid is generated otherwise.")
@click.option("--model", default=None, help="Model override for the worker.")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-iteration worker timeout.",
)
def loop(  # noqa: PLR0913
    task_file: Path,
    progress_file: Path | None,
    max_iterations: int,
    mode: str,
    fail_fast: bool,
    store_dir: Path | None,
    job_id: str | None,
    model: str | None,
    timeout_seconds: float | None,
) -> None:
    """Work through a backlog file one item per iteration."""

    _run_foreground(
        JOBS_CONTROLLER.run_loop(
            LoopCommand(
                store_dir=store_dir,
                task_file=task_file,
                progress_file=progress_file,
                max_iterations=max_iterations,
                mode=mode.lower(),
                fail_fast=fail_fast,
                job_id=job_id,
                model=model,
                timeout_seconds=timeout_seconds,
            ),
        ),
    )


@agent_jobs.group()
def jobs() -> None:
    """Persisted job store commands."""


@jobs.command("list")
@click.option("--store-dir", type=click.Path(path_type=Path), default=None, help="Job store dir.")
@click.option(
    "--status",
    type=click.Choice([status.value for status in JobStatus], case_sensitive=False),
    default=None,
    help="Only jobs in this status.",
)
def jobs_list(store_dir: Path | None, status: str | None) -> None:
    """List persisted jobs, oldest first."""

    _emit_lines(
        JOBS_CONTROLLER.list_jobs(
            JobsListCommand(store_dir=store_dir, status=status.lower() if status else None),
        ),
    )


@jobs.command("show")
@click.argument("job_id")
@click.option("--store-dir", type=click.Path(path_type=Path), default=None, help="Job store dir.")
def jobs_show(job_id: str, store_dir: Path | None) -> None:
    """Show one job with its progress and iteration history."""

    _emit_lines(JOBS_CONTROLLER.show_job(JobMutateCommand(store_dir=store_dir, job_id=job_id)))


@jobs.command("delete")
@click.argument("job_id")
@click.option("--store-dir", type=click.Path(path_type=Path), default=None, help="Job store dir.")
def jobs_delete(job_id: str, store_dir: Path | None) -> None:
    """Delete a finished job."""

    _emit_lines(JOBS_CONTROLLER.delete_job(JobMutateCommand(store_dir=store_dir, job_id=job_id)))


@jobs.command("cleanup")
@click.option("--store-dir", type=click.Path(path_type=Path), default=None, help="Job store dir.")
def jobs_cleanup(store_dir: Path | None) -> None:
    """Remove finished jobs older than AGENT_JOBS_MAX_JOB_AGE_SECONDS."""

    _emit_lines(JOBS_CONTROLLER.cleanup(JobsCleanupCommand(store_dir=store_dir)))


@agent_jobs.group()
def backlog() -> None:
    """Backlog file inspection."""


@backlog.command("next")
@click.option(
    "--task-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="Backlog JSON file.",
)
def backlog_next(task_file: Path) -> None:
    """Show the item the loop would pick next."""

    _emit_lines(_load_backlog_lines(JOBS_CONTROLLER.backlog_next, task_file))


@backlog.command("status")
@click.option(
    "--task-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="Backlog JSON file.",
)
def backlog_status(task_file: Path) -> None:
    """Show completion status of every backlog item."""

    _emit_lines(_load_backlog_lines(JOBS_CONTROLLER.backlog_status, task_file))


def _load_backlog_lines(
    handler: Callable[[BacklogCommand], list[str]],
    task_file: Path,
) -> list[str]:
    try:
        return handler(BacklogCommand(task_file=task_file))
    except (OSError, TypeError, ValueError) as error:
        raise click.ClickException(f"Invalid backlog file {task_file}: {error}") from error


def _run_foreground(lines: Iterable[str]) -> None:
    try:
        _emit_lines(lines)
    except (JobRunFailedError, AgentJobsError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _configure_logging(log_level: str) -> None:
    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    root.addHandler(handler)
    root.setLevel(log_level.upper())


def _emit_lines(lines: Iterable[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_jobs()
