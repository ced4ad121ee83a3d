"""Single-shot execution: one prompt, one worker run, one validated result."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

from agent_jobs.contracts import TaskInstructions
from agent_jobs.errors import (
    AgentJobsError,
    OutputValidationError,
    PersistenceError,
    WorkerProcessError,
)
from agent_jobs.executors.models import ExecuteOptions, ExecuteResult
from agent_jobs.schema import describe_schema, validate_payload
from agent_jobs.worker.base import WorkerInvoker, WorkerRequest
from agent_jobs.worker.workdir import TaskWorkdirManager

logger = logging.getLogger(__name__)


class SingleShotExecutor:
    """Materializes a task workdir, invokes the worker, validates its output.

    Worker failures never escape ``execute``; they are reported through
    ``ExecuteResult.error`` and ``ExecuteResult.error_code``.
    """

    def __init__(
        self,
        *,
        invoker: WorkerInvoker,
        workdir_root: Path,
        default_timeout_seconds: float = 600.0,
    ) -> None:
        self.invoker = invoker
        self.workdirs = TaskWorkdirManager(workdir_root)
        self.default_timeout_seconds = default_timeout_seconds

    def execute(self, options: ExecuteOptions) -> ExecuteResult:
        started = time.monotonic()
        output_schema = describe_schema(options.schema)
        try:
            workdir = self.workdirs.materialize(
                instructions=TaskInstructions(prompt=options.prompt, variables=options.variables),
                output_schema=output_schema,
            )
        except OSError as error:
            failure = PersistenceError(f"Failed to prepare task directory: {error}")
            return _failed(failure, output_dir="", started=started)

        try:
            result = self.invoker.invoke(
                WorkerRequest(
                    prompt=_render_prompt(options),
                    workdir=workdir.root,
                    timeout_seconds=options.timeout_seconds or self.default_timeout_seconds,
                    output_schema=output_schema,
                    env=dict(options.env),
                    model=options.model,
                    permission_mode=options.permission_mode,
                    cancel_token=options.cancel_token,
                ),
            )
        except AgentJobsError as error:
            logger.warning("Worker failed for %s: %s", workdir.root, error)
            return _failed(error, output_dir=str(workdir.root), started=started)
        except (OSError, ValueError) as error:
            logger.warning("Worker crashed for %s: %s", workdir.root, error)
            failure = WorkerProcessError(f"Worker failed: {error}", transient=False)
            return _failed(failure, output_dir=str(workdir.root), started=started)

        if options.on_output is not None and result.log_text:
            options.on_output(result.log_text)
        artifacts = self.workdirs.list_artifacts(workdir)
        if not result.success:
            failure = WorkerProcessError(
                f"Worker exited with code {result.exit_code}",
                exit_code=result.exit_code,
                transient=False,
            )
            return _failed(
                failure,
                output_dir=str(workdir.root),
                started=started,
                logs=result.log_text,
                artifacts=artifacts,
            )

        validation = validate_payload(result.payload, options.schema)
        if not validation.is_valid:
            failure = OutputValidationError(validation.error_summary or "Invalid worker output")
            return _failed(
                failure,
                output_dir=str(workdir.root),
                started=started,
                logs=result.log_text,
                artifacts=artifacts,
            )

        return ExecuteResult(
            success=True,
            output_dir=str(workdir.root),
            logs=result.log_text,
            duration_ms=_elapsed_ms(started),
            data=validation.data,
            artifacts=artifacts,
        )


def _render_prompt(options: ExecuteOptions) -> str:
    if not options.variables:
        return options.prompt
    rendered = json.dumps(options.variables, ensure_ascii=False, indent=2, default=str)
    return f"{options.prompt}\n\nVariables:\n{rendered}"


def _failed(  # noqa: PLR0913
    error: AgentJobsError,
    *,
    output_dir: str,
    started: float,
    logs: str = "",
    artifacts: list[str] | None = None,
) -> ExecuteResult:
    return ExecuteResult(
        success=False,
        output_dir=output_dir,
        logs=logs,
        duration_ms=_elapsed_ms(started),
        error=str(error),
        error_code=error.code,
        artifacts=artifacts or [],
    )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
