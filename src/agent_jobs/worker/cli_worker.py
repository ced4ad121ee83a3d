"""Subprocess-based worker invoker for CLI agents."""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
import time
from pathlib import Path
from typing import IO

from agent_jobs.cancellation import CancellationToken
from agent_jobs.contracts import load_json, write_json
from agent_jobs.errors import WorkerProcessError, WorkerTimeoutError
from agent_jobs.worker.base import WorkerRequest, WorkerResult
from agent_jobs.worker.output_fallback import recover_payload_from_stdout
from agent_jobs.worker.workdir import TaskWorkdir

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TEMPLATE = (
    "claude -p --model {model} --permission-mode {permission_mode} -- {prompt}"
)
DEFAULT_PERMISSION_MODE = "bypassPermissions"
TIMEOUT_EXIT_CODE = 124

_SUPPORTED_PLACEHOLDERS = (
    "prompt",
    "prompt_file",
    "schema_file",
    "result_file",
    "model",
    "permission_mode",
)


class CliWorker:
    """Execute one task through a CLI agent rendered from a command template."""

    def __init__(
        self,
        *,
        command_template: str = DEFAULT_COMMAND_TEMPLATE,
        default_model: str = "sonnet",
        default_permission_mode: str = DEFAULT_PERMISSION_MODE,
        graceful_shutdown_seconds: float = 5.0,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.command_template = command_template
        self.default_model = default_model
        self.default_permission_mode = default_permission_mode
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self.poll_interval_seconds = poll_interval_seconds

    def invoke(self, request: WorkerRequest) -> WorkerResult:
        workdir = TaskWorkdir(root=request.workdir)
        workdir.root.mkdir(parents=True, exist_ok=True)
        if request.output_schema is not None and not workdir.schema_path.exists():
            write_json(workdir.schema_path, request.output_schema)

        enriched_prompt = build_enriched_prompt(
            base_prompt=request.prompt,
            result_path=workdir.result_path,
            output_schema=request.output_schema,
        )
        workdir.prompt_path.write_text(enriched_prompt, "utf-8")

        model = request.model or self.default_model
        permission_mode = request.permission_mode or self.default_permission_mode
        run_args = build_run_args(
            command_template=self.command_template,
            values={
                "prompt": enriched_prompt,
                "prompt_file": str(workdir.prompt_path),
                "schema_file": str(workdir.schema_path),
                "result_file": str(workdir.result_path),
                "model": model,
                "permission_mode": permission_mode,
            },
        )

        env = os.environ.copy()
        env.update(request.env)
        env["AGENT_JOBS_RESULT_FILE"] = str(workdir.result_path)
        env["AGENT_JOBS_MODEL"] = model

        started = time.monotonic()
        try:
            with (
                workdir.stdout_path.open("w", encoding="utf-8") as stdout_handle,
                workdir.stderr_path.open("w", encoding="utf-8") as stderr_handle,
            ):
                exit_code, timed_out, cancelled = self._run_subprocess(
                    run_args=run_args,
                    env=env,
                    cwd=workdir.root,
                    timeout_seconds=request.timeout_seconds,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                    cancel_token=request.cancel_token,
                )
        except FileNotFoundError as error:
            raise WorkerProcessError(
                f"Worker command not found: {run_args[0]}",
                transient=False,
            ) from error
        except OSError as error:
            raise WorkerProcessError(
                f"Worker failed to start: {error}",
                transient=True,
            ) from error
        duration_ms = int((time.monotonic() - started) * 1000)

        if timed_out:
            logger.warning(
                "Worker timed out after %ss in %s",
                request.timeout_seconds,
                workdir.root,
            )
            raise WorkerTimeoutError(request.timeout_seconds)
        if cancelled:
            raise WorkerProcessError(
                "Worker process was cancelled",
                exit_code=exit_code,
                transient=False,
            )

        stdout_text = _read_text(workdir.stdout_path)
        stderr_text = _read_text(workdir.stderr_path)
        payload = _read_payload(workdir.result_path, stdout_text)
        logger.debug("Worker exited with %s after %dms", exit_code, duration_ms)
        return WorkerResult(
            success=exit_code == 0,
            payload=payload,
            log_text=stdout_text + stderr_text,
            duration_ms=duration_ms,
            exit_code=exit_code,
            result_path=workdir.result_path if workdir.result_path.exists() else None,
        )

    def _run_subprocess(  # noqa: PLR0913
        self,
        *,
        run_args: list[str],
        env: dict[str, str],
        cwd: Path,
        timeout_seconds: float,
        stdout_handle: IO[str],
        stderr_handle: IO[str],
        cancel_token: CancellationToken | None,
    ) -> tuple[int, bool, bool]:
        process = subprocess.Popen(  # noqa: S603
            run_args,
            env=env,
            cwd=cwd,
            stdout=stdout_handle,
            stderr=stderr_handle,
            text=True,
        )
        start_monotonic = time.monotonic()
        cancel_deadline: float | None = None

        while True:
            returncode = process.poll()
            if returncode is not None:
                return returncode, False, False

            now = time.monotonic()
            if now - start_monotonic >= timeout_seconds:
                _terminate_process(process)
                return TIMEOUT_EXIT_CODE, True, False

            if cancel_token is not None and cancel_token.is_cancelled:
                if cancel_deadline is None:
                    cancel_deadline = now + max(0.0, self.graceful_shutdown_seconds)
                if now >= cancel_deadline:
                    _terminate_process(process)
                    return process.returncode or TIMEOUT_EXIT_CODE, False, True

            if cancel_token is None or cancel_token.is_cancelled:
                time.sleep(self.poll_interval_seconds)
            else:
                cancel_token.wait(self.poll_interval_seconds)


def build_enriched_prompt(
    *,
    base_prompt: str,
    result_path: Path,
    output_schema: dict[str, object] | None,
) -> str:
    """Wrap the task prompt with the result file contract."""

    lines = [
        base_prompt.rstrip(),
        "",
        f"When you are done, write your final result as a JSON object to: {result_path}",
    ]
    if output_schema is not None:
        lines.append("The JSON object must follow this JSON schema exactly:")
        lines.append(json.dumps(output_schema, indent=2))
    lines.append("Write only valid JSON to that file.")
    return "\n".join(lines) + "\n"


def build_run_args(*, command_template: str, values: dict[str, str]) -> list[str]:
    """Render the command template into argv with POSIX quoting."""

    stripped = command_template.strip()
    if not stripped:
        raise WorkerProcessError("Worker command template is empty.", transient=False)
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise WorkerProcessError(
            "Worker command template must include {prompt} or {prompt_file}.",
            transient=False,
        )
    try:
        rendered = stripped.format(
            **{name: shlex.quote(values.get(name, "")) for name in _SUPPORTED_PLACEHOLDERS},
        )
    except (KeyError, IndexError) as error:
        raise WorkerProcessError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise WorkerProcessError(
            "Worker command template rendered empty command.",
            transient=False,
        )
    return argv


def _read_payload(result_path: Path, stdout_text: str) -> dict[str, object] | None:
    if result_path.exists():
        try:
            return load_json(result_path)
        except (OSError, ValueError, TypeError) as error:
            logger.warning("Ignoring unreadable worker result %s: %s", result_path, error)
    return recover_payload_from_stdout(stdout_text)


def _read_text(path: Path) -> str:
    try:
        return path.read_text("utf-8", errors="replace")
    except FileNotFoundError:
        return ""


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
