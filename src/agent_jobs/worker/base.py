"""Worker invoker interface for task execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from agent_jobs.cancellation import CancellationToken


@dataclass(slots=True)
class WorkerRequest:
    """Inputs required to execute one task with the worker."""

    prompt: str
    workdir: Path
    timeout_seconds: float
    output_schema: dict[str, Any] | None = None
    env: dict[str, str] = field(default_factory=dict)
    model: str | None = None
    permission_mode: str | None = None
    cancel_token: CancellationToken | None = None


@dataclass(slots=True)
class WorkerResult:
    """Execution outcome reported by the worker."""

    success: bool
    payload: dict[str, Any] | None
    log_text: str
    duration_ms: int
    exit_code: int | None = None
    result_path: Path | None = None


class WorkerInvoker(Protocol):
    """Protocol implemented by worker runners.

    Implementations raise ``WorkerTimeoutError`` when the time bound is hit
    and ``WorkerProcessError`` when the worker cannot run at all.
    """

    def invoke(self, request: WorkerRequest) -> WorkerResult:
        """Run one task and return its outcome."""
