"""Option and result types for single-shot and loop execution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from agent_jobs.cancellation import CancellationToken


class ErrorStrategyMode(str, Enum):
    """How a loop reacts to a failed iteration."""

    FAIL_FAST = "fail-fast"
    RETRY = "retry"
    GRACEFUL = "graceful"
    CUSTOM = "custom"


class LoopMode(str, Enum):
    """Prompt framing used for backlog items."""

    CODE = "code"
    RESEARCH = "research"
    AUTO = "auto"


@dataclass(slots=True)
class ErrorStrategy:
    """Error policy. Only ``fail-fast`` changes loop control flow.

    The retry fields are accepted and persisted but not acted upon.
    """

    mode: ErrorStrategyMode = ErrorStrategyMode.FAIL_FAST
    max_attempts: int | None = None
    backoff_seconds: float | None = None
    backoff_multiplier: float | None = None

    @property
    def is_fail_fast(self) -> bool:
        return self.mode == ErrorStrategyMode.FAIL_FAST


@dataclass(slots=True)
class ExecuteOptions:
    """Parameters of one single-shot task."""

    prompt: str
    schema: type[BaseModel] | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    timeout_seconds: float | None = None
    env: dict[str, str] = field(default_factory=dict)
    model: str | None = None
    permission_mode: str | None = None
    error_strategy: ErrorStrategy | None = None
    cancel_token: CancellationToken | None = None
    on_output: Callable[[str], None] | None = None


@dataclass(slots=True)
class ExecuteResult:
    """Outcome of one single-shot task."""

    success: bool
    output_dir: str
    logs: str
    duration_ms: int
    data: dict[str, Any] | None = None
    error: str | None = None
    error_code: str | None = None
    artifacts: list[str] = field(default_factory=list)


@dataclass(slots=True)
class IterationOutcome:
    """Per-item record appended once per loop iteration."""

    iteration: int
    task_id: str
    success: bool
    duration_ms: int
    passed: bool = False
    error: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> IterationOutcome:
        return cls(
            iteration=int(raw["iteration"]),
            task_id=str(raw["task_id"]),
            success=bool(raw["success"]),
            duration_ms=int(raw.get("duration_ms", 0)),
            passed=bool(raw.get("passed", False)),
            error=raw.get("error"),
        )


@dataclass(slots=True)
class LoopOptions:
    """Parameters of one loop run over a backlog file."""

    task_file: Path
    max_iterations: int = 100
    mode: LoopMode = LoopMode.CODE
    progress_file: Path | None = None
    on_iteration: Callable[[IterationOutcome], None] | None = None
    error_strategy: ErrorStrategy | None = None
    cancel_token: CancellationToken | None = None
    timeout_seconds: float | None = None
    env: dict[str, str] = field(default_factory=dict)
    model: str | None = None
    permission_mode: str | None = None


@dataclass(slots=True)
class TaskState:
    """Backlog snapshot at the end of a loop run."""

    mode: str
    tasks_total: int
    tasks_completed: int
    tasks: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class LoopResult:
    """Outcome of one loop run."""

    success: bool
    completed: bool
    iterations: list[IterationOutcome]
    total_duration_ms: int
    final_state: TaskState
    progress_log: str = ""
    error: str | None = None
    error_code: str | None = None
