"""Workdir materialization helpers for file-based task execution."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from agent_jobs.contracts import TaskInstructions, write_instructions, write_json

PROMPT_FILE = "prompt.txt"
INSTRUCTIONS_FILE = "instructions.json"
SCHEMA_FILE = "schema.json"
RESULT_FILE = "result.json"
STDOUT_FILE = "worker_stdout.log"
STDERR_FILE = "worker_stderr.log"
ARTIFACTS_DIR = "artifacts"


@dataclass(slots=True)
class TaskWorkdir:
    """Paths of one materialized task directory."""

    root: Path

    @property
    def prompt_path(self) -> Path:
        return self.root / PROMPT_FILE

    @property
    def instructions_path(self) -> Path:
        return self.root / INSTRUCTIONS_FILE

    @property
    def schema_path(self) -> Path:
        return self.root / SCHEMA_FILE

    @property
    def result_path(self) -> Path:
        return self.root / RESULT_FILE

    @property
    def stdout_path(self) -> Path:
        return self.root / STDOUT_FILE

    @property
    def stderr_path(self) -> Path:
        return self.root / STDERR_FILE

    @property
    def artifacts_dir(self) -> Path:
        return self.root / ARTIFACTS_DIR


class TaskWorkdirManager:
    """Creates deterministic per-task directory layout."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = root_dir

    def materialize(
        self,
        *,
        instructions: TaskInstructions,
        output_schema: dict[str, Any] | None,
        task_id: str | None = None,
    ) -> TaskWorkdir:
        workdir = TaskWorkdir(root=self.root_dir / f"task-{task_id or uuid4()}")
        workdir.artifacts_dir.mkdir(parents=True, exist_ok=True)
        write_instructions(workdir.instructions_path, instructions)
        if output_schema is not None:
            write_json(workdir.schema_path, output_schema)
        return workdir

    @staticmethod
    def list_artifacts(workdir: TaskWorkdir) -> list[str]:
        if not workdir.artifacts_dir.is_dir():
            return []
        return sorted(str(path) for path in workdir.artifacts_dir.iterdir())
