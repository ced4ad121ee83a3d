"""File-based contracts exchanged with the worker process."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class TaskInstructions:
    """Instructions document written next to the prompt for the worker."""

    prompt: str
    variables: dict[str, Any] = field(default_factory=dict)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload so readers never observe a half-written file."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp_path, path)


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_instructions(path: Path, payload: TaskInstructions) -> None:
    """Serialize task instructions."""

    write_json(path, asdict(payload))


def read_instructions(path: Path) -> TaskInstructions:
    """Deserialize and validate task instructions."""

    raw = load_json(path)
    prompt = raw.get("prompt")
    variables = raw.get("variables", {})
    if not isinstance(prompt, str):
        raise TypeError("instructions.prompt must be a string")
    if not isinstance(variables, dict):
        raise TypeError("instructions.variables must be an object")
    return TaskInstructions(prompt=prompt, variables=variables)
