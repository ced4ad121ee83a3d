"""JSON snapshot format for persisted job files."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from agent_jobs.cancellation import CancellationToken
from agent_jobs.clock import from_iso, to_iso
from agent_jobs.executors.models import IterationOutcome
from agent_jobs.jobs.models import Job, JobProgress, JobStatus, JobType, LoopJob, SingleShotJob
from agent_jobs.schema import schema_placeholder

_PROGRESS_FIELDS = frozenset(item.name for item in fields(JobProgress))


def serialize_job(job: Job) -> dict[str, Any]:
    """Build the persisted document for one job."""

    payload: dict[str, Any] = {
        "id": job.id,
        "type": job.type.value,
        "status": job.status.value,
        "created_at": to_iso(job.created_at),
        "started_at": to_iso(job.started_at),
        "completed_at": to_iso(job.completed_at),
        "error": job.error,
        "progress": to_jsonable(job.progress),
        "options": serialize_options(job.options),
        "result": to_jsonable(job.result),
    }
    if isinstance(job, LoopJob):
        payload["iterations"] = [to_jsonable(outcome) for outcome in job.iterations]
    return payload


def deserialize_job(raw: dict[str, Any]) -> Job:
    """Rebuild a job record; options and result stay plain dicts."""

    job_type = JobType(raw["type"])
    common: dict[str, Any] = {
        "id": str(raw["id"]),
        "status": JobStatus(raw["status"]),
        "created_at": from_iso(raw["created_at"]),
        "started_at": _optional_datetime(raw.get("started_at")),
        "completed_at": _optional_datetime(raw.get("completed_at")),
        "error": raw.get("error"),
        "progress": _deserialize_progress(raw.get("progress")),
    }
    options = raw.get("options") or {}
    if not isinstance(options, dict):
        raise TypeError("job options must be an object")
    if job_type is JobType.LOOP:
        return LoopJob(
            **common,
            options=options,
            result=raw.get("result"),
            iterations=[IterationOutcome.from_dict(entry) for entry in raw.get("iterations") or []],
        )
    return SingleShotJob(**common, options=options, result=raw.get("result"))


def serialize_options(options: Any) -> dict[str, Any]:
    """Strip callbacks and tokens; replace a live schema class with a type tag."""

    payload = to_jsonable(options)
    if not isinstance(payload, dict):
        return {}
    schema = payload.pop("schema", None)
    if isinstance(schema, dict):
        payload.update(schema)
    return payload


def to_jsonable(value: Any) -> Any:  # noqa: PLR0911
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, str | bool | int | float):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, type) and issubclass(value, BaseModel):
        return schema_placeholder(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {
            item.name: to_jsonable(getattr(value, item.name))
            for item in fields(value)
            if not _is_runtime_only(getattr(value, item.name))
        }
    if isinstance(value, dict):
        return {
            str(key): to_jsonable(entry)
            for key, entry in value.items()
            if not _is_runtime_only(entry)
        }
    if isinstance(value, list | tuple | set | frozenset):
        return [to_jsonable(entry) for entry in value]
    return {"type_tag": type(value).__name__}


def _is_runtime_only(value: Any) -> bool:
    if isinstance(value, CancellationToken):
        return True
    return callable(value) and not isinstance(value, type)


def _optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return from_iso(str(value))


def _deserialize_progress(raw: Any) -> JobProgress | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise TypeError("job progress must be an object")
    values = {key: value for key, value in raw.items() if key in _PROGRESS_FIELDS}
    last_update = values.pop("last_update", None)
    progress = JobProgress(**values)
    if last_update is not None:
        progress.last_update = from_iso(str(last_update))
    return progress
