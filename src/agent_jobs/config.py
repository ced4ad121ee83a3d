"""Runtime configuration for the job store, manager, and CLI worker."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from agent_jobs.worker.cli_worker import DEFAULT_COMMAND_TEMPLATE, DEFAULT_PERMISSION_MODE

DEFAULT_MAX_JOB_AGE_SECONDS = 24 * 60 * 60
DEFAULT_CLEANUP_INTERVAL_SECONDS = 60 * 60


@dataclass(slots=True)
class StoreSettings:
    """Job store persistence and retention settings."""

    persist_to_file: bool = False
    store_dir: Path = Path(".agent-jobs")
    max_job_age_seconds: float = DEFAULT_MAX_JOB_AGE_SECONDS
    cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS


@dataclass(slots=True)
class ManagerSettings:
    """Job manager admission and polling settings."""

    max_concurrent_jobs: int | None = None
    poll_interval_seconds: float = 1.0


@dataclass(slots=True)
class WorkerSettings:
    """CLI worker settings."""

    command_template: str = DEFAULT_COMMAND_TEMPLATE
    workdir_root: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "agent-jobs-tasks",
    )
    timeout_seconds: float = 600.0
    model: str = "sonnet"
    permission_mode: str = DEFAULT_PERMISSION_MODE
    graceful_shutdown_seconds: float = 5.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    store: StoreSettings = field(default_factory=StoreSettings)
    manager: ManagerSettings = field(default_factory=ManagerSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)

    @classmethod
    def from_env(cls, store_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local use."""

        defaults = WorkerSettings()
        return cls(
            store=StoreSettings(
                persist_to_file=_env_bool("AGENT_JOBS_PERSIST", default=False),
                store_dir=store_dir or Path(os.getenv("AGENT_JOBS_STORE_DIR", ".agent-jobs")),
                max_job_age_seconds=float(
                    os.getenv("AGENT_JOBS_MAX_JOB_AGE_SECONDS", str(DEFAULT_MAX_JOB_AGE_SECONDS)),
                ),
                cleanup_interval_seconds=float(
                    os.getenv(
                        "AGENT_JOBS_CLEANUP_INTERVAL_SECONDS",
                        str(DEFAULT_CLEANUP_INTERVAL_SECONDS),
                    ),
                ),
            ),
            manager=ManagerSettings(
                max_concurrent_jobs=_env_optional_int("AGENT_JOBS_MAX_CONCURRENT"),
                poll_interval_seconds=float(os.getenv("AGENT_JOBS_POLL_INTERVAL_SECONDS", "1.0")),
            ),
            worker=WorkerSettings(
                command_template=os.getenv("AGENT_JOBS_COMMAND_TEMPLATE", DEFAULT_COMMAND_TEMPLATE),
                workdir_root=Path(os.getenv("AGENT_JOBS_WORKDIR_ROOT", str(defaults.workdir_root))),
                timeout_seconds=float(os.getenv("AGENT_JOBS_TIMEOUT_SECONDS", "600")),
                model=os.getenv("AGENT_JOBS_MODEL", defaults.model),
                permission_mode=os.getenv("AGENT_JOBS_PERMISSION_MODE", DEFAULT_PERMISSION_MODE),
                graceful_shutdown_seconds=float(
                    os.getenv("AGENT_JOBS_GRACEFUL_SHUTDOWN_SECONDS", "5"),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.store.max_job_age_seconds <= 0:
            raise ValueError("AGENT_JOBS_MAX_JOB_AGE_SECONDS must be > 0.")
        if self.store.cleanup_interval_seconds < 0:
            raise ValueError("AGENT_JOBS_CLEANUP_INTERVAL_SECONDS must be >= 0.")
        if self.manager.max_concurrent_jobs is not None and self.manager.max_concurrent_jobs <= 0:
            raise ValueError("AGENT_JOBS_MAX_CONCURRENT must be a positive integer.")
        if self.manager.poll_interval_seconds <= 0:
            raise ValueError("AGENT_JOBS_POLL_INTERVAL_SECONDS must be > 0.")
        if self.worker.timeout_seconds <= 0:
            raise ValueError("AGENT_JOBS_TIMEOUT_SECONDS must be > 0.")
        template = self.worker.command_template
        if "{prompt}" not in template and "{prompt_file}" not in template:
            raise ValueError(
                "AGENT_JOBS_COMMAND_TEMPLATE must include {prompt} or {prompt_file}.",
            )


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
