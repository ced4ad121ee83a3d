from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_jobs.config import ManagerSettings, Settings, StoreSettings, WorkerSettings
from agent_jobs.worker.cli_worker import DEFAULT_COMMAND_TEMPLATE

pytestmark = [
    allure.epic("Job Lifecycle"),
    allure.feature("Configuration"),
]

_ENV_KEYS = (
    "AGENT_JOBS_PERSIST",
    "AGENT_JOBS_STORE_DIR",
    "AGENT_JOBS_MAX_JOB_AGE_SECONDS",
    "AGENT_JOBS_CLEANUP_INTERVAL_SECONDS",
    "AGENT_JOBS_MAX_CONCURRENT",
    "AGENT_JOBS_POLL_INTERVAL_SECONDS",
    "AGENT_JOBS_COMMAND_TEMPLATE",
    "AGENT_JOBS_WORKDIR_ROOT",
    "AGENT_JOBS_TIMEOUT_SECONDS",
    "AGENT_JOBS_MODEL",
    "AGENT_JOBS_PERMISSION_MODE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.store.persist_to_file is False
    assert settings.store.store_dir == Path(".agent-jobs")
    assert settings.store.max_job_age_seconds == 86400
    assert settings.store.cleanup_interval_seconds == 3600
    assert settings.manager.max_concurrent_jobs is None
    assert settings.worker.command_template == DEFAULT_COMMAND_TEMPLATE
    assert settings.worker.model == "sonnet"
    assert settings.worker.permission_mode == "bypassPermissions"
    settings.validate()


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_JOBS_PERSIST", "yes")
    monkeypatch.setenv("AGENT_JOBS_STORE_DIR", str(tmp_path / "jobs"))
    monkeypatch.setenv("AGENT_JOBS_MAX_JOB_AGE_SECONDS", "120")
    monkeypatch.setenv("AGENT_JOBS_CLEANUP_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("AGENT_JOBS_MAX_CONCURRENT", "3")
    monkeypatch.setenv("AGENT_JOBS_COMMAND_TEMPLATE", "agent --file {prompt_file}")
    monkeypatch.setenv("AGENT_JOBS_MODEL", "opus")

    settings = Settings.from_env()

    assert settings.store.persist_to_file is True
    assert settings.store.store_dir == tmp_path / "jobs"
    assert settings.store.max_job_age_seconds == 120
    assert settings.store.cleanup_interval_seconds == 0
    assert settings.manager.max_concurrent_jobs == 3
    assert settings.worker.command_template == "agent --file {prompt_file}"
    assert settings.worker.model == "opus"
    settings.validate()


def test_explicit_store_dir_wins_over_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_JOBS_STORE_DIR", str(tmp_path / "from-env"))

    settings = Settings.from_env(store_dir=tmp_path / "explicit")

    assert settings.store.store_dir == tmp_path / "explicit"


def test_from_env_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENT_JOBS_PERSIST", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for AGENT_JOBS_PERSIST"):
        Settings.from_env()


def test_from_env_rejects_invalid_concurrency(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENT_JOBS_MAX_CONCURRENT", "many")

    with pytest.raises(ValueError, match="Invalid integer value for AGENT_JOBS_MAX_CONCURRENT"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(store=StoreSettings(max_job_age_seconds=0)), "MAX_JOB_AGE_SECONDS"),
        (Settings(store=StoreSettings(cleanup_interval_seconds=-1)), "CLEANUP_INTERVAL"),
        (Settings(manager=ManagerSettings(max_concurrent_jobs=0)), "MAX_CONCURRENT"),
        (Settings(manager=ManagerSettings(poll_interval_seconds=0)), "POLL_INTERVAL"),
        (Settings(worker=WorkerSettings(timeout_seconds=0)), "TIMEOUT_SECONDS"),
        (Settings(worker=WorkerSettings(command_template="agent --run")), "COMMAND_TEMPLATE"),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()
