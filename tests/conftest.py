"""Shared test fixtures."""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from agent_jobs.config import ManagerSettings, Settings, StoreSettings, WorkerSettings
from agent_jobs.jobs.manager import JobManager
from fakes import ECHO_AGENT_COMMAND_TEMPLATE


@pytest.fixture()
def write_backlog(tmp_path: Path) -> Callable[..., Path]:
    def _write(items: list[dict[str, Any]], *, name: str = "backlog.json") -> Path:
        path = tmp_path / name
        path.write_text(
            json.dumps(
                {
                    "project": "demo",
                    "branchName": "feature/demo",
                    "description": "Demo backlog",
                    "items": items,
                },
            ),
            "utf-8",
        )
        return path

    return _write


@pytest.fixture()
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    def _make(
        *,
        persist: bool = True,
        max_concurrent_jobs: int | None = None,
        max_job_age_seconds: float = 3600,
    ) -> Settings:
        return Settings(
            store=StoreSettings(
                persist_to_file=persist,
                store_dir=tmp_path / "store",
                max_job_age_seconds=max_job_age_seconds,
                cleanup_interval_seconds=0,
            ),
            manager=ManagerSettings(
                max_concurrent_jobs=max_concurrent_jobs,
                poll_interval_seconds=0.01,
            ),
            worker=WorkerSettings(
                command_template=ECHO_AGENT_COMMAND_TEMPLATE,
                workdir_root=tmp_path / "work",
                timeout_seconds=30,
            ),
        )

    return _make


@pytest.fixture()
def make_manager(make_settings: Callable[..., Settings]) -> Iterator[Callable[..., JobManager]]:
    managers: list[JobManager] = []

    def _make(invoker: Any, **settings_kwargs: Any) -> JobManager:
        manager = JobManager(invoker, settings=make_settings(**settings_kwargs))
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        manager.close()


@pytest.fixture()
def wait_until() -> Callable[..., None]:
    def _wait(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() >= deadline:
                raise AssertionError("condition not reached in time")
            time.sleep(0.01)

    return _wait


@pytest.fixture()
def echo_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Point CLI settings at the echo agent with fast polling."""

    monkeypatch.setenv("AGENT_JOBS_COMMAND_TEMPLATE", ECHO_AGENT_COMMAND_TEMPLATE)
    monkeypatch.setenv("AGENT_JOBS_WORKDIR_ROOT", str(tmp_path / "work"))
    monkeypatch.setenv("AGENT_JOBS_POLL_INTERVAL_SECONDS", "0.05")
    monkeypatch.setenv("AGENT_JOBS_TIMEOUT_SECONDS", "60")
