from __future__ import annotations

import allure

from agent_jobs.cancellation import CancellationToken

pytestmark = [
    allure.epic("Job Lifecycle"),
    allure.feature("Cancellation"),
]


def test_cancel_notifies_each_listener_once() -> None:
    token = CancellationToken()
    calls: list[str] = []
    token.on_cancel(lambda: calls.append("first"))
    token.on_cancel(lambda: calls.append("second"))

    token.cancel()
    token.cancel()

    assert token.is_cancelled
    assert calls == ["first", "second"]


def test_listener_registered_after_cancel_runs_immediately() -> None:
    token = CancellationToken()
    token.cancel()
    calls: list[str] = []

    token.on_cancel(lambda: calls.append("late"))

    assert calls == ["late"]


def test_failing_listener_does_not_block_others() -> None:
    token = CancellationToken()
    calls: list[str] = []

    def _boom() -> None:
        raise RuntimeError("listener failure")

    token.on_cancel(_boom)
    token.on_cancel(lambda: calls.append("after"))
    token.cancel()

    assert calls == ["after"]


def test_wait_reports_cancellation_state() -> None:
    token = CancellationToken()

    assert token.wait(timeout=0.01) is False
    token.cancel()
    assert token.wait(timeout=0.01) is True
