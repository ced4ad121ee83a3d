from __future__ import annotations

import threading
from pathlib import Path

import allure
import pytest

from agent_jobs.cancellation import CancellationToken
from agent_jobs.errors import WorkerProcessError, WorkerTimeoutError
from agent_jobs.schema import StoryOutcome, describe_schema
from agent_jobs.worker.base import WorkerRequest
from agent_jobs.worker.cli_worker import CliWorker, build_enriched_prompt, build_run_args
from fakes import ECHO_AGENT_COMMAND_TEMPLATE, INVALID_UTF8_RESULT_COMMAND_TEMPLATE

pytestmark = [
    allure.epic("Worker Runtime"),
    allure.feature("CLI Worker"),
]


def _request(tmp_path: Path, **overrides: object) -> WorkerRequest:
    values: dict[str, object] = {
        "prompt": "Summarize the repository",
        "workdir": tmp_path / "task",
        "timeout_seconds": 30,
    }
    values.update(overrides)
    return WorkerRequest(**values)  # type: ignore[arg-type]


def test_build_run_args_quotes_placeholder_values() -> None:
    argv = build_run_args(
        command_template="agent --model {model} --file {prompt_file} -- {prompt}",
        values={
            "model": "sonnet",
            "prompt_file": "/tmp/with space/prompt.txt",
            "prompt": "say \"hi\" and 'bye'",
        },
    )

    assert argv == [
        "agent",
        "--model",
        "sonnet",
        "--file",
        "/tmp/with space/prompt.txt",
        "--",
        "say \"hi\" and 'bye'",
    ]


def test_build_run_args_requires_prompt_placeholder() -> None:
    with pytest.raises(WorkerProcessError, match=r"must include \{prompt\}"):
        build_run_args(command_template="agent --run", values={})


def test_build_run_args_rejects_unknown_placeholder() -> None:
    with pytest.raises(WorkerProcessError, match="Unsupported command template placeholder"):
        build_run_args(command_template="agent {prompt} {workspace}", values={"prompt": "x"})


def test_enriched_prompt_names_result_file_and_schema(tmp_path: Path) -> None:
    prompt = build_enriched_prompt(
        base_prompt="Do the thing",
        result_path=tmp_path / "result.json",
        output_schema=describe_schema(StoryOutcome),
    )

    assert prompt.startswith("Do the thing\n")
    assert str(tmp_path / "result.json") in prompt
    assert '"filesChanged"' in prompt


def test_invoke_echo_agent_reads_result_file(tmp_path: Path) -> None:
    worker = CliWorker(command_template=ECHO_AGENT_COMMAND_TEMPLATE)

    result = worker.invoke(_request(tmp_path, output_schema=describe_schema(StoryOutcome)))

    assert result.success is True
    assert result.exit_code == 0
    assert result.result_path == tmp_path / "task" / "result.json"
    assert result.payload is not None
    assert result.payload["summary"] == "Summarize the repository"
    assert result.payload["passes"] is True
    assert "Result written to" in result.log_text
    assert (tmp_path / "task" / "prompt.txt").exists()
    assert (tmp_path / "task" / "schema.json").exists()


def test_invoke_recovers_payload_from_stdout(tmp_path: Path) -> None:
    worker = CliWorker(command_template=ECHO_AGENT_COMMAND_TEMPLATE + " --stdout-only")

    result = worker.invoke(_request(tmp_path))

    assert result.success is True
    assert result.result_path is None
    assert result.payload is not None
    assert result.payload["learnings"] == ["echo agent ran"]


def test_invoke_reports_non_zero_exit_code(tmp_path: Path) -> None:
    worker = CliWorker(command_template=ECHO_AGENT_COMMAND_TEMPLATE + " --exit-code 3")

    result = worker.invoke(_request(tmp_path))

    assert result.success is False
    assert result.exit_code == 3
    assert result.payload is not None
    assert result.payload["success"] is False


def test_invoke_raises_timeout_and_terminates_process(tmp_path: Path) -> None:
    worker = CliWorker(command_template=ECHO_AGENT_COMMAND_TEMPLATE + " --sleep-seconds 10")

    with pytest.raises(WorkerTimeoutError) as error_info:
        worker.invoke(_request(tmp_path, timeout_seconds=0.5))

    assert error_info.value.code == "timeout"
    assert not (tmp_path / "task" / "result.json").exists()


def test_invoke_stops_process_on_cancellation(tmp_path: Path) -> None:
    worker = CliWorker(
        command_template=ECHO_AGENT_COMMAND_TEMPLATE + " --sleep-seconds 10",
        graceful_shutdown_seconds=0,
    )
    token = CancellationToken()
    timer = threading.Timer(0.3, token.cancel)
    timer.start()
    try:
        with pytest.raises(WorkerProcessError, match="cancelled"):
            worker.invoke(_request(tmp_path, cancel_token=token))
    finally:
        timer.cancel()


def test_invoke_missing_binary_is_permanent_process_error(tmp_path: Path) -> None:
    worker = CliWorker(command_template="agent-jobs-missing-binary-xyz -- {prompt}")

    with pytest.raises(WorkerProcessError, match="Worker command not found") as error_info:
        worker.invoke(_request(tmp_path))

    assert error_info.value.transient is False


def test_invoke_ignores_result_file_with_invalid_utf8(tmp_path: Path) -> None:
    worker = CliWorker(command_template=INVALID_UTF8_RESULT_COMMAND_TEMPLATE)

    result = worker.invoke(_request(tmp_path))

    assert result.success is True
    assert result.exit_code == 0
    assert result.payload is None
    assert result.result_path == tmp_path / "task" / "result.json"
