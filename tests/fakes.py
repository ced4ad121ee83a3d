"""In-process worker fakes and payload builders shared by tests."""

from __future__ import annotations

import json
import shlex
import sys
import threading
from typing import Any

from agent_jobs.worker.base import WorkerRequest, WorkerResult

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -m agent_jobs.worker.echo_agent "
    "--prompt-file {prompt_file} --result-file {result_file}"
)

# Writes bytes that are not valid UTF-8 into the result file and exits 0.
INVALID_UTF8_RESULT_COMMAND_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -c "
    "\"import sys; open(sys.argv[1], 'wb').write(bytes([255, 254]))\" "
    "{result_file} {prompt_file}"
)


def story_payload(
    *,
    success: bool = True,
    passes: bool = True,
    summary: str = "done",
) -> dict[str, Any]:
    return {
        "success": success,
        "summary": summary,
        "filesChanged": ["src/app.py"],
        "learnings": ["keep it small"],
        "passes": passes,
    }


class ScriptedInvoker:
    """In-process worker that replays queued responses.

    A response may be a payload dict, a ``WorkerResult`` or an exception to
    raise. When the script runs out, ``default`` is replayed.
    """

    def __init__(self, responses: list[Any] | None = None, *, default: Any = None) -> None:
        self.responses = list(responses or [])
        self.default = default if default is not None else story_payload()
        self.requests: list[WorkerRequest] = []
        self._lock = threading.Lock()

    def invoke(self, request: WorkerRequest) -> WorkerResult:
        with self._lock:
            self.requests.append(request)
            response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, WorkerResult):
            return response
        return WorkerResult(
            success=True,
            payload=response,
            log_text=json.dumps(response),
            duration_ms=1,
            exit_code=0,
        )


class BlockingInvoker(ScriptedInvoker):
    """Scripted invoker that holds every call until ``release`` is set."""

    def __init__(self, responses: list[Any] | None = None, *, default: Any = None) -> None:
        super().__init__(responses, default=default)
        self.started = threading.Event()
        self.release = threading.Event()

    def invoke(self, request: WorkerRequest) -> WorkerResult:
        self.started.set()
        self.release.wait(timeout=10)
        return super().invoke(request)

