from __future__ import annotations

from pathlib import Path

import allure

from agent_jobs.progress_log import ProgressEntry, ProgressLog

pytestmark = [
    allure.epic("Loop Execution"),
    allure.feature("Progress Log"),
]


def test_initialize_truncates_and_writes_header(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "progress.md"
    path.parent.mkdir()
    path.write_text("stale content\n", "utf-8")

    ProgressLog(path).initialize()

    lines = path.read_text("utf-8").splitlines()
    assert lines[0] == "# Progress Log"
    assert lines[1].startswith("Started: ")
    assert lines[2] == "---"
    assert "stale content" not in path.read_text("utf-8")


def test_append_then_read_parses_entries_and_flattens_learnings(tmp_path: Path) -> None:
    log = ProgressLog(tmp_path / "progress.md")
    log.initialize()
    log.append(
        ProgressEntry(
            item_id="US-001",
            summary="Added login form",
            files_changed=["src/login.py", "tests/test_login.py"],
            learnings=["forms need csrf", "reuse the session helper"],
        ),
    )
    log.append(ProgressEntry(item_id="US-002", summary="Wired logout"))

    text = log.path.read_text("utf-8")
    assert "- Files changed: src/login.py, tests/test_login.py" in text
    assert "- **Learnings for future iterations:**" in text
    assert "  - forms need csrf" in text

    contents = log.read()
    assert [entry.item_id for entry in contents.entries] == ["US-001", "US-002"]
    assert contents.entries[0].summary == "Added login form"
    assert contents.entries[0].files_changed == ["src/login.py", "tests/test_login.py"]
    assert contents.entries[1].files_changed == []
    assert contents.learnings == ["forms need csrf", "reuse the session helper"]
    assert log.summary_lines() == "US-001: Added login form\nUS-002: Wired logout"


def test_read_missing_file_is_empty(tmp_path: Path) -> None:
    contents = ProgressLog(tmp_path / "missing.md").read()

    assert contents.entries == []
    assert contents.learnings == []


def test_multiline_summary_is_collapsed_to_one_line(tmp_path: Path) -> None:
    log = ProgressLog(tmp_path / "progress.md")
    log.initialize()
    log.append(ProgressEntry(item_id="A", summary="first line\nsecond   line"))

    assert log.read().entries[0].summary == "first line second line"
