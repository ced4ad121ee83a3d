"""Append-only human-readable trail of completed backlog items."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from agent_jobs.clock import utc_now

HEADER_TITLE = "# Progress Log"
ENTRY_SEPARATOR = "---"

_ENTRY_HEADING = re.compile(r"^## (?P<timestamp>\S+) - (?P<item_id>.+?)\s*$")
_FILES_PREFIX = "- Files changed:"
_LEARNINGS_MARKER = "- **Learnings for future iterations:**"


@dataclass(slots=True)
class ProgressEntry:
    """One completed backlog item."""

    item_id: str
    summary: str
    files_changed: list[str] = field(default_factory=list)
    learnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ProgressLogContents:
    """Parsed log with learnings flattened across entries."""

    entries: list[ProgressEntry] = field(default_factory=list)
    learnings: list[str] = field(default_factory=list)


class ProgressLog:
    """File-backed progress log bound to one path."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def initialize(self) -> None:
        """Create or truncate the log and write the header block."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            f"{HEADER_TITLE}\nStarted: {utc_now().isoformat()}\n{ENTRY_SEPARATOR}\n\n",
            "utf-8",
        )

    def append(self, entry: ProgressEntry) -> None:
        lines = [
            "",
            f"## {utc_now().isoformat()} - {entry.item_id}",
            f"- {_single_line(entry.summary)}",
            f"{_FILES_PREFIX} {', '.join(entry.files_changed)}".rstrip(),
            _LEARNINGS_MARKER,
            *(f"  - {_single_line(learning)}" for learning in entry.learnings),
            ENTRY_SEPARATOR,
            "",
        ]
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write("\n".join(lines))

    def read(self) -> ProgressLogContents:
        """Parse the log; a missing file reads as empty."""

        try:
            text = self.path.read_text("utf-8")
        except FileNotFoundError:
            return ProgressLogContents()

        contents = ProgressLogContents()
        current: ProgressEntry | None = None
        in_learnings = False
        for line in text.splitlines():
            heading = _ENTRY_HEADING.match(line)
            if heading is not None:
                current = ProgressEntry(item_id=heading.group("item_id"), summary="")
                contents.entries.append(current)
                in_learnings = False
                continue
            if current is None:
                continue
            if line == ENTRY_SEPARATOR:
                current = None
                continue
            if line == _LEARNINGS_MARKER:
                in_learnings = True
            elif line.startswith(_FILES_PREFIX):
                raw = line[len(_FILES_PREFIX) :].strip()
                current.files_changed = [part.strip() for part in raw.split(",") if part.strip()]
            elif in_learnings and line.startswith("  - "):
                learning = line[4:].strip()
                current.learnings.append(learning)
                contents.learnings.append(learning)
            elif line.startswith("- ") and not current.summary:
                current.summary = line[2:].strip()
        return contents

    def summary_lines(self) -> str:
        """Render ``<id>: <summary>`` lines for loop results."""

        return "\n".join(f"{entry.item_id}: {entry.summary}" for entry in self.read().entries)


def _single_line(text: str) -> str:
    return " ".join(text.split())
