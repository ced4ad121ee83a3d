"""Prioritized backlog of sub-tasks consumed by loop jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agent_jobs.contracts import load_json, write_json_atomic


@dataclass(slots=True)
class BacklogItem:
    """One sub-task with acceptance criteria and a one-way completion flag."""

    id: str
    title: str
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    priority: int = 100
    estimated_complexity: int = 1
    passes: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> BacklogItem:
        item_id = raw.get("id")
        title = raw.get("title")
        if not isinstance(item_id, str) or not item_id.strip():
            raise ValueError("backlog item id must be a non-empty string")
        if not isinstance(title, str):
            raise TypeError(f"backlog item {item_id!r} title must be a string")
        criteria = raw.get("acceptanceCriteria", [])
        if not isinstance(criteria, list):
            raise TypeError(f"backlog item {item_id!r} acceptanceCriteria must be an array")
        return cls(
            id=item_id,
            title=title,
            description=str(raw.get("description", "")),
            acceptance_criteria=[str(entry) for entry in criteria],
            priority=int(raw.get("priority", 100)),
            estimated_complexity=int(raw.get("estimatedComplexity", 1)),
            passes=bool(raw.get("passes", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "priority": self.priority,
            "estimatedComplexity": self.estimated_complexity,
            "passes": self.passes,
        }


class Backlog:
    """Ordered sub-task list stored as a JSON document.

    Selection order is ``(priority, original index)``, so repeated runs over
    the same file resume in the same order.
    """

    def __init__(
        self,
        *,
        project: str,
        branch_name: str = "",
        description: str = "",
        items: list[BacklogItem] | None = None,
    ) -> None:
        self.project = project
        self.branch_name = branch_name
        self.description = description
        self._items = list(items or [])

    @classmethod
    def create(cls, raw: dict[str, Any]) -> Backlog:
        raw_items = raw.get("items")
        if raw_items is None:
            raw_items = raw.get("userStories", [])
        if not isinstance(raw_items, list):
            raise TypeError("backlog items must be an array")
        items = [BacklogItem.from_dict(entry) for entry in raw_items]
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise ValueError(f"Duplicate backlog item id: {item.id}")
            seen.add(item.id)
        return cls(
            project=str(raw.get("project", "")),
            branch_name=str(raw.get("branchName", "")),
            description=str(raw.get("description", "")),
            items=items,
        )

    @classmethod
    def load(cls, path: Path) -> Backlog:
        return cls.create(load_json(path))

    def save(self, path: Path) -> None:
        write_json_atomic(path, self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "branchName": self.branch_name,
            "description": self.description,
            "items": [item.to_dict() for item in self._items],
        }

    @property
    def items(self) -> list[BacklogItem]:
        return list(self._items)

    def get(self, item_id: str) -> BacklogItem | None:
        return next((item for item in self._items if item.id == item_id), None)

    def next_item(self) -> BacklogItem | None:
        """Return the most urgent incomplete item, or None when all pass."""

        candidates = [
            (item.priority, index, item)
            for index, item in enumerate(self._items)
            if not item.passes
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda entry: (entry[0], entry[1]))[2]

    def mark_complete(self, item_id: str) -> None:
        item = self.get(item_id)
        if item is None:
            raise KeyError(item_id)
        item.passes = True

    def update_item(self, item_id: str, **changes: Any) -> None:
        """Apply field changes to one item; completion never reverts."""

        item = self.get(item_id)
        if item is None:
            raise KeyError(item_id)
        if item.passes and changes.get("passes") is False:
            raise ValueError(f"Backlog item {item_id} is already complete")
        for name, value in changes.items():
            if name == "id" or not hasattr(item, name):
                raise AttributeError(f"Unknown backlog item field: {name}")
            setattr(item, name, value)

    def is_complete(self) -> bool:
        return all(item.passes for item in self._items)

    def progress(self) -> tuple[int, int]:
        """Return ``(completed, total)`` counts."""

        completed = sum(1 for item in self._items if item.passes)
        return completed, len(self._items)
