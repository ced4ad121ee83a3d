"""Iterative execution over a prioritized backlog, one item per iteration."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from agent_jobs.backlog import Backlog, BacklogItem
from agent_jobs.errors import TaskIncompleteError
from agent_jobs.executors.models import (
    ExecuteOptions,
    IterationOutcome,
    LoopMode,
    LoopOptions,
    LoopResult,
    TaskState,
)
from agent_jobs.executors.single_shot import SingleShotExecutor
from agent_jobs.progress_log import ProgressEntry, ProgressLog
from agent_jobs.schema import StoryOutcome

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100
CANCELLED_ERROR_CODE = "cancelled"

ProgressHook = Callable[..., None]

_MODE_PREFIXES = {
    LoopMode.CODE: "Implement the following user story:",
    LoopMode.RESEARCH: "Research and document the following:",
}


class LoopExecutor:
    """Drives backlog items through the single-shot executor until done.

    The loop stops when the backlog is exhausted, ``max_iterations`` is
    reached, a fail-fast error strategy sees a failed iteration, or the
    cancellation token is observed between iterations.
    """

    def __init__(self, single_shot: SingleShotExecutor) -> None:
        self.single_shot = single_shot

    def execute(  # noqa: C901
        self,
        options: LoopOptions,
        *,
        on_progress: ProgressHook | None = None,
    ) -> LoopResult:
        started = time.monotonic()
        mode = LoopMode(options.mode)
        max_iterations = options.max_iterations or DEFAULT_MAX_ITERATIONS
        fail_fast = options.error_strategy is not None and options.error_strategy.is_fail_fast
        iterations: list[IterationOutcome] = []

        backlog = Backlog.load(options.task_file)
        progress_log = ProgressLog(options.progress_file) if options.progress_file else None
        if progress_log is not None:
            progress_log.initialize()

        completed, total = backlog.progress()
        _emit(
            on_progress,
            tasks_completed=completed,
            tasks_total=total,
            total_iterations=max_iterations,
            message=f"Loaded backlog with {total} tasks",
        )

        def finish(
            *,
            success: bool,
            error: str | None = None,
            error_code: str | None = None,
        ) -> LoopResult:
            done, all_tasks = backlog.progress()
            return LoopResult(
                success=success,
                completed=success and backlog.is_complete(),
                iterations=iterations,
                total_duration_ms=int((time.monotonic() - started) * 1000),
                final_state=TaskState(
                    mode=mode.value,
                    tasks_total=all_tasks,
                    tasks_completed=done,
                    tasks=[item.to_dict() for item in backlog.items],
                ),
                progress_log=progress_log.summary_lines() if progress_log is not None else "",
                error=error,
                error_code=error_code,
            )

        def incomplete() -> LoopResult:
            done, all_tasks = backlog.progress()
            failure = TaskIncompleteError(done, all_tasks)
            return finish(success=False, error=str(failure), error_code=failure.code)

        iteration = 0
        while iteration < max_iterations:
            if options.cancel_token is not None and options.cancel_token.is_cancelled:
                logger.info(
                    "Loop over %s cancelled after %d iterations",
                    options.task_file,
                    iteration,
                )
                return finish(
                    success=False,
                    error="Loop was cancelled",
                    error_code=CANCELLED_ERROR_CODE,
                )

            item = backlog.next_item()
            if item is None:
                return finish(success=True)

            iteration += 1
            _emit(
                on_progress,
                current_iteration=iteration,
                current_task_id=item.id,
                message=f"Iteration {iteration}: working on {item.id}",
            )
            result = self.single_shot.execute(
                ExecuteOptions(
                    prompt=build_item_prompt(item, mode),
                    schema=StoryOutcome,
                    timeout_seconds=options.timeout_seconds,
                    env=dict(options.env),
                    model=options.model,
                    permission_mode=options.permission_mode,
                ),
            )
            data = result.data if result.success else None
            succeeded = data is not None and bool(data.get("success"))
            passed = succeeded and bool(data.get("passes"))
            error = result.error
            if result.success and not succeeded:
                error = "Worker reported success=false"

            outcome = IterationOutcome(
                iteration=iteration,
                task_id=item.id,
                success=succeeded,
                duration_ms=result.duration_ms,
                passed=passed,
                error=error,
            )
            iterations.append(outcome)
            if options.on_iteration is not None:
                options.on_iteration(outcome)

            if passed:
                backlog.mark_complete(item.id)
                if progress_log is not None:
                    progress_log.append(
                        ProgressEntry(
                            item_id=item.id,
                            summary=str(data.get("summary", "")),
                            files_changed=list(data.get("filesChanged", [])),
                            learnings=list(data.get("learnings", [])),
                        ),
                    )
                backlog.save(options.task_file)
                completed, total = backlog.progress()
                _emit(on_progress, tasks_completed=completed, tasks_total=total)
            elif not succeeded:
                logger.warning("Iteration %d on %s failed: %s", iteration, item.id, error)
                if fail_fast:
                    return incomplete()

        if backlog.next_item() is None:
            return finish(success=True)
        return incomplete()


def build_item_prompt(item: BacklogItem, mode: LoopMode) -> str:
    """Frame one backlog item as a worker prompt."""

    prefix = _MODE_PREFIXES.get(mode, "Complete the following task:")
    criteria = "\n".join(
        f"{index}. {criterion}" for index, criterion in enumerate(item.acceptance_criteria, start=1)
    )
    return (
        f"{prefix}\n"
        f"\n"
        f"**Story ID:** {item.id}\n"
        f"**Title:** {item.title}\n"
        f"**Description:** {item.description}\n"
        f"\n"
        f"**Acceptance Criteria:**\n"
        f"{criteria}\n"
        f"\n"
        f"**Priority:** {item.priority}\n"
        f"**Estimated Complexity:** {item.estimated_complexity}\n"
        f"\n"
        f"Please complete this task and report:\n"
        f"1. A summary of what was done\n"
        f"2. The list of files changed\n"
        f"3. Any learnings for future iterations\n"
        f"4. Whether all acceptance criteria are met (passes: true/false)\n"
    )


def _emit(hook: ProgressHook | None, **partial: Any) -> None:
    if hook is not None:
        hook(**partial)
