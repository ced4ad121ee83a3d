"""Single-shot and loop executors."""

from agent_jobs.executors.loop import LoopExecutor
from agent_jobs.executors.single_shot import SingleShotExecutor

__all__ = ["LoopExecutor", "SingleShotExecutor"]
