"""DAG Scheduler - runs subtasks in dependency order with batched parallel dispatch."""

import asyncio
import logging
from typing import Optional

from .cancellation import CancellationToken
from .errors import CircularDependencyError
from .execution import TaskExecutor
from .models import Agent, ExecutionResult, Task

logger = logging.getLogger(__name__)


def ready_tasks(tasks: list[Task], executed: set[str]) -> list[Task]:
    """Unexecuted tasks whose every dependency has been executed, in list order."""
    return [
        task
        for task in tasks
        if task.id not in executed
        and all(dep in executed for dep in task.dependencies)
    ]


def next_batch(tasks: list[Task], executed: set[str], width: int) -> list[Task]:
    """The first ``width`` ready tasks.

    Raises:
        CircularDependencyError: tasks remain but none of them can become ready.
    """
    if width < 1:
        raise ValueError("Batch width must be at least 1")
    ready = ready_tasks(tasks, executed)
    if not ready:
        pending = [t.id for t in tasks if t.id not in executed]
        logger.error("No runnable tasks among %d pending", len(pending))
        raise CircularDependencyError(pending)
    return ready[:width]


class DagScheduler:
    """Dispatches ready tasks in batches, assigning agents round-robin by batch position."""

    def __init__(self, executor: TaskExecutor):
        self.executor = executor

    async def coordinate_team_execution(
        self,
        tasks: list[Task],
        team: list[Agent],
        cancel_token: Optional[CancellationToken] = None,
    ) -> list[ExecutionResult]:
        """Execute every task exactly once, each prompted with its own description."""
        if not team:
            raise ValueError("Cannot schedule tasks without at least one agent")

        executed: set[str] = set()
        results: list[ExecutionResult] = []
        batch_index = 0
        while len(executed) < len(tasks):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            batch = next_batch(tasks, executed, len(team))
            batch_index += 1
            logger.info(
                "Dispatching batch %d: %s", batch_index, ", ".join(t.title for t in batch)
            )
            batch_results = await asyncio.gather(
                *(
                    self.executor.execute_with_agent(
                        task,
                        team[position % len(team)],
                        task.description,
                        cancel_token,
                    )
                    for position, task in enumerate(batch)
                )
            )
            executed.update(task.id for task in batch)
            results.extend(batch_results)
        return results
