"""Exception taxonomy for the orchestration engine."""

from typing import Iterable


class OrchestrationError(Exception):
    """Base class for orchestration failures."""


class AlreadyInProgressError(OrchestrationError):
    """Another orchestration holds the same key."""

    def __init__(self, key: str):
        super().__init__(f"Orchestration already in progress for key '{key}'")
        self.key = key


class NoProviderConfiguredError(OrchestrationError):
    """No inference provider is available to run agents."""

    def __init__(self, message: str = "No inference provider configured"):
        super().__init__(message)


class TaskNotFoundError(OrchestrationError):
    """A referenced task id does not resolve in the task store."""

    def __init__(self, task_id: str):
        super().__init__(f"Task '{task_id}' not found")
        self.task_id = task_id


class CircularDependencyError(OrchestrationError):
    """The scheduler found pending tasks none of which can become ready."""

    def __init__(self, pending_task_ids: Iterable[str]):
        self.pending_task_ids = list(pending_task_ids)
        super().__init__(
            "Circular dependency or unresolvable dependencies detected among tasks: "
            + ", ".join(self.pending_task_ids)
        )


class AgentRecruitmentError(OrchestrationError):
    """The recruiter could not produce a usable agent profile."""


class ValidationParseError(OrchestrationError):
    """A model response did not contain a parseable JSON object."""


class TaskExecutionError(OrchestrationError):
    """An agent execution failed for a single task."""

    def __init__(self, task_id: str, message: str):
        super().__init__(message)
        self.task_id = task_id


class OrchestrationCancelledError(OrchestrationError):
    """The cancellation token was triggered while work was suspended."""
