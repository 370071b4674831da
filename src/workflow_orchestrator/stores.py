"""In-memory implementations of the registry, stores and context broker."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .errors import TaskNotFoundError
from .execution import extract_keywords
from .interfaces import AgentRegistry, ArtifactStore, ContextBroker, TaskStore
from .models import (
    Agent,
    AgentProfile,
    Artifact,
    ContextType,
    RequirementCheck,
    RequirementStatus,
    RequirementValidationReport,
    SharedContext,
    Task,
    satisfaction_rate,
)
from .prompts import designated_agent
from .settings import OrchestratorSettings

logger = logging.getLogger(__name__)


class InMemoryAgentRegistry(AgentRegistry):
    """Agent registry kept in a dict, preserving insertion order."""

    def __init__(self, agents: Optional[list[Agent]] = None):
        self._agents: dict[str, Agent] = {}
        for agent in agents or []:
            self._agents[agent.id] = agent

    @classmethod
    def with_designated_agents(
        cls, settings: OrchestratorSettings, agents: Optional[list[Agent]] = None
    ) -> "InMemoryAgentRegistry":
        """Registry seeded with the recruiter and validator agents."""
        seeded = [
            designated_agent("recruiter", settings.recruiter_agent_id),
            designated_agent("validator", settings.validator_agent_id),
        ]
        return cls(seeded + list(agents or []))

    async def find_by_id(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    async def find_all(self) -> list[Agent]:
        return list(self._agents.values())

    async def create(self, profile: AgentProfile) -> Agent:
        agent = Agent(**profile.model_dump())
        self._agents[agent.id] = agent
        return agent


class InMemoryTaskStore(TaskStore):
    """Task store returning copies so callers never mutate stored state directly."""

    def __init__(self, artifact_store: Optional[ArtifactStore] = None):
        self._tasks: dict[str, Task] = {}
        self._lock = asyncio.Lock()
        self.artifact_store = artifact_store

    async def create(self, task: Task) -> Task:
        async with self._lock:
            self._tasks[task.id] = task.model_copy(deep=True)
            return task.model_copy(deep=True)

    async def get(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def update(self, task_id: str, **changes) -> Task:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            updated = task.model_copy(update=changes, deep=True)
            self._tasks[task_id] = updated
            return updated.model_copy(deep=True)

    async def list_by_workflow(self, workflow_id: str) -> list[Task]:
        return [
            task.model_copy(deep=True)
            for task in self._tasks.values()
            if task.workflow_id == workflow_id
        ]

    async def validate_and_update_requirements(
        self, task_id: str
    ) -> RequirementValidationReport:
        """Mark requirements covered by an artifact that mentions most of their keywords."""
        task = await self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        artifacts = (
            await self.artifact_store.list_by_task(task_id) if self.artifact_store else []
        )

        checks = []
        for req in task.requirements:
            if req.status == RequirementStatus.SATISFIED:
                checks.append(
                    RequirementCheck(
                        requirement_id=req.id,
                        status=req.status,
                        evidence=[req.evidence] if req.evidence else [],
                    )
                )
                continue
            keywords = extract_keywords(req.description)
            status = RequirementStatus.PENDING
            evidence: list[str] = []
            for artifact in artifacts:
                if req.id not in artifact.validates:
                    continue
                content = artifact.content.lower()
                matched = [kw for kw in keywords if kw in content]
                if not keywords or len(matched) * 2 > len(keywords):
                    status = RequirementStatus.SATISFIED
                    evidence.append(f"{artifact.title}: {', '.join(matched) or 'covered'}")
                    break
            checks.append(
                RequirementCheck(requirement_id=req.id, status=status, evidence=evidence)
            )

        statuses = {check.requirement_id: check.status for check in checks}
        requirements = [
            req.model_copy(update={"status": statuses[req.id]}) for req in task.requirements
        ]
        await self.update(task_id, requirements=requirements)

        satisfied = sum(1 for c in checks if c.status == RequirementStatus.SATISFIED)
        return RequirementValidationReport(
            task_id=task_id,
            satisfaction_rate=satisfaction_rate(satisfied, len(checks)),
            results=checks,
        )

    async def mark_requirement_satisfied(
        self, task_id: str, requirement_id: str, evidence: str
    ) -> None:
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            for req in task.requirements:
                if req.id == requirement_id:
                    req.status = RequirementStatus.SATISFIED
                    req.evidence = evidence
                    req.satisfied_at = datetime.now()
                    return
        logger.warning("Requirement %s not found on task %s", requirement_id, task_id)


class InMemoryArtifactStore(ArtifactStore):
    """Artifacts grouped by task in creation order."""

    def __init__(self):
        self._artifacts: dict[str, Artifact] = {}

    async def create(self, artifact: Artifact) -> Artifact:
        self._artifacts[artifact.id] = artifact
        return artifact

    async def list_by_task(self, task_id: str) -> list[Artifact]:
        return [a for a in self._artifacts.values() if a.task_id == task_id]


class InMemoryContextBroker(ContextBroker):
    """Context entries held until they expire."""

    def __init__(self):
        self._entries: list[SharedContext] = []

    async def publish(self, entry: SharedContext) -> SharedContext:
        dropped = self.cleanup_expired()
        if dropped:
            logger.debug("Dropped %d expired context entries", dropped)
        self._entries.append(entry)
        return entry

    async def relevant_for(
        self,
        agent_id: str,
        keywords: list[str],
        context_types: Optional[list[ContextType]] = None,
    ) -> list[SharedContext]:
        now = datetime.now()
        lowered = [kw.lower() for kw in keywords]
        relevant = []
        for entry in self._entries:
            if entry.is_expired(now):
                continue
            if agent_id in entry.relevant_agents:
                relevant.append(entry)
                continue
            if context_types and entry.context_type not in context_types:
                continue
            haystack = f"{entry.title} {entry.content}".lower()
            if any(kw in haystack for kw in lowered):
                relevant.append(entry)
        return relevant

    def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = datetime.now()
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if not entry.is_expired(now)]
        return before - len(self._entries)
