"""Abstract base classes for the collaborators the orchestrator consumes."""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from .models import (
    Agent,
    AgentProfile,
    Artifact,
    ContextType,
    PromptAnalysis,
    RequirementValidationReport,
    SharedContext,
    Task,
    TaskAttachment,
    TaskBreakdown,
)


class InferenceService(ABC):
    """Streaming text generation backed by a language model."""

    @property
    def is_configured(self) -> bool:
        """Whether a provider is available to serve requests."""
        return True

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        attachments: Optional[list[TaskAttachment]] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Yield response chunks for the given messages."""
        pass

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        attachments: Optional[list[TaskAttachment]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Accumulate the streamed response into a single string."""
        chunks: list[str] = []
        async for chunk in self.stream(system_prompt, user_prompt, attachments, temperature):
            chunks.append(chunk)
        return "".join(chunks)


class PromptAnalyzer(ABC):
    """Turns free text into a complexity class, requirements and agent specs."""

    @abstractmethod
    async def analyze(self, prompt: str) -> PromptAnalysis:
        """Classify the prompt and derive requirements."""
        pass

    @abstractmethod
    async def breakdown(
        self, prompt: str, analysis: PromptAnalysis, workflow_id: str
    ) -> TaskBreakdown:
        """Split a complex prompt into a main task and dependent subtasks."""
        pass


class AgentRegistry(ABC):
    """Resolves and creates agent profiles."""

    @abstractmethod
    async def find_by_id(self, agent_id: str) -> Optional[Agent]:
        pass

    @abstractmethod
    async def find_all(self) -> list[Agent]:
        pass

    @abstractmethod
    async def create(self, profile: AgentProfile) -> Agent:
        pass


class TaskStore(ABC):
    """CRUD and requirement bookkeeping for task records."""

    @abstractmethod
    async def create(self, task: Task) -> Task:
        pass

    @abstractmethod
    async def get(self, task_id: str) -> Optional[Task]:
        pass

    @abstractmethod
    async def update(self, task_id: str, **changes) -> Task:
        """Apply field changes to a stored task and return the updated copy."""
        pass

    @abstractmethod
    async def list_by_workflow(self, workflow_id: str) -> list[Task]:
        pass

    @abstractmethod
    async def validate_and_update_requirements(
        self, task_id: str
    ) -> RequirementValidationReport:
        """Re-evaluate every requirement of a task and persist the statuses."""
        pass

    @abstractmethod
    async def mark_requirement_satisfied(
        self, task_id: str, requirement_id: str, evidence: str
    ) -> None:
        pass


class ArtifactStore(ABC):
    """Persists produced deliverables."""

    @abstractmethod
    async def create(self, artifact: Artifact) -> Artifact:
        pass

    @abstractmethod
    async def list_by_task(self, task_id: str) -> list[Artifact]:
        pass


class ContextBroker(ABC):
    """Publish/subscribe for short-lived cross-agent findings."""

    @abstractmethod
    async def publish(self, entry: SharedContext) -> SharedContext:
        pass

    @abstractmethod
    async def relevant_for(
        self,
        agent_id: str,
        keywords: list[str],
        context_types: Optional[list[ContextType]] = None,
    ) -> list[SharedContext]:
        """Return unexpired entries addressed to the agent or matching a keyword."""
        pass
