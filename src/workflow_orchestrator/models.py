"""Shared data models for tasks, agents, artifacts and orchestration results."""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def new_id() -> str:
    """Return a fresh random identifier."""
    return str(uuid.uuid4())


class TaskComplexity(str, Enum):
    """Complexity class assigned by the prompt analyzer."""
    SIMPLE = "simple"
    COMPLEX = "complex"


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class RequirementType(str, Enum):
    """Kind of acceptance criterion."""
    FUNCTIONAL = "functional"
    NON_FUNCTIONAL = "non_functional"
    CONSTRAINT = "constraint"


class RequirementPriority(str, Enum):
    """MoSCoW priority of a requirement."""
    MUST = "must"
    SHOULD = "should"
    COULD = "could"
    WONT = "wont"


class RequirementStatus(str, Enum):
    """Satisfaction status of a requirement."""
    PENDING = "pending"
    SATISFIED = "satisfied"
    FAILED = "failed"


class ArtifactType(str, Enum):
    """Category of a produced deliverable."""
    DOCUMENT = "document"
    CODE = "code"
    DESIGN = "design"
    ANALYSIS = "analysis"
    PLAN = "plan"
    REPORT = "report"


class ArtifactStatus(str, Enum):
    """Status of a produced deliverable."""
    DRAFT = "draft"
    FINAL = "final"


class ContextType(str, Enum):
    """Kind of shared context entry."""
    DECISION = "decision"
    FINDING = "finding"
    RESOURCE = "resource"
    CONSTRAINT = "constraint"


class Requirement(BaseModel):
    """An individual acceptance criterion attached to a task."""

    id: str = Field(default_factory=new_id)
    type: RequirementType = RequirementType.FUNCTIONAL
    description: str
    priority: RequirementPriority = RequirementPriority.SHOULD
    status: RequirementStatus = RequirementStatus.PENDING
    detected_at: datetime = Field(default_factory=datetime.now)
    satisfied_at: Optional[datetime] = None
    evidence: Optional[str] = None


class TaskAttachment(BaseModel):
    """A file supplied by the user alongside the prompt."""

    name: str
    mime_type: str
    size: int = Field(default=0, ge=0)
    data: str = ""

    @property
    def size_kb(self) -> float:
        return round(self.size / 1024, 1)

    @property
    def inference_kind(self) -> str:
        """Classify the attachment for the inference service."""
        if self.mime_type.startswith("image/"):
            return "image"
        if self.mime_type == "text/plain":
            return "text"
        return "document"


class Task(BaseModel):
    """A unit of work with a status, requirements and dependencies."""

    id: str = Field(default_factory=new_id)
    workflow_id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    complexity: TaskComplexity = TaskComplexity.SIMPLE
    status: TaskStatus = TaskStatus.PENDING
    dependencies: list[str] = Field(default_factory=list)
    requirements: list[Requirement] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)
    attachments: list[TaskAttachment] = Field(default_factory=list)
    parent_task_id: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    estimated_passes: int = 1
    actual_passes: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def unsatisfied_requirements(self) -> list[Requirement]:
        """Requirements that have not reached the satisfied state."""
        return [
            req.model_copy()
            for req in self.requirements
            if req.status != RequirementStatus.SATISFIED
        ]

    def requirement_ids(self) -> list[str]:
        return [req.id for req in self.requirements]

    def merge_requirements(self, extra: list[Requirement]) -> None:
        """Append requirements whose ids are not already attached."""
        known = set(self.requirement_ids())
        for req in extra:
            if req.id not in known:
                self.requirements.append(req)
                known.add(req.id)


class Agent(BaseModel):
    """A capability profile bound to inference calls."""

    id: str = Field(default_factory=new_id)
    name: str
    role: str = ""
    instructions: str = ""
    tags: list[str] = Field(default_factory=list)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class AgentSpec(BaseModel):
    """A requested capability, resolved to a concrete agent by the team builder."""

    name: str
    role: str
    required_skills: list[str] = Field(default_factory=list)
    estimated_experience: str = ""
    specialization: str = ""


class AgentProfile(BaseModel):
    """Payload used to create a new agent in the registry."""

    name: str
    role: str
    instructions: str
    tags: list[str] = Field(default_factory=list)
    temperature: float = 0.7


class Artifact(BaseModel):
    """A deliverable attributed to one agent execution."""

    id: str = Field(default_factory=new_id)
    task_id: str
    agent_id: str
    title: str
    description: str = ""
    type: ArtifactType = ArtifactType.DOCUMENT
    format: str = "markdown"
    content: str
    version: int = 1
    status: ArtifactStatus = ArtifactStatus.FINAL
    dependencies: list[str] = Field(default_factory=list)
    validates: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class SharedContext(BaseModel):
    """A write-once, time-bounded finding shared between agents."""

    id: str = Field(default_factory=new_id)
    task_id: str
    agent_id: str
    context_type: ContextType = ContextType.FINDING
    title: str
    content: str
    relevant_agents: list[str] = Field(default_factory=list)
    expiry_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry_date is None:
            return False
        return self.expiry_date <= (now or datetime.now())

    @classmethod
    def expiring_in(cls, hours: float, **fields) -> "SharedContext":
        return cls(expiry_date=datetime.now() + timedelta(hours=hours), **fields)


class ExecutionResult(BaseModel):
    """Outcome of one agent execution; folded into task and artifact state."""

    success: bool
    task_id: Optional[str] = None
    artifacts: list[Artifact] = Field(default_factory=list)
    context: list[SharedContext] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ValidationVerdict(BaseModel):
    """Task-level yes/no judgment with a reason."""

    validation_passed: bool
    reason: str = ""


class RequirementCheck(BaseModel):
    """Per-requirement outcome of requirement-level validation."""

    requirement_id: str
    status: RequirementStatus
    evidence: list[str] = Field(default_factory=list)


class RequirementValidationReport(BaseModel):
    """Result of a task store's requirement validation routine."""

    task_id: str
    satisfaction_rate: float = 0.0
    results: list[RequirementCheck] = Field(default_factory=list)

    @property
    def satisfied_ids(self) -> list[str]:
        return [
            r.requirement_id
            for r in self.results
            if r.status == RequirementStatus.SATISFIED
        ]


class PromptAnalysis(BaseModel):
    """What the prompt analyzer returns for a free-text request."""

    complexity: TaskComplexity
    requirements: list[Requirement] = Field(default_factory=list)
    suggested_agents: list[AgentSpec] = Field(default_factory=list)
    required_skills: list[str] = Field(default_factory=list)
    estimated_passes: int = Field(default=1, ge=1)
    estimated_duration_minutes: Optional[int] = None


class SubTaskDraft(BaseModel):
    """A subtask proposed by a breakdown; dependencies index into the subtask list."""

    title: str
    description: str = ""
    complexity: TaskComplexity = TaskComplexity.SIMPLE
    requirements: list[Requirement] = Field(default_factory=list)
    depends_on: list[int] = Field(default_factory=list)
    estimated_passes: int = 1


class TaskBreakdown(BaseModel):
    """Main task plus subtasks with dependency edges."""

    main_task: Task
    sub_tasks: list[SubTaskDraft] = Field(default_factory=list)


class OrchestrationResult(BaseModel):
    """The sole return value of the top-level entry point."""

    success: bool
    workflow_id: str = ""
    main_task_id: str = ""
    sub_task_ids: list[str] = Field(default_factory=list)
    artifacts: list[Artifact] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


def satisfaction_rate(satisfied: int, total: int) -> float:
    """Percentage of satisfied requirements; zero when there are none."""
    if total <= 0:
        return 0.0
    return satisfied / total * 100
