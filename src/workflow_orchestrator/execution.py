"""Task execution unit - runs one task with one agent and records its deliverable."""

import logging
import re
from datetime import datetime
from typing import Optional

from .cancellation import CancellationToken, guarded
from .errors import OrchestrationCancelledError, TaskExecutionError
from .interfaces import ArtifactStore, ContextBroker, InferenceService, TaskStore
from .models import (
    Agent,
    Artifact,
    ArtifactStatus,
    ArtifactType,
    ContextType,
    ExecutionResult,
    SharedContext,
    Task,
    TaskStatus,
)
from .prompts import build_enriched_prompt, build_system_prompt
from .settings import OrchestratorSettings

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "this", "that", "with", "have", "will", "from", "they", "been",
    "were", "said", "what", "when", "where", "would", "could", "should",
})

# First matching category wins.
ARTIFACT_TYPE_KEYWORDS: list[tuple[ArtifactType, tuple[str, ...]]] = [
    (ArtifactType.CODE, ("```", "function", "class")),
    (ArtifactType.ANALYSIS, ("analysis", "findings", "data")),
    (ArtifactType.DESIGN, ("design", "architecture", "diagram")),
    (ArtifactType.PLAN, ("plan", "steps", "roadmap")),
    (ArtifactType.REPORT, ("report", "summary", "conclusion")),
]


def extract_keywords(text: str) -> list[str]:
    """Lowercase words longer than three characters, minus stop words, in first-seen order."""
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    seen: dict[str, None] = {}
    for word in words:
        if len(word) > 3 and word not in STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)


def infer_artifact_type(content: str) -> ArtifactType:
    lowered = content.lower()
    for artifact_type, keywords in ARTIFACT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return artifact_type
    return ArtifactType.DOCUMENT


class TaskExecutor:
    """Executes a task with an agent; failures stay inside the returned result."""

    def __init__(
        self,
        inference: InferenceService,
        task_store: TaskStore,
        artifact_store: ArtifactStore,
        context_broker: ContextBroker,
        settings: OrchestratorSettings,
    ):
        self.inference = inference
        self.task_store = task_store
        self.artifact_store = artifact_store
        self.context_broker = context_broker
        self.settings = settings

    async def execute_with_agent(
        self,
        task: Task,
        agent: Agent,
        prompt: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """Run ``task`` with ``agent``.

        Any failure marks the task failed and is returned as ``success=False``;
        only cancellation propagates.
        """
        try:
            return await self._execute(task, agent, prompt, cancel_token)
        except OrchestrationCancelledError:
            raise
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning("Task %s failed with agent %s: %s", task.id, agent.id, message)
            try:
                await self.task_store.update(task.id, status=TaskStatus.FAILED)
            except Exception:
                logger.exception("Could not mark task %s as failed", task.id)
            return ExecutionResult(success=False, task_id=task.id, errors=[message])

    async def _execute(
        self,
        task: Task,
        agent: Agent,
        prompt: str,
        cancel_token: Optional[CancellationToken],
    ) -> ExecutionResult:
        task = await guarded(
            self.task_store.update(
                task.id,
                status=TaskStatus.IN_PROGRESS,
                assigned_agent_id=agent.id,
                assigned_at=datetime.now(),
            ),
            cancel_token,
        )

        contexts = await guarded(
            self.context_broker.relevant_for(agent.id, extract_keywords(prompt)),
            cancel_token,
        )
        enriched = build_enriched_prompt(prompt, task, contexts)
        system_prompt = build_system_prompt(agent, task)

        logger.info("Executing task %s (%s) with agent %s", task.id, task.title, agent.name)
        content = await guarded(
            self.inference.generate(
                system_prompt,
                enriched,
                attachments=task.attachments or None,
                temperature=agent.temperature,
            ),
            cancel_token,
            timeout=self.settings.inference_timeout_seconds,
        )
        if not content.strip():
            raise TaskExecutionError(task.id, f"Agent {agent.name} returned an empty deliverable")

        previous = await guarded(self.artifact_store.list_by_task(task.id), cancel_token)
        if task.parent_task_id:
            previous += await guarded(
                self.artifact_store.list_by_task(task.parent_task_id), cancel_token
            )
        artifact = await guarded(
            self.artifact_store.create(
                Artifact(
                    task_id=task.id,
                    agent_id=agent.id,
                    title=f"{task.title} - Deliverable",
                    description=f"Output from {agent.name} for task: {task.title}",
                    type=infer_artifact_type(content),
                    content=content,
                    version=len(previous) + 1,
                    status=ArtifactStatus.FINAL,
                    validates=task.requirement_ids(),
                )
            ),
            cancel_token,
        )
        await guarded(
            self.task_store.update(task.id, artifacts=[*task.artifacts, artifact.id]),
            cancel_token,
        )

        context = await guarded(
            self.context_broker.publish(
                SharedContext.expiring_in(
                    self.settings.context_ttl_hours,
                    task_id=task.id,
                    agent_id=agent.id,
                    context_type=ContextType.FINDING,
                    title=f"Task completion: {task.title}",
                    content=(
                        f"Agent {agent.name} completed task with artifact: {artifact.title}"
                    ),
                    relevant_agents=[agent.id],
                )
            ),
            cancel_token,
        )
        return ExecutionResult(
            success=True, task_id=task.id, artifacts=[artifact], context=[context]
        )
