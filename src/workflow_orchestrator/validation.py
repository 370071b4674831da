"""Validator/Refiner - task-level judgments, requirement bookkeeping and refinement."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .cancellation import CancellationToken, guarded
from .errors import OrchestrationCancelledError, TaskNotFoundError
from .execution import TaskExecutor
from .interfaces import AgentRegistry, ArtifactStore, InferenceService, TaskStore
from .models import (
    Agent,
    ExecutionResult,
    RequirementValidationReport,
    Task,
    TaskComplexity,
    TaskStatus,
    ValidationVerdict,
)
from .prompts import build_refinement_prompt, build_validation_prompt
from .response_parsing import parse_validation_verdict
from .settings import OrchestratorSettings

logger = logging.getLogger(__name__)


@dataclass
class RefinementOutcome:
    """What a refinement cycle did for one validation failure."""

    task_id: str
    passes: int = 0
    refinement_task_ids: list[str] = field(default_factory=list)
    results: list[ExecutionResult] = field(default_factory=list)
    final_verdict: Optional[ValidationVerdict] = None
    # True only when the last refinement was re-validated and still failed.
    exhausted: bool = False

    @property
    def errors(self) -> list[str]:
        messages = [err for result in self.results for err in result.errors]
        if self.exhausted and self.final_verdict is not None:
            messages.append(
                f"Task {self.task_id} still failing after {self.passes} refinement(s): "
                f"{self.final_verdict.reason}"
            )
        return messages


class Validator:
    """Judges task completion and drives bounded refinement."""

    def __init__(
        self,
        registry: AgentRegistry,
        inference: InferenceService,
        task_store: TaskStore,
        artifact_store: ArtifactStore,
        executor: TaskExecutor,
        settings: OrchestratorSettings,
    ):
        self.registry = registry
        self.inference = inference
        self.task_store = task_store
        self.artifact_store = artifact_store
        self.executor = executor
        self.settings = settings

    async def validate_task_completion(
        self, task_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> ValidationVerdict:
        """Ask the validator agent whether the task's deliverables meet its requirements."""
        validator = await guarded(
            self.registry.find_by_id(self.settings.validator_agent_id), cancel_token
        )
        if validator is None:
            logger.warning("Validator agent unavailable, treating task %s as passed", task_id)
            return ValidationVerdict(validation_passed=True, reason="Validator agent unavailable")

        try:
            task = await self._require_task(task_id, cancel_token)
            artifacts = await guarded(self.artifact_store.list_by_task(task_id), cancel_token)
            response = await guarded(
                self.inference.generate(
                    validator.instructions,
                    build_validation_prompt(
                        task, artifacts, self.settings.artifact_preview_chars
                    ),
                    temperature=validator.temperature,
                ),
                cancel_token,
                timeout=self.settings.inference_timeout_seconds,
            )
        except OrchestrationCancelledError:
            raise
        except Exception as exc:
            logger.warning("Validation of task %s errored: %s", task_id, exc)
            return ValidationVerdict(validation_passed=False, reason=f"Validation error: {exc}")

        verdict = parse_validation_verdict(response)
        logger.info(
            "Task %s validation %s", task_id, "passed" if verdict.validation_passed else "failed"
        )
        return verdict

    async def create_refinement_task(
        self,
        task_id: str,
        verdict: ValidationVerdict,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Task:
        """Create a child task carrying the original's unsatisfied requirements."""
        original = await self._require_task(task_id, cancel_token)
        refinement = Task(
            workflow_id=original.workflow_id,
            title=f"Refinement: {original.title}",
            description=f"Address validation issues: {verdict.reason}",
            complexity=TaskComplexity.SIMPLE,
            dependencies=[original.id],
            requirements=original.unsatisfied_requirements(),
            attachments=list(original.attachments),
            parent_task_id=original.id,
            assigned_agent_id=original.assigned_agent_id,
            due_date=datetime.now() + timedelta(minutes=self.settings.refinement_due_minutes),
        )
        created = await guarded(self.task_store.create(refinement), cancel_token)
        logger.info("Created refinement task %s for task %s", created.id, original.id)
        return created

    async def refine(
        self,
        task_id: str,
        agent: Agent,
        verdict: ValidationVerdict,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RefinementOutcome:
        """Run refinement tasks until one passes or ``max_refinement_passes`` is spent.

        A refinement is re-validated only when another pass could follow or when
        exhausted refinement must fail the task; otherwise its outcome is accepted
        best-effort.
        """
        outcome = RefinementOutcome(task_id=task_id, final_verdict=verdict)
        if verdict.validation_passed:
            return outcome

        budget = self.settings.max_refinement_passes
        must_confirm = self.settings.fail_after_exhausted_refinement
        current_id = task_id
        while outcome.passes < budget:
            refinement = await self.create_refinement_task(current_id, verdict, cancel_token)
            result = await self.executor.execute_with_agent(
                refinement, agent, build_refinement_prompt(verdict.reason), cancel_token
            )
            outcome.passes += 1
            outcome.refinement_task_ids.append(refinement.id)
            outcome.results.append(result)
            if result.success:
                await self.validate_requirements(refinement.id, cancel_token)
                await guarded(
                    self.task_store.update(
                        refinement.id,
                        status=TaskStatus.COMPLETED,
                        actual_passes=1,
                        completed_at=datetime.now(),
                    ),
                    cancel_token,
                )

            if outcome.passes >= budget and not must_confirm:
                outcome.final_verdict = None
                return outcome
            verdict = await self.validate_task_completion(refinement.id, cancel_token)
            outcome.final_verdict = verdict
            if verdict.validation_passed:
                return outcome
            current_id = refinement.id

        outcome.exhausted = True
        logger.warning(
            "Task %s still failing after %d refinement pass(es)", task_id, outcome.passes
        )
        return outcome

    async def validate_requirements(
        self, task_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> RequirementValidationReport:
        """Re-evaluate requirement statuses and persist every satisfied one."""
        report = await guarded(
            self.task_store.validate_and_update_requirements(task_id), cancel_token
        )
        for check in report.results:
            if check.requirement_id in report.satisfied_ids:
                await guarded(
                    self.task_store.mark_requirement_satisfied(
                        task_id, check.requirement_id, "; ".join(check.evidence)
                    ),
                    cancel_token,
                )
        logger.info(
            "Task %s requirement satisfaction rate: %.1f%%", task_id, report.satisfaction_rate
        )
        return report

    async def _require_task(
        self, task_id: str, cancel_token: Optional[CancellationToken]
    ) -> Task:
        task = await guarded(self.task_store.get(task_id), cancel_token)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task
