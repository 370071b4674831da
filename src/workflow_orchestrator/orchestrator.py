"""Orchestrator - main entry point tying analysis, team building, scheduling and validation."""

import asyncio
import hashlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional

from .analyzer import RuleBasedPromptAnalyzer, extract_task_title
from .cancellation import CancellationToken, guarded
from .errors import (
    AlreadyInProgressError,
    CircularDependencyError,
    NoProviderConfiguredError,
    OrchestrationCancelledError,
    TaskNotFoundError,
)
from .execution import TaskExecutor
from .interfaces import (
    AgentRegistry,
    ArtifactStore,
    ContextBroker,
    InferenceService,
    PromptAnalyzer,
    TaskStore,
)
from .models import (
    Agent,
    Artifact,
    ExecutionResult,
    OrchestrationResult,
    PromptAnalysis,
    SubTaskDraft,
    Task,
    TaskAttachment,
    TaskComplexity,
    TaskStatus,
    new_id,
)
from .prompts import generic_agent_spec
from .scheduler import DagScheduler
from .settings import OrchestratorSettings, get_settings
from .stores import (
    InMemoryAgentRegistry,
    InMemoryArtifactStore,
    InMemoryContextBroker,
    InMemoryTaskStore,
)
from .strategy import select_strategy, uses_team_dispatch
from .team_builder import TeamBuilder
from .validation import Validator

logger = logging.getLogger(__name__)


def orchestration_key(prompt: str, existing_task_id: Optional[str] = None) -> str:
    """The existing task id, else a stable digest of the prompt."""
    if existing_task_id:
        return existing_task_id
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:32]


class WorkflowOrchestrator:
    """Runs natural-language requests through single- or multi-pass execution.

    Each instance tracks its own in-flight orchestration keys; a second call with a
    key that is still running fails fast with ``AlreadyInProgressError``.
    """

    def __init__(
        self,
        inference: InferenceService,
        analyzer: PromptAnalyzer,
        registry: AgentRegistry,
        task_store: TaskStore,
        artifact_store: ArtifactStore,
        context_broker: ContextBroker,
        settings: Optional[OrchestratorSettings] = None,
    ):
        self.inference = inference
        self.analyzer = analyzer
        self.registry = registry
        self.task_store = task_store
        self.artifact_store = artifact_store
        self.context_broker = context_broker
        self.settings = settings or get_settings()

        self.executor = TaskExecutor(
            inference, task_store, artifact_store, context_broker, self.settings
        )
        self.team_builder = TeamBuilder(registry, inference, self.settings)
        self.validator = Validator(
            registry, inference, task_store, artifact_store, self.executor, self.settings
        )
        self.scheduler = DagScheduler(self.executor)
        self._in_flight: set[str] = set()

    @classmethod
    def in_memory(
        cls,
        inference: InferenceService,
        settings: Optional[OrchestratorSettings] = None,
        analyzer: Optional[PromptAnalyzer] = None,
        agents: Optional[list[Agent]] = None,
    ) -> "WorkflowOrchestrator":
        """Orchestrator over fresh in-memory stores and a seeded agent registry."""
        settings = settings or get_settings()
        artifact_store = InMemoryArtifactStore()
        return cls(
            inference=inference,
            analyzer=analyzer or RuleBasedPromptAnalyzer(settings.default_task_duration_minutes),
            registry=InMemoryAgentRegistry.with_designated_agents(settings, agents),
            task_store=InMemoryTaskStore(artifact_store),
            artifact_store=artifact_store,
            context_broker=InMemoryContextBroker(),
            settings=settings,
        )

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    @asynccontextmanager
    async def _claim(self, key: str) -> AsyncIterator[str]:
        if key in self._in_flight:
            raise AlreadyInProgressError(key)
        self._in_flight.add(key)
        try:
            yield key
        finally:
            self._in_flight.discard(key)

    async def orchestrate(
        self,
        prompt: str,
        existing_task_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        attachments: Optional[list[TaskAttachment]] = None,
    ) -> OrchestrationResult:
        """Run one orchestration for ``prompt``.

        Raises:
            NoProviderConfiguredError: the inference service has no provider.
            AlreadyInProgressError: the same orchestration key is already running.
            TaskNotFoundError: ``existing_task_id`` does not resolve.
            OrchestrationCancelledError: ``cancel_token`` fired mid-run.
        """
        if not self.inference.is_configured:
            raise NoProviderConfiguredError()

        key = orchestration_key(prompt, existing_task_id)
        async with self._claim(key):
            existing: Optional[Task] = None
            if existing_task_id:
                existing = await guarded(self.task_store.get(existing_task_id), cancel_token)
                if existing is None:
                    raise TaskNotFoundError(existing_task_id)
                if existing.status != TaskStatus.PENDING:
                    logger.info(
                        "Task %s already %s, replaying recorded artifacts",
                        existing.id, existing.status.value,
                    )
                    return await self._replay(existing, cancel_token)

            analysis = await guarded(self.analyzer.analyze(prompt), cancel_token)
            strategy = select_strategy(analysis)
            logger.info(
                "Orchestrating %s with %s strategy (%d requirement(s))",
                key, strategy.value, len(analysis.requirements),
            )
            if uses_team_dispatch(strategy):
                return await self._run_multi_pass(
                    prompt, analysis, existing, attachments, cancel_token
                )
            return await self._run_single_pass(
                prompt, analysis, existing, attachments, cancel_token
            )

    async def _replay(
        self, task: Task, cancel_token: Optional[CancellationToken]
    ) -> OrchestrationResult:
        workflow = await guarded(self.task_store.list_by_workflow(task.workflow_id), cancel_token)
        # Refinement tasks depend on their parent; subtasks of a breakdown do not.
        sub_task_ids = [
            t.id for t in workflow
            if t.parent_task_id == task.id and task.id not in t.dependencies
        ]
        descendants = [task.id]
        frontier = {task.id}
        while frontier:
            children = [t.id for t in workflow if t.parent_task_id in frontier]
            descendants.extend(children)
            frontier = set(children)
        listings = await asyncio.gather(
            *(
                guarded(self.artifact_store.list_by_task(task_id), cancel_token)
                for task_id in descendants
            )
        )
        return OrchestrationResult(
            success=True,
            workflow_id=task.workflow_id,
            main_task_id=task.id,
            sub_task_ids=sub_task_ids,
            artifacts=[artifact for listing in listings for artifact in listing],
        )

    def _due_date(self, analysis: PromptAnalysis) -> datetime:
        minutes = analysis.estimated_duration_minutes or self.settings.default_task_duration_minutes
        return datetime.now() + timedelta(minutes=minutes)

    async def _run_single_pass(
        self,
        prompt: str,
        analysis: PromptAnalysis,
        existing: Optional[Task],
        attachments: Optional[list[TaskAttachment]],
        cancel_token: Optional[CancellationToken],
    ) -> OrchestrationResult:
        if existing is not None:
            existing.merge_requirements(analysis.requirements)
            main = await guarded(
                self.task_store.update(
                    existing.id,
                    complexity=TaskComplexity.SIMPLE,
                    estimated_passes=1,
                    due_date=self._due_date(analysis),
                    requirements=existing.requirements,
                    attachments=existing.attachments + list(attachments or []),
                ),
                cancel_token,
            )
        else:
            main = await guarded(
                self.task_store.create(
                    Task(
                        workflow_id=new_id(),
                        title=extract_task_title(prompt),
                        description=prompt,
                        complexity=TaskComplexity.SIMPLE,
                        requirements=list(analysis.requirements),
                        attachments=list(attachments or []),
                        estimated_passes=1,
                        due_date=self._due_date(analysis),
                    )
                ),
                cancel_token,
            )

        try:
            spec = (
                analysis.suggested_agents[0]
                if analysis.suggested_agents
                else generic_agent_spec(analysis.required_skills)
            )
            agent = await self.team_builder.resolve(spec, cancel_token)
            # A failed execution is reported in errors; validation still runs.
            result = await self.executor.execute_with_agent(main, agent, prompt, cancel_token)
            verdict = await self.validator.validate_task_completion(main.id, cancel_token)
            outcome = await self.validator.refine(main.id, agent, verdict, cancel_token)
            await self.validator.validate_requirements(main.id, cancel_token)

            failed = outcome.exhausted and self.settings.fail_after_exhausted_refinement
            current = await guarded(self.task_store.get(main.id), cancel_token)
            await guarded(
                self.task_store.update(
                    main.id,
                    status=TaskStatus.FAILED if failed else TaskStatus.COMPLETED,
                    actual_passes=(current.actual_passes if current else 0) + 1,
                    completed_at=None if failed else datetime.now(),
                ),
                cancel_token,
            )
            artifacts = await guarded(self.artifact_store.list_by_task(main.id), cancel_token)
            artifacts += [a for r in outcome.results for a in r.artifacts]
            return OrchestrationResult(
                success=not failed,
                workflow_id=main.workflow_id,
                main_task_id=main.id,
                artifacts=artifacts,
                errors=[*result.errors, *outcome.errors],
            )
        except OrchestrationCancelledError:
            raise
        except Exception as exc:
            logger.error("Single-pass execution failed for task %s", main.id, exc_info=True)
            await self.task_store.update(main.id, status=TaskStatus.FAILED)
            return OrchestrationResult(
                success=False,
                workflow_id=main.workflow_id,
                main_task_id=main.id,
                errors=[str(exc) or exc.__class__.__name__],
            )

    async def _run_multi_pass(
        self,
        prompt: str,
        analysis: PromptAnalysis,
        existing: Optional[Task],
        attachments: Optional[list[TaskAttachment]],
        cancel_token: Optional[CancellationToken],
    ) -> OrchestrationResult:
        workflow_id = existing.workflow_id if existing else new_id()
        main: Optional[Task] = None
        try:
            breakdown = await guarded(
                self.analyzer.breakdown(prompt, analysis, workflow_id), cancel_token
            )
            main = await self._adopt_main_task(
                breakdown.main_task, existing, attachments, cancel_token
            )
            sub_tasks = await self._create_sub_tasks(main, breakdown.sub_tasks, cancel_token)

            specs = analysis.suggested_agents or [generic_agent_spec(analysis.required_skills)]
            team = await self.team_builder.build_team(specs, cancel_token)
            logger.info(
                "Coordinating %d subtask(s) with %d agent(s)", len(sub_tasks), len(team)
            )
            results = await self.scheduler.coordinate_team_execution(
                sub_tasks, team, cancel_token
            )
            errors = [err for result in results for err in result.errors]

            refinement_artifacts, refinement_errors, failed_ids = await self._validate_and_refine(
                sub_tasks, team, cancel_token
            )
            errors.extend(refinement_errors)

            for task in [main, *sub_tasks]:
                await self.validator.validate_requirements(task.id, cancel_token)
            await self._finalize_sub_tasks(sub_tasks, results, failed_ids, cancel_token)
            await guarded(
                self.task_store.update(
                    main.id,
                    status=TaskStatus.COMPLETED,
                    actual_passes=analysis.estimated_passes,
                    completed_at=datetime.now(),
                ),
                cancel_token,
            )

            listings = await asyncio.gather(
                *(
                    guarded(self.artifact_store.list_by_task(task.id), cancel_token)
                    for task in [main, *sub_tasks]
                )
            )
            artifacts = [a for listing in listings for a in listing] + refinement_artifacts
            return OrchestrationResult(
                success=True,
                workflow_id=main.workflow_id,
                main_task_id=main.id,
                sub_task_ids=[task.id for task in sub_tasks],
                artifacts=artifacts,
                errors=errors,
            )
        except OrchestrationCancelledError:
            raise
        except Exception as exc:
            if isinstance(exc, CircularDependencyError):
                logger.error("Multi-pass run aborted: %s", exc)
            else:
                logger.error("Multi-pass execution failed", exc_info=True)
            if main is not None:
                await self.task_store.update(main.id, status=TaskStatus.FAILED)
            return OrchestrationResult(
                success=False,
                workflow_id=workflow_id,
                main_task_id=main.id if main is not None else "",
                errors=[str(exc) or exc.__class__.__name__],
            )

    async def _adopt_main_task(
        self,
        drafted: Task,
        existing: Optional[Task],
        attachments: Optional[list[TaskAttachment]],
        cancel_token: Optional[CancellationToken],
    ) -> Task:
        if existing is None:
            drafted.attachments = list(attachments or [])
            return await guarded(self.task_store.create(drafted), cancel_token)

        existing.merge_requirements(drafted.requirements)
        return await guarded(
            self.task_store.update(
                existing.id,
                title=drafted.title,
                description=drafted.description,
                complexity=drafted.complexity,
                estimated_passes=drafted.estimated_passes,
                due_date=drafted.due_date,
                requirements=existing.requirements,
                attachments=existing.attachments + list(attachments or []),
            ),
            cancel_token,
        )

    async def _create_sub_tasks(
        self, main: Task, drafts: list[SubTaskDraft], cancel_token: Optional[CancellationToken]
    ) -> list[Task]:
        """Create subtasks under ``main``, mapping draft indices to task ids."""
        ids = [new_id() for _ in drafts]
        tasks = []
        for index, draft in enumerate(drafts):
            dependencies = [ids[dep] for dep in draft.depends_on if 0 <= dep < len(ids)]
            tasks.append(
                Task(
                    id=ids[index],
                    workflow_id=main.workflow_id,
                    title=draft.title,
                    description=draft.description,
                    complexity=draft.complexity,
                    requirements=draft.requirements,
                    dependencies=dependencies,
                    attachments=list(main.attachments),
                    parent_task_id=main.id,
                    estimated_passes=draft.estimated_passes,
                    due_date=main.due_date,
                )
            )
        return list(
            await asyncio.gather(
                *(guarded(self.task_store.create(task), cancel_token) for task in tasks)
            )
        )

    async def _validate_and_refine(
        self,
        sub_tasks: list[Task],
        team: list[Agent],
        cancel_token: Optional[CancellationToken],
    ) -> tuple[list[Artifact], list[str], set[str]]:
        verdicts = await asyncio.gather(
            *(
                self.validator.validate_task_completion(task.id, cancel_token)
                for task in sub_tasks
            )
        )
        artifacts: list[Artifact] = []
        errors: list[str] = []
        failed_ids: set[str] = set()
        for task, verdict in zip(sub_tasks, verdicts):
            if verdict.validation_passed:
                continue
            current = await guarded(self.task_store.get(task.id), cancel_token)
            assigned = current.assigned_agent_id if current else None
            agent = next((a for a in team if a.id == assigned), team[0])
            logger.info("Refining subtask %s with agent %s", task.id, agent.name)
            outcome = await self.validator.refine(task.id, agent, verdict, cancel_token)
            artifacts.extend(a for r in outcome.results for a in r.artifacts)
            errors.extend(outcome.errors)
            if outcome.exhausted and self.settings.fail_after_exhausted_refinement:
                failed_ids.add(task.id)
        return artifacts, errors, failed_ids

    async def _finalize_sub_tasks(
        self,
        sub_tasks: list[Task],
        results: list[ExecutionResult],
        failed_ids: set[str],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        executed_ok = {r.task_id for r in results if r.success}
        for task in sub_tasks:
            if task.id in failed_ids:
                status = TaskStatus.FAILED
            elif task.id in executed_ok:
                status = TaskStatus.COMPLETED
            else:
                continue
            await guarded(
                self.task_store.update(
                    task.id,
                    status=status,
                    actual_passes=1,
                    completed_at=datetime.now() if status == TaskStatus.COMPLETED else None,
                ),
                cancel_token,
            )
