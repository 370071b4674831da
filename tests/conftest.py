"""Shared test fixtures."""

from typing import Callable, Optional

import pytest

from workflow_orchestrator.inference import ScriptedInferenceService, demo_inference_service
from workflow_orchestrator.models import (
    Agent,
    Requirement,
    RequirementPriority,
    RequirementType,
    Task,
)
from workflow_orchestrator.orchestrator import WorkflowOrchestrator
from workflow_orchestrator.settings import OrchestratorSettings

PASS_REPLY = '{"validation_passed": true, "reason": "All requirements met"}'
FAIL_REPLY = '{"validation_passed": false, "reason": "Missing the revenue table"}'


@pytest.fixture
def settings() -> OrchestratorSettings:
    """Default settings, isolated from any local .env file."""
    return OrchestratorSettings(_env_file=None)


@pytest.fixture
def make_orchestrator(settings) -> Callable[..., WorkflowOrchestrator]:
    """Factory building an in-memory orchestrator around a given inference service."""

    def factory(
        inference: Optional[ScriptedInferenceService] = None,
        agents: Optional[list[Agent]] = None,
        **overrides,
    ) -> WorkflowOrchestrator:
        effective = settings.model_copy(update=overrides) if overrides else settings
        return WorkflowOrchestrator.in_memory(
            inference or demo_inference_service(), settings=effective, agents=agents
        )

    return factory


@pytest.fixture
def writer_agent() -> Agent:
    """Writer agent handed straight to the executor."""
    return Agent(
        id="agent-writer",
        name="Wren",
        role="Technical Writer",
        instructions="You write clear documentation.",
        tags=["writing", "documentation"],
    )


def make_task(title: str, task_id: Optional[str] = None, dependencies=(), **fields) -> Task:
    """Task with one functional requirement derived from its title."""
    requirements = fields.pop(
        "requirements",
        [
            Requirement(
                type=RequirementType.FUNCTIONAL,
                description=f"Deliver {title.lower()}",
                priority=RequirementPriority.MUST,
            )
        ],
    )
    kwargs = dict(
        title=title,
        description=f"Work on {title}",
        dependencies=list(dependencies),
        requirements=requirements,
        workflow_id=fields.pop("workflow_id", "wf-test"),
        **fields,
    )
    if task_id is not None:
        kwargs["id"] = task_id
    return Task(**kwargs)
