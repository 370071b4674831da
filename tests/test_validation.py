"""Tests for task validation and refinement."""

import pytest
from conftest import FAIL_REPLY, PASS_REPLY, make_task

from workflow_orchestrator.inference import (
    VALIDATION_MARKER,
    FailingInferenceService,
    demo_inference_service,
)
from workflow_orchestrator.models import (
    Requirement,
    RequirementPriority,
    RequirementStatus,
    TaskStatus,
    ValidationVerdict,
)
from workflow_orchestrator.stores import InMemoryAgentRegistry
from workflow_orchestrator.validation import Validator

FAILED = ValidationVerdict(validation_passed=False, reason="Missing the revenue table")


async def _executed_task(orchestrator, agent, title="Quarterly report", **fields):
    task = await orchestrator.task_store.create(make_task(title, **fields))
    await orchestrator.executor.execute_with_agent(task, agent, task.description)
    return task


@pytest.mark.asyncio
async def test_validation_passes_on_structured_reply(make_orchestrator, writer_agent):
    """A structured pass reply passes validation."""
    orchestrator = make_orchestrator(demo_inference_service(validator_reply=PASS_REPLY))
    task = await _executed_task(orchestrator, writer_agent)

    verdict = await orchestrator.validator.validate_task_completion(task.id)

    assert verdict.validation_passed
    assert verdict.reason == "All requirements met"


@pytest.mark.asyncio
async def test_validation_prompt_previews_deliverables(make_orchestrator, writer_agent):
    """The validator sees the requirements and artifact previews."""
    inference = demo_inference_service(validator_reply=FAIL_REPLY)
    orchestrator = make_orchestrator(inference, artifact_preview_chars=10)
    task = await _executed_task(orchestrator, writer_agent)

    verdict = await orchestrator.validator.validate_task_completion(task.id)

    assert not verdict.validation_passed
    assert verdict.reason == "Missing the revenue table"
    [call] = inference.calls_matching(VALIDATION_MARKER)
    assert "Task: Quarterly report" in call.user_prompt
    assert "- functional: Deliver quarterly report (Priority: must)" in call.user_prompt
    assert "# Delivera..." in call.user_prompt
    assert call.system_prompt.startswith("You review deliverables")


@pytest.mark.asyncio
async def test_missing_validator_agent_counts_as_pass(make_orchestrator, writer_agent, settings):
    """Without a validator agent, validation passes."""
    orchestrator = make_orchestrator()
    task = await _executed_task(orchestrator, writer_agent)
    validator = Validator(
        InMemoryAgentRegistry(),
        orchestrator.inference,
        orchestrator.task_store,
        orchestrator.artifact_store,
        orchestrator.executor,
        settings,
    )

    verdict = await validator.validate_task_completion(task.id)

    assert verdict.validation_passed


@pytest.mark.asyncio
async def test_validator_error_becomes_failed_verdict(make_orchestrator, writer_agent):
    """A validator error becomes a failed verdict."""
    inference = FailingInferenceService(
        fail_on={VALIDATION_MARKER}, rules=demo_inference_service().rules
    )
    orchestrator = make_orchestrator(inference)
    task = await _executed_task(orchestrator, writer_agent)

    verdict = await orchestrator.validator.validate_task_completion(task.id)

    assert not verdict.validation_passed
    assert verdict.reason.startswith("Validation error:")


@pytest.mark.asyncio
async def test_refinement_task_depends_on_original_and_carries_unsatisfied_requirements(
    make_orchestrator, writer_agent
):
    """Refinement tasks depend on the original and carry its open requirements."""
    orchestrator = make_orchestrator()
    done = Requirement(description="Include a summary", status=RequirementStatus.SATISFIED)
    open_ = Requirement(description="Include the revenue table", priority=RequirementPriority.MUST)
    task = await _executed_task(orchestrator, writer_agent, requirements=[done, open_])

    refinement = await orchestrator.validator.create_refinement_task(task.id, FAILED)

    assert refinement.dependencies == [task.id]
    assert refinement.parent_task_id == task.id
    assert refinement.workflow_id == task.workflow_id
    assert refinement.title == "Refinement: Quarterly report"
    assert refinement.description == "Address validation issues: Missing the revenue table"
    assert [r.id for r in refinement.requirements] == [open_.id]
    assert refinement.assigned_agent_id == writer_agent.id
    assert refinement.due_date is not None
    assert await orchestrator.task_store.get(refinement.id) is not None


@pytest.mark.asyncio
async def test_refine_default_budget_runs_one_pass_without_revalidation(
    make_orchestrator, writer_agent
):
    """The default budget runs one refinement and skips re-validation."""
    inference = demo_inference_service(validator_reply=FAIL_REPLY)
    orchestrator = make_orchestrator(inference)
    task = await _executed_task(orchestrator, writer_agent)

    outcome = await orchestrator.validator.refine(task.id, writer_agent, FAILED)

    assert outcome.passes == 1
    assert not outcome.exhausted
    assert outcome.final_verdict is None
    assert inference.calls_matching(VALIDATION_MARKER) == []
    [refinement_id] = outcome.refinement_task_ids
    refinement = await orchestrator.task_store.get(refinement_id)
    assert refinement.status == TaskStatus.COMPLETED
    assert refinement.actual_passes == 1
    [call] = inference.calls_matching("Please address these issues: Missing the revenue table")
    assert call.user_prompt.startswith("Please address these issues")


@pytest.mark.asyncio
async def test_refine_skipped_when_verdict_passed(make_orchestrator, writer_agent):
    """A passing verdict needs no refinement."""
    orchestrator = make_orchestrator()
    task = await _executed_task(orchestrator, writer_agent)

    outcome = await orchestrator.validator.refine(
        task.id, writer_agent, ValidationVerdict(validation_passed=True)
    )

    assert outcome.passes == 0
    assert outcome.refinement_task_ids == []


@pytest.mark.asyncio
async def test_refine_chains_passes_up_to_budget(make_orchestrator, writer_agent):
    """Refinements chain until the budget is spent."""
    inference = demo_inference_service(validator_reply=FAIL_REPLY)
    orchestrator = make_orchestrator(inference, max_refinement_passes=2)
    task = await _executed_task(orchestrator, writer_agent)

    outcome = await orchestrator.validator.refine(task.id, writer_agent, FAILED)

    assert outcome.passes == 2
    first, second = [await orchestrator.task_store.get(i) for i in outcome.refinement_task_ids]
    assert first.dependencies == [task.id]
    assert second.dependencies == [first.id]
    # Only the first refinement is re-validated; the last one is accepted as is.
    assert len(inference.calls_matching(VALIDATION_MARKER)) == 1
    assert not outcome.exhausted


@pytest.mark.asyncio
async def test_refine_stops_once_revalidation_passes(make_orchestrator, writer_agent):
    """Refinement stops once re-validation passes."""
    inference = demo_inference_service(validator_reply=PASS_REPLY)
    orchestrator = make_orchestrator(inference, max_refinement_passes=3)
    task = await _executed_task(orchestrator, writer_agent)

    outcome = await orchestrator.validator.refine(task.id, writer_agent, FAILED)

    assert outcome.passes == 1
    assert outcome.final_verdict.validation_passed
    assert outcome.errors == []


@pytest.mark.asyncio
async def test_refine_reports_exhaustion_when_confirmation_required(
    make_orchestrator, writer_agent
):
    """Exhaustion is reported when a final check is required."""
    inference = demo_inference_service(validator_reply=FAIL_REPLY)
    orchestrator = make_orchestrator(inference, fail_after_exhausted_refinement=True)
    task = await _executed_task(orchestrator, writer_agent)

    outcome = await orchestrator.validator.refine(task.id, writer_agent, FAILED)

    assert outcome.passes == 1
    assert outcome.exhausted
    assert len(inference.calls_matching(VALIDATION_MARKER)) == 1
    assert any("still failing after 1 refinement" in err for err in outcome.errors)


@pytest.mark.asyncio
async def test_zero_budget_never_refines(make_orchestrator, writer_agent):
    """A zero budget never refines."""
    orchestrator = make_orchestrator(max_refinement_passes=0)
    task = await _executed_task(orchestrator, writer_agent)

    outcome = await orchestrator.validator.refine(task.id, writer_agent, FAILED)

    assert outcome.passes == 0
    assert outcome.exhausted


@pytest.mark.asyncio
async def test_validate_requirements_marks_covered_requirements(make_orchestrator, writer_agent):
    """Covered requirements are marked satisfied."""
    orchestrator = make_orchestrator()
    task = await _executed_task(orchestrator, writer_agent)

    report = await orchestrator.validator.validate_requirements(task.id)

    assert report.satisfaction_rate == 100.0
    stored = await orchestrator.task_store.get(task.id)
    [requirement] = stored.requirements
    assert requirement.status == RequirementStatus.SATISFIED
    assert requirement.satisfied_at is not None
    assert requirement.evidence
