"""Tests for prompt definitions and builders."""

import pytest

from workflow_orchestrator.models import Artifact, AgentSpec, Requirement, RequirementPriority, Task
from workflow_orchestrator.prompts import (
    PROMPT_FILES,
    AgentPrompt,
    build_refinement_prompt,
    build_validation_prompt,
    designated_agent,
    fallback_instructions,
    generic_agent_spec,
    load_prompt,
)


def test_every_prompt_file_loads():
    """All designated roles ship a JSON prompt definition."""
    for key in PROMPT_FILES:
        prompt = load_prompt(key)
        assert isinstance(prompt, AgentPrompt)
        assert prompt.name and prompt.instructions
        assert isinstance(prompt.tags, tuple)


def test_unknown_prompt_key_raises():
    """Asking for an unknown prompt raises KeyError."""
    with pytest.raises(KeyError):
        load_prompt("nonexistent")


def test_designated_agent_uses_fixed_id_and_low_temperature():
    """Designated agents get fixed ids and low temperature."""
    agent = designated_agent("validator", "validator-agent")
    assert agent.id == "validator-agent"
    assert agent.name == "Validator"
    assert agent.temperature == 0.2


def test_generic_agent_spec_carries_skills():
    """The generic executor spec keeps the required skills."""
    spec = generic_agent_spec(["revenue", "summary"])
    assert spec.role == "General Task Executor"
    assert spec.required_skills == ["revenue", "summary"]


def test_validation_prompt_truncates_long_content():
    """Long artifact content is cut to the preview length."""
    task = Task(
        title="Report",
        description="Write it",
        requirements=[Requirement(description="Has numbers", priority=RequirementPriority.MUST)],
    )
    artifact = Artifact(task_id=task.id, agent_id="a", title="Draft", content="x" * 20)

    prompt = build_validation_prompt(task, [artifact], preview_chars=5)

    assert "- Draft:\nxxxxx..." in prompt
    assert "- functional: Has numbers (Priority: must)" in prompt


def test_validation_prompt_keeps_short_content_whole():
    """Short artifact content is shown whole."""
    task = Task(title="Report")
    artifact = Artifact(task_id=task.id, agent_id="a", title="Draft", content="short")
    assert "- Draft:\nshort\n" in build_validation_prompt(task, [artifact])


def test_fallback_instructions_and_refinement_prompt():
    """Fallback instructions come from the spec and refinement prompts quote the issues."""
    spec = AgentSpec(name="QA", role="Tester", required_skills=["testing", "pytest"])
    assert fallback_instructions(spec) == "You are a Tester with expertise in testing, pytest."
    assert build_refinement_prompt("Add tests") == "Please address these issues: Add tests"
