"""Prompt definitions loaded from JSON files, plus the text builders agents consume."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable

from .models import Agent, AgentSpec, Artifact, SharedContext, Task


@dataclass(frozen=True)
class AgentPrompt:
    """Structured metadata for a designated agent."""

    name: str
    role: str
    instructions: str
    tags: tuple[str, ...] = field(default_factory=tuple)


PROMPT_FILES: Dict[str, str] = {
    "recruiter": "recruiter.json",
    "validator": "validator.json",
    "executor": "executor.json",
    "analyzer": "analyzer.json",
}

PROMPT_DIR = Path(__file__).with_name("prompts")


@lru_cache(maxsize=None)
def load_prompt(key: str) -> AgentPrompt:
    """Load a prompt from its JSON definition."""
    filename = PROMPT_FILES[key]
    path = PROMPT_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found for key '{key}': {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    data["tags"] = tuple(data.get("tags", ()))
    return AgentPrompt(**data)


def designated_agent(key: str, agent_id: str) -> Agent:
    """Build the recruiter or validator agent under a fixed id."""
    prompt = load_prompt(key)
    return Agent(
        id=agent_id,
        name=prompt.name,
        role=prompt.role,
        instructions=prompt.instructions,
        tags=list(prompt.tags),
        temperature=0.2,
    )


def generic_agent_spec(required_skills: Iterable[str]) -> AgentSpec:
    """Fallback spec used when the analyzer suggested no agents."""
    prompt = load_prompt("executor")
    return AgentSpec(
        name=prompt.name,
        role=prompt.role,
        required_skills=list(required_skills),
        specialization=prompt.instructions,
    )


def build_enriched_prompt(
    prompt: str, task: Task, contexts: Iterable[SharedContext]
) -> str:
    """Fold relevant context, attachments and requirements into the user prompt."""
    parts = [prompt]

    contexts = list(contexts)
    if contexts:
        parts.append("\n\n## Relevant Context:")
        for entry in contexts:
            parts.append(f"\n- {entry.title}: {entry.content}")

    if task.attachments:
        parts.append("\n\n## Attached Files:")
        for attachment in task.attachments:
            parts.append(
                f"\n- {attachment.name} ({attachment.mime_type}, {attachment.size_kb}KB)"
            )
        parts.append(
            "\n\nPlease analyze and reference these attached files in your response as needed."
        )

    if task.requirements:
        parts.append("\n\n## Task Requirements:")
        for req in task.requirements:
            parts.append(f"\n- {req.type.value} ({req.priority.value}): {req.description}")

    parts.append(
        "\n\nPlease provide your deliverable in markdown format. "
        "Be thorough and ensure all requirements are addressed."
    )
    return "".join(parts)


def build_system_prompt(agent: Agent, task: Task) -> str:
    requirement_text = ", ".join(req.description for req in task.requirements)
    return (
        f"{agent.instructions}\n\n"
        f"You are working on task: {task.title}\n\n"
        f"Task requirements: {requirement_text}"
    )


def build_validation_prompt(
    task: Task, artifacts: Iterable[Artifact], preview_chars: int = 500
) -> str:
    """Describe a task and previews of its deliverables for the validator."""
    lines = [
        f"Task: {task.title}",
        f"Description: {task.description}",
        "",
        "Requirements:",
    ]
    for req in task.requirements:
        lines.append(
            f"- {req.type.value}: {req.description} (Priority: {req.priority.value})"
        )
    lines.extend(["", "Deliverables:"])
    for artifact in artifacts:
        preview = artifact.content[:preview_chars]
        if len(artifact.content) > preview_chars:
            preview += "..."
        lines.append(f"- {artifact.title}:\n{preview}")
    lines.extend(["", "Please validate if all requirements are met by the deliverables."])
    return "\n".join(lines)


def build_recruitment_prompt(spec: AgentSpec) -> str:
    return "Create an agent profile for: " + json.dumps(spec.model_dump(mode="json"), indent=2)


def fallback_instructions(spec: AgentSpec) -> str:
    return (
        f"You are a {spec.role} with expertise in {', '.join(spec.required_skills)}. "
        f"{spec.specialization}"
    ).strip()


def build_refinement_prompt(reason: str) -> str:
    return f"Please address these issues: {reason}"
