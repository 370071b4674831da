"""Prompt analyzers - turn a free-text request into requirements, agent specs and subtasks."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError

from .cancellation import CancellationToken, guarded
from .errors import OrchestrationCancelledError, ValidationParseError
from .execution import extract_keywords
from .interfaces import InferenceService, PromptAnalyzer
from .models import (
    AgentSpec,
    PromptAnalysis,
    Requirement,
    RequirementPriority,
    RequirementType,
    SubTaskDraft,
    Task,
    TaskBreakdown,
    TaskComplexity,
)
from .prompts import generic_agent_spec, load_prompt
from .response_parsing import extract_json_object

logger = logging.getLogger(__name__)

SIMPLE_INDICATORS = ("fix", "update", "change", "add", "remove", "simple", "quick")
COMPLEX_INDICATORS = (
    "implement", "design", "architecture", "system", "multiple",
    "integration", "workflow", "orchestration", "complex",
)
CONSTRAINT_MARKERS = ("must not", "without", "within", "at most", "no more than", "limit")
NON_FUNCTIONAL_MARKERS = ("fast", "secure", "performance", "readable", "scalable", "reliable")
MAX_DERIVED_REQUIREMENTS = 5


def estimate_complexity(prompt: str) -> TaskComplexity:
    """Complex when complex indicators outnumber simple ones."""
    lowered = prompt.lower()
    simple_score = sum(1 for word in SIMPLE_INDICATORS if word in lowered)
    complex_score = sum(1 for word in COMPLEX_INDICATORS if word in lowered)
    if complex_score > simple_score:
        return TaskComplexity.COMPLEX
    return TaskComplexity.SIMPLE


def extract_task_title(prompt: str) -> str:
    """First sentence of the prompt, cut to 50 characters."""
    first = re.split(r"[.!?]+", prompt)[0].strip() or prompt.strip()
    if len(first) > 50:
        return first[:50] + "..."
    return first


def _classify_sentence(sentence: str) -> RequirementType:
    lowered = sentence.lower()
    if any(marker in lowered for marker in CONSTRAINT_MARKERS):
        return RequirementType.CONSTRAINT
    if any(marker in lowered for marker in NON_FUNCTIONAL_MARKERS):
        return RequirementType.NON_FUNCTIONAL
    return RequirementType.FUNCTIONAL


def derive_requirements(prompt: str) -> list[Requirement]:
    """One requirement per sentence; the first is a must, the rest shoulds."""
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+|\n+", prompt) if s.strip()]
    requirements = []
    for index, sentence in enumerate(sentences[:MAX_DERIVED_REQUIREMENTS]):
        requirements.append(
            Requirement(
                type=_classify_sentence(sentence),
                description=sentence.rstrip(".!?"),
                priority=RequirementPriority.MUST if index == 0 else RequirementPriority.SHOULD,
            )
        )
    if not requirements:
        requirements.append(
            Requirement(
                type=RequirementType.FUNCTIONAL,
                description="Complete the requested task as specified",
                priority=RequirementPriority.MUST,
            )
        )
    return requirements


@dataclass(frozen=True)
class SubTaskTemplate:
    title: str
    description: str
    complexity: TaskComplexity
    # "constraint"/"functional" select by type, "first_half"/"second_half" split, "all" copies.
    requirement_filter: str
    depends_on: tuple[int, ...] = ()
    estimated_passes: int = 1


@dataclass(frozen=True)
class BreakdownTemplate:
    name: str
    triggers: tuple[str, ...]
    sub_tasks: tuple[SubTaskTemplate, ...]
    agents: tuple[AgentSpec, ...]

    def matches(self, prompt: str) -> bool:
        lowered = prompt.lower()
        return not self.triggers or any(word in lowered for word in self.triggers)


BREAKDOWN_TEMPLATES: tuple[BreakdownTemplate, ...] = (
    BreakdownTemplate(
        name="creative",
        triggers=("roman", "novel", "story"),
        sub_tasks=(
            SubTaskTemplate(
                "Research and Planning",
                "Research the context and plan the narrative structure",
                TaskComplexity.SIMPLE,
                "constraint",
            ),
            SubTaskTemplate(
                "Character and Plot Development",
                "Develop main characters and plot outline",
                TaskComplexity.SIMPLE,
                "functional",
                depends_on=(0,),
            ),
            SubTaskTemplate(
                "Writing and Style Implementation",
                "Write the text in the requested style, consistent with the research",
                TaskComplexity.COMPLEX,
                "all",
                depends_on=(0, 1),
                estimated_passes=2,
            ),
        ),
        agents=(
            AgentSpec(
                name="Researcher",
                role="Research Analyst",
                required_skills=["research", "planning"],
                estimated_experience="Senior",
                specialization="Background research and narrative planning",
            ),
            AgentSpec(
                name="Writer",
                role="Creative Writer",
                required_skills=["writing", "storytelling"],
                estimated_experience="Expert",
                specialization="Long-form fiction",
            ),
        ),
    ),
    BreakdownTemplate(
        name="development",
        triggers=("implement", "develop", "build"),
        sub_tasks=(
            SubTaskTemplate(
                "Analysis and Design",
                "Analyze requirements and create technical design",
                TaskComplexity.SIMPLE,
                "functional",
            ),
            SubTaskTemplate(
                "Implementation",
                "Implement the solution according to specifications",
                TaskComplexity.COMPLEX,
                "all",
                depends_on=(0,),
                estimated_passes=2,
            ),
        ),
        agents=(
            AgentSpec(
                name="Solution Architect",
                role="Software Architect",
                required_skills=["architecture", "design"],
                estimated_experience="Senior",
                specialization="Technical design",
            ),
            AgentSpec(
                name="Software Engineer",
                role="Software Developer",
                required_skills=["implementation", "programming"],
                estimated_experience="Senior",
                specialization="Production code",
            ),
        ),
    ),
    BreakdownTemplate(
        name="generic",
        triggers=(),
        sub_tasks=(
            SubTaskTemplate(
                "Planning and Analysis",
                "Plan the approach and analyze requirements",
                TaskComplexity.SIMPLE,
                "first_half",
            ),
            SubTaskTemplate(
                "Execution and Delivery",
                "Execute the plan and deliver the results",
                TaskComplexity.COMPLEX,
                "second_half",
                depends_on=(0,),
            ),
        ),
        agents=(
            AgentSpec(
                name="Planner",
                role="Project Planner",
                required_skills=["planning", "analysis"],
                estimated_experience="Mid",
                specialization="Breaking work into steps",
            ),
            AgentSpec(
                name="Task Executor",
                role="General Task Executor",
                required_skills=["execution", "delivery"],
                estimated_experience="Mid",
                specialization="General problem solving",
            ),
        ),
    ),
)


def select_template(prompt: str) -> BreakdownTemplate:
    for template in BREAKDOWN_TEMPLATES:
        if template.matches(prompt):
            return template
    return BREAKDOWN_TEMPLATES[-1]


def _select_requirements(requirements: list[Requirement], which: str) -> list[Requirement]:
    half = (len(requirements) + 1) // 2
    if which == "constraint":
        chosen = [r for r in requirements if r.type == RequirementType.CONSTRAINT]
    elif which == "functional":
        chosen = [r for r in requirements if r.type == RequirementType.FUNCTIONAL]
    elif which == "first_half":
        chosen = requirements[:half]
    elif which == "second_half":
        chosen = requirements[half:]
    else:
        chosen = list(requirements)
    # Each subtask owns its own copies.
    return [Requirement(**r.model_dump(exclude={"id", "status", "evidence", "satisfied_at"}))
            for r in chosen]


class RuleBasedPromptAnalyzer(PromptAnalyzer):
    """Keyword heuristics; deterministic and offline."""

    def __init__(self, default_duration_minutes: int = 60):
        self.default_duration_minutes = default_duration_minutes

    async def analyze(self, prompt: str) -> PromptAnalysis:
        return self.analyze_sync(prompt)

    def analyze_sync(self, prompt: str) -> PromptAnalysis:
        complexity = estimate_complexity(prompt)
        skills = extract_keywords(prompt)[:3]
        if complexity == TaskComplexity.SIMPLE:
            agents = [generic_agent_spec(skills)]
            passes = 1
        else:
            template = select_template(prompt)
            agents = [spec.model_copy(deep=True) for spec in template.agents]
            passes = len(template.sub_tasks)
        return PromptAnalysis(
            complexity=complexity,
            requirements=derive_requirements(prompt),
            suggested_agents=agents,
            required_skills=skills,
            estimated_passes=passes,
            estimated_duration_minutes=self.default_duration_minutes * passes,
        )

    async def breakdown(
        self, prompt: str, analysis: PromptAnalysis, workflow_id: str
    ) -> TaskBreakdown:
        minutes = analysis.estimated_duration_minutes or self.default_duration_minutes
        main_task = Task(
            workflow_id=workflow_id,
            title=extract_task_title(prompt),
            description=prompt,
            complexity=analysis.complexity,
            requirements=list(analysis.requirements),
            estimated_passes=analysis.estimated_passes,
            due_date=datetime.now() + timedelta(minutes=minutes),
        )
        template = select_template(prompt)
        sub_tasks = [
            SubTaskDraft(
                title=item.title,
                description=item.description,
                complexity=item.complexity,
                requirements=_select_requirements(analysis.requirements, item.requirement_filter),
                depends_on=list(item.depends_on),
                estimated_passes=item.estimated_passes,
            )
            for item in template.sub_tasks
        ]
        logger.info("Broke prompt into %d subtasks (%s template)", len(sub_tasks), template.name)
        return TaskBreakdown(main_task=main_task, sub_tasks=sub_tasks)


class InferencePromptAnalyzer(PromptAnalyzer):
    """Asks the inference service for a JSON analysis, falling back to rules."""

    def __init__(
        self,
        inference: InferenceService,
        fallback: Optional[RuleBasedPromptAnalyzer] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.inference = inference
        self.fallback = fallback or RuleBasedPromptAnalyzer()
        self.cancel_token = cancel_token
        self.prompt = load_prompt("analyzer")

    async def analyze(self, prompt: str) -> PromptAnalysis:
        try:
            response = await guarded(
                self.inference.generate(self.prompt.instructions, prompt, temperature=0.2),
                self.cancel_token,
            )
            return self.parse_analysis(response, prompt)
        except OrchestrationCancelledError:
            raise
        except (ValidationParseError, ValidationError, KeyError, ValueError, TypeError) as exc:
            logger.warning("Unusable analysis response, using rule-based analysis: %s", exc)
            return self.fallback.analyze_sync(prompt)

    def parse_analysis(self, response: str, prompt: str) -> PromptAnalysis:
        payload = extract_json_object(response)
        requirements = [
            Requirement(
                type=item.get("type", RequirementType.FUNCTIONAL.value),
                description=item["description"],
                priority=item.get("priority", RequirementPriority.SHOULD.value),
            )
            for item in payload.get("requirements", [])
            if isinstance(item, dict) and item.get("description")
        ] or derive_requirements(prompt)
        agents = [_agent_spec(item) for item in payload.get("suggestedAgents", [])]
        complexity = payload.get("complexity") or estimate_complexity(prompt).value
        return PromptAnalysis(
            complexity=complexity,
            requirements=requirements,
            suggested_agents=agents,
            required_skills=list(payload.get("requiredSkills", [])),
            estimated_passes=max(1, int(payload.get("estimatedPasses", 1))),
            estimated_duration_minutes=payload.get("estimatedDuration"),
        )

    async def breakdown(
        self, prompt: str, analysis: PromptAnalysis, workflow_id: str
    ) -> TaskBreakdown:
        return await self.fallback.breakdown(prompt, analysis, workflow_id)


def _agent_spec(item: dict[str, Any]) -> AgentSpec:
    return AgentSpec(
        name=item["name"],
        role=item.get("role", item["name"]),
        required_skills=list(item.get("requiredSkills", [])),
        estimated_experience=item.get("estimatedExperience", ""),
        specialization=item.get("specialization", ""),
    )
