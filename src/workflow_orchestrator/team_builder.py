"""Team Builder - resolves agent specs to concrete agents, recruiting when needed."""

import logging
from typing import Optional

from pydantic import ValidationError

from .cancellation import CancellationToken, guarded
from .errors import (
    AgentRecruitmentError,
    OrchestrationCancelledError,
    ValidationParseError,
)
from .interfaces import AgentRegistry, InferenceService
from .models import Agent, AgentProfile, AgentSpec
from .prompts import build_recruitment_prompt, fallback_instructions
from .response_parsing import extract_json_object
from .settings import OrchestratorSettings

logger = logging.getLogger(__name__)


def score_agent_match(agent: Agent, spec: AgentSpec) -> int:
    """Count tag overlaps plus skill substring hits in the agent's role and instructions.

    Comparison is case-insensitive. A score of zero means no match.
    """
    skills = [skill.lower() for skill in spec.required_skills if skill]
    if not skills:
        return 0
    tags = {tag.lower() for tag in agent.tags}
    score = sum(1 for skill in skills if skill in tags)
    role = agent.role.lower()
    instructions = agent.instructions.lower()
    score += sum(1 for skill in skills if skill in role or skill in instructions)
    return score


def find_matching_agent(agents: list[Agent], spec: AgentSpec) -> Optional[Agent]:
    """First agent in iteration order whose score is positive."""
    for agent in agents:
        if score_agent_match(agent, spec) > 0:
            return agent
    return None


class TeamBuilder:
    """Resolves agent specs against the registry and recruits missing agents."""

    def __init__(
        self,
        registry: AgentRegistry,
        inference: InferenceService,
        settings: OrchestratorSettings,
    ):
        self.registry = registry
        self.inference = inference
        self.settings = settings

    async def resolve(
        self, spec: AgentSpec, cancel_token: Optional[CancellationToken] = None
    ) -> Agent:
        """Return an existing matching agent or a newly recruited one."""
        agents = await guarded(self.registry.find_all(), cancel_token)
        # Unlike a plain first match over the whole registry, the designated
        # recruiter and validator never staff work.
        reserved = {self.settings.recruiter_agent_id, self.settings.validator_agent_id}
        candidates = [agent for agent in agents if agent.id not in reserved]
        match = find_matching_agent(candidates, spec)
        if match is not None:
            logger.info("Matched spec '%s' to existing agent %s", spec.name, match.id)
            return match
        return await self.recruit(spec, cancel_token)

    async def build_team(
        self, specs: list[AgentSpec], cancel_token: Optional[CancellationToken] = None
    ) -> list[Agent]:
        """Resolve every spec in order; duplicates are kept."""
        team = []
        for spec in specs:
            team.append(await self.resolve(spec, cancel_token))
        logger.info("Built team of %d agent(s)", len(team))
        return team

    async def recruit(
        self, spec: AgentSpec, cancel_token: Optional[CancellationToken] = None
    ) -> Agent:
        """Create a new agent through the recruiter, synthesizing one on failure."""
        try:
            profile = await self._profile_from_recruiter(spec, cancel_token)
        except AgentRecruitmentError as exc:
            logger.warning("Recruitment for '%s' fell back to synthesis: %s", spec.name, exc)
            profile = self._fallback_profile(spec)
        agent = await guarded(self.registry.create(profile), cancel_token)
        logger.info("Recruited agent %s (%s)", agent.id, agent.role)
        return agent

    async def _profile_from_recruiter(
        self, spec: AgentSpec, cancel_token: Optional[CancellationToken]
    ) -> AgentProfile:
        recruiter = await guarded(
            self.registry.find_by_id(self.settings.recruiter_agent_id), cancel_token
        )
        if recruiter is None:
            raise AgentRecruitmentError("recruiter agent unavailable")

        try:
            response = await guarded(
                self.inference.generate(
                    recruiter.instructions,
                    build_recruitment_prompt(spec),
                    temperature=recruiter.temperature,
                ),
                cancel_token,
                timeout=self.settings.inference_timeout_seconds,
            )
        except OrchestrationCancelledError:
            raise
        except Exception as exc:
            raise AgentRecruitmentError(f"recruiter call failed: {exc}") from exc

        try:
            payload = extract_json_object(response)
        except ValidationParseError as exc:
            raise AgentRecruitmentError(str(exc)) from exc

        try:
            return AgentProfile(
                name=payload.get("name") or spec.name,
                role=payload.get("role") or spec.role,
                instructions=payload["instructions"],
                tags=list(spec.required_skills),
                temperature=0.7,
            )
        except (KeyError, TypeError, ValidationError) as exc:
            raise AgentRecruitmentError(f"incomplete recruiter profile: {exc}") from exc

    def _fallback_profile(self, spec: AgentSpec) -> AgentProfile:
        return AgentProfile(
            name=spec.name,
            role=spec.role,
            instructions=fallback_instructions(spec),
            tags=list(spec.required_skills),
            temperature=0.7,
        )
