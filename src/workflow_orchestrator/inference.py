"""Deterministic inference services for tests, demos and simulation."""

import asyncio
import json
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Union

from .interfaces import InferenceService
from .models import TaskAttachment

ResponseFn = Callable[[str, str], str]


@dataclass
class InferenceCall:
    """One recorded request."""

    system_prompt: str
    user_prompt: str
    attachments: list[TaskAttachment]
    temperature: Optional[float] = None


class ScriptedInferenceService(InferenceService):
    """Answers by matching substrings of the prompts against scripted rules.

    Rules are checked in insertion order against ``system_prompt + user_prompt``;
    the first rule whose needle occurs wins. A rule's response may be a string or
    a callable receiving both prompts. Unmatched requests get ``default``.
    """

    def __init__(
        self,
        rules: Optional[dict[str, Union[str, ResponseFn]]] = None,
        default: str = "Deliverable completed.",
        chunk_size: int = 16,
        delay: float = 0.0,
        configured: bool = True,
    ):
        self.rules = dict(rules or {})
        self.default = default
        self.chunk_size = chunk_size
        self.delay = delay
        self.configured = configured
        self.calls: list[InferenceCall] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def add_rule(self, needle: str, response: Union[str, ResponseFn]) -> None:
        self.rules[needle] = response

    def respond(self, system_prompt: str, user_prompt: str) -> str:
        combined = f"{system_prompt}\n{user_prompt}"
        for needle, response in self.rules.items():
            if needle in combined:
                if callable(response):
                    return response(system_prompt, user_prompt)
                return response
        return self.default

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        attachments: Optional[list[TaskAttachment]] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        self.calls.append(
            InferenceCall(system_prompt, user_prompt, list(attachments or []), temperature)
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        text = self.respond(system_prompt, user_prompt)
        for start in range(0, len(text), self.chunk_size):
            yield text[start:start + self.chunk_size]
            await asyncio.sleep(0)

    def calls_matching(self, needle: str) -> list[InferenceCall]:
        return [
            call for call in self.calls
            if needle in call.system_prompt or needle in call.user_prompt
        ]


class InferenceOutageError(Exception):
    """Tagged exception for simulated provider failures."""


class FailingInferenceService(ScriptedInferenceService):
    """Scripted service that raises for requests containing any of ``fail_on``."""

    def __init__(self, fail_on: Optional[set[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.fail_on = set(fail_on or ())

    def respond(self, system_prompt: str, user_prompt: str) -> str:
        combined = f"{system_prompt}\n{user_prompt}"
        for needle in self.fail_on:
            if needle in combined:
                raise InferenceOutageError(f"Simulated inference outage for '{needle}'")
        return super().respond(system_prompt, user_prompt)


DELIVERABLE_MARKER = "Please provide your deliverable in markdown format"
VALIDATION_MARKER = "Please validate if all requirements are met by the deliverables."
RECRUITMENT_MARKER = "Create an agent profile for:"


def echo_deliverable(system_prompt: str, user_prompt: str) -> str:
    """Markdown deliverable that restates each requirement as addressed."""
    lines = ["# Deliverable", ""]
    in_requirements = False
    for line in user_prompt.splitlines():
        if line.startswith("## Task Requirements:"):
            in_requirements = True
            continue
        if in_requirements:
            if not line.startswith("- "):
                break
            description = line.split(": ", 1)[-1]
            lines.append(f"- Addressed: {description}")
    if len(lines) == 2:
        lines.append(user_prompt.split("\n\n", 1)[0])
    return "\n".join(lines)


def recruited_profile(system_prompt: str, user_prompt: str) -> str:
    """JSON agent profile derived from the requested spec."""
    spec = json.loads(user_prompt.split(RECRUITMENT_MARKER, 1)[1])
    return json.dumps({
        "name": spec["name"],
        "role": spec["role"],
        "instructions": (
            f"You are {spec['name']}, a {spec['role']} skilled in "
            f"{', '.join(spec.get('required_skills', []))}. {spec.get('specialization', '')}"
        ).strip(),
    })


PASSING_VERDICT = '{"validation_passed": true, "reason": "All requirements met"}'


def demo_inference_service(
    validator_reply: Union[str, ResponseFn] = PASSING_VERDICT,
    **kwargs,
) -> ScriptedInferenceService:
    """Scripted service answering recruiter, validator and executor prompts plausibly."""
    return ScriptedInferenceService(
        rules={
            RECRUITMENT_MARKER: recruited_profile,
            VALIDATION_MARKER: validator_reply,
            DELIVERABLE_MARKER: echo_deliverable,
        },
        **kwargs,
    )
