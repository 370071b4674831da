"""Parse-with-fallback helpers for free-text model output."""

import json
import logging
import re
from typing import Any

from .errors import ValidationParseError
from .models import ValidationVerdict

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def _first_brace_span(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object out of a model response.

    Tries, in order: the whole text, a fenced ```json block, then the first
    balanced brace span.

    Raises:
        ValidationParseError: no candidate parsed into a JSON object.
    """
    candidates = [text.strip()]
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    span = _first_brace_span(text)
    if span:
        candidates.append(span)

    for candidate in candidates:
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValidationParseError("No JSON object found in response")


def heuristic_verdict(text: str) -> ValidationVerdict:
    """Treat any mention of "true" or "passed" as a pass."""
    lowered = text.lower()
    passed = "true" in lowered or "passed" in lowered
    return ValidationVerdict(validation_passed=passed, reason=text.strip())


def parse_validation_verdict(text: str) -> ValidationVerdict:
    """Structured verdict when the response carries one, heuristic otherwise."""
    try:
        payload = extract_json_object(text)
    except ValidationParseError:
        logger.warning("Validator response was not JSON, using keyword heuristic")
        return heuristic_verdict(text)

    if "validation_passed" not in payload:
        logger.warning("Validator JSON lacked validation_passed, using keyword heuristic")
        return heuristic_verdict(text)
    passed = payload["validation_passed"]
    if isinstance(passed, str):
        passed = passed.strip().lower() in ("true", "yes", "passed")
    return ValidationVerdict(
        validation_passed=bool(passed),
        reason=str(payload.get("reason", "")),
    )
