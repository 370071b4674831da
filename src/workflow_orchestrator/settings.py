"""Environment-bound configuration for the orchestrator.

Values load from environment variables prefixed with ``WORKFLOW_ORCHESTRATOR_``
or from a local ``.env`` file, e.g. ``WORKFLOW_ORCHESTRATOR_MAX_REFINEMENT_PASSES=2``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestratorSettings(BaseSettings):
    """Tunables for orchestration, validation and refinement."""

    recruiter_agent_id: str = "agent-recruiter"
    validator_agent_id: str = "validator-agent"
    max_refinement_passes: int = Field(default=1, ge=0, le=5)
    fail_after_exhausted_refinement: bool = False
    artifact_preview_chars: int = Field(default=500, ge=0)
    context_ttl_hours: float = Field(default=24, gt=0)
    inference_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    refinement_due_minutes: int = Field(default=60, ge=0)
    default_task_duration_minutes: int = Field(default=60, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_ORCHESTRATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> OrchestratorSettings:
    """Return the process-wide settings loaded from the environment."""
    return OrchestratorSettings()
