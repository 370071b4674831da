"""Workflow Orchestrator - task orchestration engine for capability-matched agent teams"""

from .orchestrator import WorkflowOrchestrator, orchestration_key
from .models import (
    Agent,
    AgentSpec,
    Artifact,
    ExecutionResult,
    OrchestrationResult,
    Requirement,
    SharedContext,
    Task,
    TaskStatus,
)
from .interfaces import (
    InferenceService,
    PromptAnalyzer,
    AgentRegistry,
    TaskStore,
    ArtifactStore,
    ContextBroker,
)
from .errors import (
    OrchestrationError,
    AlreadyInProgressError,
    NoProviderConfiguredError,
    CircularDependencyError,
    OrchestrationCancelledError,
    TaskNotFoundError,
)
from .cancellation import CancellationToken
from .settings import OrchestratorSettings, get_settings
from .analyzer import RuleBasedPromptAnalyzer, InferencePromptAnalyzer
from .inference import ScriptedInferenceService, demo_inference_service

__all__ = [
    "WorkflowOrchestrator",
    "orchestration_key",
    "Agent",
    "AgentSpec",
    "Artifact",
    "ExecutionResult",
    "OrchestrationResult",
    "Requirement",
    "SharedContext",
    "Task",
    "TaskStatus",
    "InferenceService",
    "PromptAnalyzer",
    "AgentRegistry",
    "TaskStore",
    "ArtifactStore",
    "ContextBroker",
    "OrchestrationError",
    "AlreadyInProgressError",
    "NoProviderConfiguredError",
    "CircularDependencyError",
    "OrchestrationCancelledError",
    "TaskNotFoundError",
    "CancellationToken",
    "OrchestratorSettings",
    "get_settings",
    "RuleBasedPromptAnalyzer",
    "InferencePromptAnalyzer",
    "ScriptedInferenceService",
    "demo_inference_service",
]
