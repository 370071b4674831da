"""Execution strategies and selection."""

from enum import Enum

from .models import PromptAnalysis, TaskComplexity


class ExecutionStrategy(str, Enum):
    """How an orchestration runs its work."""
    SINGLE_PASS = "single_pass"
    MULTI_PASS = "multi_pass"


def select_strategy(analysis: PromptAnalysis) -> ExecutionStrategy:
    """Simple prompts run once; everything else is broken down."""
    if analysis.complexity == TaskComplexity.SIMPLE:
        return ExecutionStrategy.SINGLE_PASS
    return ExecutionStrategy.MULTI_PASS


def uses_team_dispatch(strategy: ExecutionStrategy) -> bool:
    """Determine if the strategy builds a team and runs the DAG scheduler."""
    return strategy == ExecutionStrategy.MULTI_PASS
