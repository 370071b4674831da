"""Deterministic simulation harness for the orchestration engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from itertools import cycle
from typing import Optional

import pandas as pd

from .inference import (
    DELIVERABLE_MARKER,
    PASSING_VERDICT,
    FailingInferenceService,
    ResponseFn,
    ScriptedInferenceService,
    demo_inference_service,
)
from .models import Task, TaskStatus
from .orchestrator import WorkflowOrchestrator
from .settings import OrchestratorSettings

FAIL_REPLY = '{"validation_passed": false, "reason": "Deliverable lacks supporting figures"}'


@dataclass
class SimulationResult:
    test_id: int
    prompt: str
    strategy: str
    success: bool
    task_count: int
    artifact_count: int
    refinement_count: int
    error_count: int
    main_status: str
    validator_failed_once: bool
    inference_outage: bool


@dataclass
class StatusStats:
    status: str
    count: int
    share: float


SIMULATION_PROMPTS: list[dict[str, object]] = [
    {
        "prompt": "Summarize the revenue highlights for Q1.",
        "force_validation_fail": False,
        "force_outage": False,
    },
    {
        "prompt": "Update the onboarding checklist with the new security training.",
        "force_validation_fail": True,
        "force_outage": False,
    },
    {
        "prompt": (
            "Implement a workflow integration that syncs invoices between two systems. "
            "Include error handling and retries."
        ),
        "force_validation_fail": False,
        "force_outage": False,
    },
    {
        "prompt": "Write a short story about a lighthouse keeper. Keep it within 500 words.",
        "force_validation_fail": False,
        "force_outage": True,
    },
    {
        "prompt": (
            "Design the architecture for a multiple-region reporting system. "
            "Document the data flow."
        ),
        "force_validation_fail": True,
        "force_outage": False,
    },
]


def fail_first_validation() -> ResponseFn:
    """Validator reply that fails the first judgment and passes afterwards."""
    calls = {"count": 0}

    def reply(system_prompt: str, user_prompt: str) -> str:
        calls["count"] += 1
        return FAIL_REPLY if calls["count"] == 1 else PASSING_VERDICT

    return reply


def _build_inference(force_validation_fail: bool, force_outage: bool) -> ScriptedInferenceService:
    validator_reply = fail_first_validation() if force_validation_fail else PASSING_VERDICT
    scripted = demo_inference_service(validator_reply=validator_reply)
    if not force_outage:
        return scripted
    return FailingInferenceService(fail_on={DELIVERABLE_MARKER}, rules=scripted.rules)


async def _run_one(
    test_id: int,
    scenario: dict[str, object],
    settings: OrchestratorSettings,
) -> tuple[SimulationResult, list[Task]]:
    prompt = str(scenario["prompt"])
    force_validation_fail = bool(scenario["force_validation_fail"])
    force_outage = bool(scenario["force_outage"]) and test_id % 4 == 0

    orchestrator = WorkflowOrchestrator.in_memory(
        _build_inference(force_validation_fail, force_outage), settings=settings
    )
    result = await orchestrator.orchestrate(prompt)
    tasks = await orchestrator.task_store.list_by_workflow(result.workflow_id)
    main = next((t for t in tasks if t.id == result.main_task_id), None)

    return (
        SimulationResult(
            test_id=test_id,
            prompt=prompt,
            strategy="multi_pass" if result.sub_task_ids else "single_pass",
            success=result.success,
            task_count=len(tasks),
            artifact_count=len(result.artifacts),
            refinement_count=sum(1 for t in tasks if t.title.startswith("Refinement: ")),
            error_count=len(result.errors),
            main_status=main.status.value if main else "missing",
            validator_failed_once=force_validation_fail,
            inference_outage=force_outage,
        ),
        tasks,
    )


async def _run_all(
    num_tests: int, settings: OrchestratorSettings
) -> tuple[list[SimulationResult], list[Task]]:
    results: list[SimulationResult] = []
    all_tasks: list[Task] = []
    scenario_cycle = cycle(SIMULATION_PROMPTS)
    for test_id in range(1, num_tests + 1):
        row, tasks = await _run_one(test_id, next(scenario_cycle), settings)
        results.append(row)
        all_tasks.extend(tasks)
    return results, all_tasks


def run_simulation(
    num_tests: int = 100,
    settings: Optional[OrchestratorSettings] = None,
) -> tuple[list[SimulationResult], list[StatusStats]]:
    """Run N scripted orchestrations and return row-wise + per-status results."""
    settings = settings or OrchestratorSettings()
    results, tasks = asyncio.run(_run_all(num_tests, settings))
    return results, _aggregate_status_stats(tasks)


def _aggregate_status_stats(tasks: list[Task]) -> list[StatusStats]:
    total = max(len(tasks), 1)
    stats = []
    for status in TaskStatus:
        count = sum(1 for task in tasks if task.status == status)
        stats.append(StatusStats(status=status.value, count=count, share=count / total))
    return stats


def simulation_frames(num_tests: int = 100) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Tabulate a simulation run as (per-run, per-status) data frames."""
    rows, status_stats = run_simulation(num_tests=num_tests)
    df_runs = pd.DataFrame(
        [
            {
                "TestID": r.test_id,
                "Prompt": r.prompt[:60],
                "Strategy": r.strategy,
                "Success": r.success,
                "Tasks": r.task_count,
                "Artifacts": r.artifact_count,
                "Refinements": r.refinement_count,
                "Errors": r.error_count,
                "MainStatus": r.main_status,
                "ValidatorFail": r.validator_failed_once,
                "Outage": r.inference_outage,
            }
            for r in rows
        ]
    )
    df_status = pd.DataFrame(
        [
            {"Status": s.status, "Count": s.count, "Share": round(s.share, 3)}
            for s in status_stats
        ]
    ).sort_values(by="Count", ascending=False)
    return df_runs, df_status


def print_simulation_report(num_tests: int = 100) -> None:
    """Run the simulation and print formatted tables."""
    df_runs, df_status = simulation_frames(num_tests)
    print("=== Simulation Results ({} Runs) ===".format(len(df_runs)))
    print(df_runs.to_string(index=False))
    print("\n=== By Strategy ===")
    print(
        df_runs.groupby("Strategy")[["Success", "Refinements", "Errors"]]
        .mean()
        .round(3)
        .to_string()
    )
    print("\n=== Task Status Statistics ===")
    print(df_status.to_string(index=False))
