"""Tests for the DAG scheduler."""

import pytest
from conftest import make_task

from workflow_orchestrator.errors import CircularDependencyError
from workflow_orchestrator.inference import demo_inference_service
from workflow_orchestrator.models import Agent, TaskStatus
from workflow_orchestrator.scheduler import next_batch, ready_tasks


def _diamond():
    alpha = make_task("Alpha", task_id="alpha")
    bravo = make_task("Bravo", task_id="bravo", dependencies=["alpha"])
    charlie = make_task("Charlie", task_id="charlie", dependencies=["alpha"])
    delta = make_task("Delta", task_id="delta", dependencies=["bravo", "charlie"])
    return [alpha, bravo, charlie, delta]


def _team(size):
    return [Agent(id=f"agent-{i}", name=f"Agent {i}", role="Generalist") for i in range(size)]


def _first_call_index(inference, title):
    for index, call in enumerate(inference.calls):
        if call.user_prompt.startswith(f"Work on {title}"):
            return index
    raise AssertionError(f"No inference call for {title}")


def test_ready_tasks_respects_dependencies():
    """Only tasks whose dependencies ran are ready."""
    tasks = _diamond()
    assert [t.id for t in ready_tasks(tasks, set())] == ["alpha"]
    assert [t.id for t in ready_tasks(tasks, {"alpha"})] == ["bravo", "charlie"]
    assert [t.id for t in ready_tasks(tasks, {"alpha", "bravo"})] == ["charlie"]


def test_next_batch_is_capped_by_width():
    """Only the first ``width`` ready tasks are taken, in list order."""
    tasks = _diamond()
    assert [t.id for t in next_batch(tasks, {"alpha"}, width=2)] == ["bravo", "charlie"]
    assert [t.id for t in next_batch(tasks, {"alpha"}, width=1)] == ["bravo"]
    assert [t.id for t in next_batch(tasks, {"alpha", "bravo", "charlie"}, width=3)] == ["delta"]


def test_next_batch_rejects_zero_width():
    """A batch must hold at least one task."""
    with pytest.raises(ValueError):
        next_batch(_diamond(), set(), width=0)


def test_next_batch_detects_cycle():
    """Pending tasks that wait on each other raise with their ids."""
    tasks = [
        make_task("Alpha", task_id="alpha", dependencies=["bravo"]),
        make_task("Bravo", task_id="bravo", dependencies=["alpha"]),
        make_task("Charlie", task_id="charlie"),
    ]
    with pytest.raises(CircularDependencyError) as excinfo:
        next_batch(tasks, {"charlie"}, width=2)
    assert sorted(excinfo.value.pending_task_ids) == ["alpha", "bravo"]


@pytest.mark.asyncio
async def test_diamond_runs_in_dependency_order(make_orchestrator):
    """A runs first, B and C share a batch, D runs last."""
    inference = demo_inference_service()
    orchestrator = make_orchestrator(inference)
    tasks = [await orchestrator.task_store.create(t) for t in _diamond()]

    results = await orchestrator.scheduler.coordinate_team_execution(tasks, _team(2))

    assert len(results) == 4
    assert all(r.success for r in results)
    order = {title: _first_call_index(inference, title) for title in ("Alpha", "Bravo", "Charlie", "Delta")}
    assert order["Alpha"] < order["Bravo"] < order["Delta"]
    assert order["Alpha"] < order["Charlie"] < order["Delta"]
    assert [r.task_id for r in results] == ["alpha", "bravo", "charlie", "delta"]


@pytest.mark.asyncio
async def test_agents_assigned_round_robin_within_batch(make_orchestrator):
    """Agents are assigned by position within each batch."""
    orchestrator = make_orchestrator()
    tasks = [await orchestrator.task_store.create(t) for t in _diamond()]

    await orchestrator.scheduler.coordinate_team_execution(tasks, _team(2))

    assigned = {
        task_id: (await orchestrator.task_store.get(task_id)).assigned_agent_id
        for task_id in ("alpha", "bravo", "charlie", "delta")
    }
    assert assigned == {
        "alpha": "agent-0",
        "bravo": "agent-0",
        "charlie": "agent-1",
        "delta": "agent-0",
    }


@pytest.mark.asyncio
async def test_each_task_prompted_with_its_description(make_orchestrator):
    """Each task is prompted with its own description."""
    inference = demo_inference_service()
    orchestrator = make_orchestrator(inference)
    tasks = [await orchestrator.task_store.create(t) for t in _diamond()[:1]]

    await orchestrator.scheduler.coordinate_team_execution(tasks, _team(1))

    assert len(inference.calls) == 1
    assert inference.calls[0].user_prompt.startswith("Work on Alpha")


@pytest.mark.asyncio
async def test_full_cycle_executes_nothing(make_orchestrator):
    """A pure cycle raises before anything runs."""
    inference = demo_inference_service()
    orchestrator = make_orchestrator(inference)
    tasks = [
        await orchestrator.task_store.create(make_task("Alpha", task_id="alpha", dependencies=["bravo"])),
        await orchestrator.task_store.create(make_task("Bravo", task_id="bravo", dependencies=["alpha"])),
    ]

    with pytest.raises(CircularDependencyError):
        await orchestrator.scheduler.coordinate_team_execution(tasks, _team(2))

    assert inference.calls == []
    stored = await orchestrator.task_store.get("alpha")
    assert stored.status == TaskStatus.PENDING


@pytest.mark.asyncio
async def test_runnable_tasks_execute_before_cycle_is_reported(make_orchestrator):
    """Runnable tasks finish before the cycle is reported."""
    orchestrator = make_orchestrator()
    tasks = [
        await orchestrator.task_store.create(make_task("Charlie", task_id="charlie")),
        await orchestrator.task_store.create(make_task("Alpha", task_id="alpha", dependencies=["bravo"])),
        await orchestrator.task_store.create(make_task("Bravo", task_id="bravo", dependencies=["alpha"])),
    ]

    with pytest.raises(CircularDependencyError) as excinfo:
        await orchestrator.scheduler.coordinate_team_execution(tasks, _team(1))

    assert sorted(excinfo.value.pending_task_ids) == ["alpha", "bravo"]
    charlie = await orchestrator.task_store.get("charlie")
    assert charlie.status == TaskStatus.IN_PROGRESS
    assert len(charlie.artifacts) == 1


@pytest.mark.asyncio
async def test_empty_team_rejected(make_orchestrator):
    """Scheduling needs at least one agent."""
    orchestrator = make_orchestrator()
    with pytest.raises(ValueError):
        await orchestrator.scheduler.coordinate_team_execution(_diamond(), [])
