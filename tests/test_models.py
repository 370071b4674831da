"""Tests for models."""

from datetime import datetime, timedelta

from workflow_orchestrator.models import (
    Requirement,
    RequirementStatus,
    SharedContext,
    Task,
    TaskAttachment,
    TaskStatus,
    satisfaction_rate,
)


def test_satisfaction_rate_is_percentage():
    """Satisfaction rate is the percentage of satisfied requirements."""
    assert satisfaction_rate(1, 4) == 25.0
    assert satisfaction_rate(3, 3) == 100.0


def test_satisfaction_rate_zero_when_no_requirements():
    """An empty requirement list yields 0, not 100."""
    assert satisfaction_rate(0, 0) == 0.0


def test_unsatisfied_requirements_excludes_satisfied():
    """Only unsatisfied requirements are returned."""
    done = Requirement(description="Write intro", status=RequirementStatus.SATISFIED)
    open_ = Requirement(description="Write outro")
    failed = Requirement(description="Add charts", status=RequirementStatus.FAILED)
    task = Task(title="Doc", requirements=[done, open_, failed])

    remaining = task.unsatisfied_requirements()

    assert [r.id for r in remaining] == [open_.id, failed.id]
    # Copies, so the refinement task cannot mutate the original's requirements
    remaining[0].description = "changed"
    assert task.requirements[1].description == "Write outro"


def test_merge_requirements_keeps_existing_and_skips_duplicates():
    """Merging keeps existing requirements and skips duplicates."""
    existing = Requirement(description="Existing")
    task = Task(title="Doc", requirements=[existing])
    new = Requirement(description="New")

    task.merge_requirements([existing, new])

    assert [r.description for r in task.requirements] == ["Existing", "New"]


def test_task_defaults():
    """A new task starts pending with a fresh id and no passes."""
    task = Task(title="Anything")
    assert task.status == TaskStatus.PENDING
    assert task.dependencies == []
    assert task.actual_passes == 0
    assert task.id != Task(title="Other").id


def test_shared_context_expiry():
    """Context expires at its expiry date."""
    entry = SharedContext.expiring_in(1, task_id="t", agent_id="a", title="x", content="y")
    assert not entry.is_expired()
    assert entry.is_expired(datetime.now() + timedelta(hours=2))
    assert not SharedContext(task_id="t", agent_id="a", title="x", content="y").is_expired()


def test_attachment_inference_kind_and_size():
    """Attachments report their kind and size."""
    assert TaskAttachment(name="a.png", mime_type="image/png").inference_kind == "image"
    assert TaskAttachment(name="a.txt", mime_type="text/plain").inference_kind == "text"
    pdf = TaskAttachment(name="a.pdf", mime_type="application/pdf", size=2048)
    assert pdf.inference_kind == "document"
    assert pdf.size_kb == 2.0
