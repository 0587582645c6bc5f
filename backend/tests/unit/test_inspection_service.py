"""Inspection service: submission, auto-approval and voting against mongomock"""
import pytest

from approval_engine.domain.enums import (
    ApprovalDecision, InspectionStatus, NotificationTemplateKey
)
from approval_engine.domain.errors import (
    ConcurrencyError, InspectionNotFoundError, InvalidStateError, PermissionDeniedError,
    ValidationError, WorkflowNotFoundError
)
from approval_engine.engine.approval_state_machine import AUTO_APPROVAL_REMARK
from approval_engine.repositories.notification_repo import NotificationRepository
from approval_engine.services.inspection_service import InspectionService


@pytest.fixture
def service(users):
    return InspectionService()


def _steps(response_text="42"):
    return [{"step_id": "s1", "step_title": "Pressure", "response_text": response_text}]


def _submit(service, actor, approver_ids=("approver-1",), workflow_id="WF-1", **kwargs):
    return service.submit(
        actor=actor,
        workflow_id=workflow_id,
        approver_ids=list(approver_ids),
        filled_steps=kwargs.pop("filled_steps", _steps()),
        inspection_date=kwargs.pop("inspection_date", "2024-05-01T09:00:00Z"),
        **kwargs
    )


# =============================================================================
# Submission
# =============================================================================

def test_auto_approved_on_submit(service, save_workflow, inspector):
    save_workflow(enabled=True, min_value=10, max_value=100)

    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2"])

    assert inspection.status == InspectionStatus.AUTO_APPROVED
    assert inspection.auto_approved
    assert inspection.meter_reading == 42
    assert all(v.decision == ApprovalDecision.APPROVED for v in inspection.approvers)
    assert all(v.remarks == AUTO_APPROVAL_REMARK for v in inspection.approvers)

    stored = service.inspection_repo.get_inspection(inspection.inspection_id)
    assert stored.status == InspectionStatus.AUTO_APPROVED


def test_auto_approve_flag_enables_evaluation(service, save_workflow, inspector):
    save_workflow(enabled=False, max_value=100)
    inspection = _submit(service, inspector, auto_approve=True)
    assert inspection.status == InspectionStatus.AUTO_APPROVED


def test_value_field_selects_the_measured_step(service, save_workflow, inspector):
    save_workflow(enabled=True, min_value=0, max_value=100, value_field="pressure")
    steps = [
        {"step_id": "s1", "step_title": "Serial", "response_text": "5000"},
        {"step_id": "pressure", "step_title": "Pressure", "response_text": "42 psi"},
    ]

    inspection = _submit(service, inspector, filled_steps=steps)

    assert inspection.meter_reading == 42
    assert inspection.status == InspectionStatus.AUTO_APPROVED


def test_ineligible_submission_stays_pending(service, save_workflow, inspector):
    save_workflow(enabled=True, min_value=10, max_value=100)
    inspection = _submit(service, inspector, filled_steps=_steps("250"))
    assert inspection.status == InspectionStatus.PENDING
    assert not inspection.auto_approved


def test_non_routine_workflow_is_never_auto_approved(service, save_workflow, inspector):
    save_workflow(is_routine_inspection=False, enabled=True)
    assert _submit(service, inspector).status == InspectionStatus.PENDING


def test_frequency_limit_counts_recent_auto_approvals(service, save_workflow, inspector):
    save_workflow(enabled=True, frequency_limit=1)
    assert _submit(service, inspector).status == InspectionStatus.AUTO_APPROVED
    assert _submit(service, inspector).status == InspectionStatus.PENDING


def test_approvers_are_deduplicated_with_primary_first(service, save_workflow, inspector):
    save_workflow()
    inspection = _submit(
        service, inspector,
        approver_ids=["approver-1", "approver-2", "approver-1"],
        primary_approver_id="approver-2"
    )
    assert inspection.approver_ids == ["approver-2", "approver-1"]
    assert inspection.primary_approver_id == "approver-2"


def test_approver_submission_gets_an_admin(service, save_workflow, second_approver):
    save_workflow()
    inspection = _submit(service, second_approver, approver_ids=["approver-1"])
    assert inspection.approver_ids == ["approver-1", "admin-1"]


def test_admin_already_listed_is_not_added_twice(service, save_workflow, second_approver):
    save_workflow()
    inspection = _submit(service, second_approver, approver_ids=["admin-1", "approver-1"])
    assert inspection.approver_ids == ["admin-1", "approver-1"]


@pytest.mark.parametrize("approver_ids", [[], ["approver-9"], ["nobody"]])
def test_invalid_approvers_rejected(service, save_workflow, inspector, approver_ids):
    save_workflow()
    with pytest.raises(ValidationError):
        _submit(service, inspector, approver_ids=approver_ids)


def test_invalid_inspection_date_rejected(service, save_workflow, inspector):
    save_workflow()
    with pytest.raises(ValidationError):
        _submit(service, inspector, inspection_date="yesterday-ish")


def test_workflow_of_other_organization_is_hidden(service, save_workflow, inspector):
    save_workflow(workflow_id="WF-X", organization_id="ORG-2")
    with pytest.raises(WorkflowNotFoundError):
        _submit(service, inspector, workflow_id="WF-X")


def test_pending_submission_notifies_each_approver(service, save_workflow, inspector):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2"])

    repo = NotificationRepository()
    for approver_id in ("approver-1", "approver-2"):
        notifications = repo.list_for_recipient(approver_id)
        assert len(notifications) == 1
        assert notifications[0].template_key == NotificationTemplateKey.INSPECTION_PENDING
        assert notifications[0].payload["inspection_id"] == inspection.inspection_id


def test_bulk_workflow_defers_notifications(service, save_workflow, inspector):
    save_workflow(bulk_approval_enabled=True)
    _submit(service, inspector)
    assert NotificationRepository().list_for_recipient("approver-1") == []


# =============================================================================
# Voting
# =============================================================================

def test_three_approvers_one_rejection(service, save_workflow, inspector, approver, second_approver, third_approver):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2", "approver-3"])

    after_first = service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.APPROVED)
    assert after_first.status == InspectionStatus.PENDING

    rejected = service.cast_vote(
        inspection.inspection_id, second_approver, ApprovalDecision.REJECTED, "gauge broken"
    )
    assert rejected.status == InspectionStatus.REJECTED
    assert rejected.rejection_reason == "gauge broken"

    with pytest.raises(InvalidStateError):
        service.cast_vote(inspection.inspection_id, third_approver, ApprovalDecision.APPROVED)


def test_all_approvals_finalize(service, save_workflow, inspector, approver, second_approver):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2"])

    service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.APPROVED)
    final = service.cast_vote(inspection.inspection_id, second_approver, ApprovalDecision.APPROVED)

    assert final.status == InspectionStatus.APPROVED
    assert final.approved_by == "approver-2"
    assert final.version == inspection.version + 2


def test_admin_override(service, save_workflow, inspector, admin):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2"])

    approved = service.cast_vote(inspection.inspection_id, admin, ApprovalDecision.APPROVED, "ok")
    assert approved.status == InspectionStatus.APPROVED
    assert approved.vote_for("admin-1").decision == ApprovalDecision.APPROVED


def test_repeated_vote_is_idempotent(service, save_workflow, inspector, approver):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2"])

    first = service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.APPROVED)
    second = service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.APPROVED)
    third = service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.REJECTED, "nope")

    assert second.version == first.version
    assert third.status == InspectionStatus.PENDING
    assert third.vote_for("approver-1").decision == ApprovalDecision.APPROVED


def test_vote_retries_after_concurrent_vote(service, save_workflow, inspector, approver, second_approver, monkeypatch):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2"])
    read = service.inspection_repo.get_inspection_or_raise
    reads = []

    def read_then_race(inspection_id):
        current = read(inspection_id)
        if not reads:
            InspectionService().cast_vote(inspection_id, second_approver, ApprovalDecision.APPROVED)
        reads.append(inspection_id)
        return current

    monkeypatch.setattr(service.inspection_repo, "get_inspection_or_raise", read_then_race)
    final = service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.APPROVED)

    assert len(reads) == 2
    assert final.status == InspectionStatus.APPROVED
    assert final.vote_for("approver-1").decision == ApprovalDecision.APPROVED
    assert final.vote_for("approver-2").decision == ApprovalDecision.APPROVED


def test_vote_gives_up_after_retries(service, save_workflow, inspector, approver, monkeypatch):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1", "approver-2"])

    def always_stale(original, updated):
        raise ConcurrencyError(f"Inspection {original.inspection_id} was modified concurrently")

    monkeypatch.setattr(service.inspection_repo, "save_transition", always_stale)
    with pytest.raises(ConcurrencyError):
        service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.APPROVED)


def test_vote_requires_slot(service, save_workflow, inspector, second_approver):
    save_workflow()
    inspection = _submit(service, inspector, approver_ids=["approver-1"])
    with pytest.raises(PermissionDeniedError):
        service.cast_vote(inspection.inspection_id, second_approver, ApprovalDecision.APPROVED)


def test_vote_from_other_organization(service, save_workflow, inspector, outsider):
    save_workflow()
    inspection = _submit(service, inspector)
    with pytest.raises(PermissionDeniedError):
        service.cast_vote(inspection.inspection_id, outsider, ApprovalDecision.APPROVED)
    with pytest.raises(PermissionDeniedError):
        service.get_inspection(inspection.inspection_id, outsider)


def test_vote_on_unknown_inspection(service, approver):
    with pytest.raises(InspectionNotFoundError):
        service.cast_vote("INS-missing", approver, ApprovalDecision.APPROVED)


def test_rejection_without_remarks(service, save_workflow, inspector, approver):
    save_workflow()
    inspection = _submit(service, inspector)
    with pytest.raises(ValidationError):
        service.cast_vote(inspection.inspection_id, approver, ApprovalDecision.REJECTED, "")
