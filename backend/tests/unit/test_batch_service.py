"""Batch service: grouping sweep, batch reads, batch decisions and retention"""
from datetime import datetime, timedelta

import pytest

from approval_engine.domain.enums import (
    ApprovalDecision, InspectionStatus, NotificationTemplateKey
)
from approval_engine.domain.errors import (
    BatchNotFoundError, PermissionDeniedError, ValidationError
)
from approval_engine.repositories.inspection_repo import InspectionRepository
from approval_engine.repositories.notification_repo import NotificationRepository
from approval_engine.services.batch_service import BatchService
from approval_engine.services.inspection_service import InspectionService
from tests.factories import BASE_TIME, make_inspection


@pytest.fixture
def repo():
    return InspectionRepository()


@pytest.fixture
def service(users):
    return BatchService()


@pytest.fixture
def bulk_workflow(save_workflow):
    return save_workflow(workflow_id="WF-BULK", bulk_approval_enabled=True)


def _store_pending(repo, count, approver_id="approver-1", workflow_id="WF-BULK", created_at=None):
    stored = []
    for _ in range(count):
        inspection = make_inspection([approver_id], workflow_id=workflow_id, created_at=created_at)
        stored.append(repo.create_inspection(inspection))
    return stored


# =============================================================================
# Grouping
# =============================================================================

def test_sweep_groups_one_batch_per_workflow_approver_day(service, repo, bulk_workflow):
    _store_pending(repo, 3, approver_id="approver-1")
    _store_pending(repo, 2, approver_id="approver-2")
    _store_pending(repo, 1, approver_id="approver-1", created_at=BASE_TIME + timedelta(days=1))

    result = service.run_batch_grouping_sweep("ORG-1")

    assert result.batches_formed == 3
    assert result.inspections_grouped == 6
    assert len(set(result.batch_ids)) == 3
    assert all(batch_id.startswith("BATCH-WF-BULK-") for batch_id in result.batch_ids)


def test_sweep_ignores_workflows_without_bulk_approval(service, repo, save_workflow):
    save_workflow(workflow_id="WF-PLAIN")
    _store_pending(repo, 2, workflow_id="WF-PLAIN")

    result = service.run_batch_grouping_sweep("ORG-1")
    assert result.batches_formed == 0
    assert all(i.status == InspectionStatus.PENDING for i in repo.list_grouping_candidates("ORG-1", ["WF-PLAIN"]))


def test_second_sweep_does_not_regroup(service, repo, bulk_workflow):
    _store_pending(repo, 4)
    first = service.run_batch_grouping_sweep("ORG-1")
    second = service.run_batch_grouping_sweep("ORG-1")

    assert first.inspections_grouped == 4
    assert second.batches_formed == 0
    assert len(repo.list_batch_members(first.batch_ids[0])) == 4


def test_sweep_notifies_approver_once_per_batch(service, repo, bulk_workflow):
    _store_pending(repo, 3)
    result = service.run_batch_grouping_sweep("ORG-1")

    notifications = NotificationRepository().list_for_recipient("approver-1")
    assert len(notifications) == 1
    assert notifications[0].template_key == NotificationTemplateKey.BATCH_READY
    assert notifications[0].payload == {
        "batch_id": result.batch_ids[0],
        "workflow_id": "WF-BULK",
        "workflow_name": "Workflow WF-BULK",
        "count": 3,
    }


def test_process_batches_is_admin_only(service, approver, admin, bulk_workflow):
    with pytest.raises(PermissionDeniedError):
        service.process_batches(approver)
    assert service.process_batches(admin).batches_formed == 0


# =============================================================================
# Reads
# =============================================================================

def test_list_batches_by_role(service, repo, bulk_workflow, admin, approver, inspector):
    _store_pending(repo, 2, approver_id="approver-1")
    _store_pending(repo, 1, approver_id="approver-2")
    service.run_batch_grouping_sweep("ORG-1")

    assert len(service.list_batches(admin)) == 2

    own = service.list_batches(approver)
    assert len(own) == 1
    assert own[0].approver_id == "approver-1"
    assert own[0].count == 2
    assert own[0].first_created_at <= own[0].last_created_at

    with pytest.raises(PermissionDeniedError):
        service.list_batches(inspector)


def test_get_batch_access(service, repo, bulk_workflow, approver, second_approver, outsider):
    _store_pending(repo, 2)
    batch_id = service.run_batch_grouping_sweep("ORG-1").batch_ids[0]

    detail = service.get_batch(batch_id, approver)
    assert detail.count == 2
    assert len(detail.inspections) == 2

    with pytest.raises(PermissionDeniedError):
        service.get_batch(batch_id, second_approver)
    with pytest.raises(BatchNotFoundError):
        service.get_batch(batch_id, outsider)
    with pytest.raises(BatchNotFoundError):
        service.get_batch("BATCH-unknown", approver)


# =============================================================================
# Decisions
# =============================================================================

def test_batch_approval_modifies_only_pending_members(service, repo, bulk_workflow, approver):
    _store_pending(repo, 5)
    batch_id = service.run_batch_grouping_sweep("ORG-1").batch_ids[0]
    members = repo.list_batch_members(batch_id)

    voting = InspectionService()
    voting.cast_vote(members[0].inspection_id, approver, ApprovalDecision.APPROVED)
    voting.cast_vote(members[1].inspection_id, approver, ApprovalDecision.REJECTED, "reading off")

    result = service.approve_batch(batch_id, approver, remarks="all good")
    assert result.modified_count == 3

    statuses = [member.status for member in repo.list_batch_members(batch_id)]
    assert statuses.count(InspectionStatus.APPROVED) == 4
    assert statuses.count(InspectionStatus.REJECTED) == 1

    with pytest.raises(BatchNotFoundError):
        service.approve_batch(batch_id, approver)


def test_batch_approval_retries_member_voted_on_meanwhile(
    service, repo, bulk_workflow, approver, second_approver, monkeypatch
):
    for _ in range(2):
        repo.create_inspection(make_inspection(["approver-1", "approver-2"], workflow_id="WF-BULK"))
    batch_id = service.run_batch_grouping_sweep("ORG-1").batch_ids[0]
    read_members = repo.list_batch_members

    def read_then_vote(*args, **kwargs):
        members = read_members(*args, **kwargs)
        # A non-final vote only bumps the version; the member stays in the batch
        InspectionService().cast_vote(members[0].inspection_id, second_approver, ApprovalDecision.APPROVED)
        return members

    monkeypatch.setattr(service.inspection_repo, "list_batch_members", read_then_vote)
    result = service.approve_batch(batch_id, approver)

    assert result.modified_count == 2
    members = read_members(batch_id)
    assert [m.status for m in members] == [InspectionStatus.APPROVED, InspectionStatus.APPROVED]
    assert members[0].vote_for("approver-2").decision == ApprovalDecision.APPROVED
    assert members[0].vote_for("approver-1").decision == ApprovalDecision.APPROVED


def test_batch_rejection_requires_remarks(service, repo, bulk_workflow, approver):
    _store_pending(repo, 2)
    batch_id = service.run_batch_grouping_sweep("ORG-1").batch_ids[0]

    with pytest.raises(ValidationError):
        service.reject_batch(batch_id, approver, remarks=" ")

    result = service.reject_batch(batch_id, approver, remarks="wrong gauge")
    assert result.modified_count == 2
    for member in repo.list_batch_members(batch_id):
        assert member.status == InspectionStatus.REJECTED
        assert member.rejection_reason == "wrong gauge"
        assert member.vote_for("approver-1").decision == ApprovalDecision.REJECTED


def test_batch_decision_by_other_approver_is_forbidden(service, repo, bulk_workflow, second_approver, admin):
    _store_pending(repo, 2)
    batch_id = service.run_batch_grouping_sweep("ORG-1").batch_ids[0]

    with pytest.raises(PermissionDeniedError):
        service.approve_batch(batch_id, second_approver)

    assert service.approve_batch(batch_id, admin).modified_count == 2


# =============================================================================
# Retention
# =============================================================================

def test_retention_clears_only_expired_terminal_members(service, repo, mongo_db):
    now = datetime(2024, 6, 1, 12, 0)
    old = make_inspection(
        status=InspectionStatus.APPROVED, batch_id="BATCH-old", updated_at=now - timedelta(days=31)
    )
    recent = make_inspection(
        status=InspectionStatus.APPROVED, batch_id="BATCH-old", updated_at=now - timedelta(days=29)
    )
    waiting = make_inspection(
        status=InspectionStatus.PENDING_BULK, batch_id="BATCH-open", updated_at=now - timedelta(days=60)
    )
    for inspection in (old, recent, waiting):
        repo.create_inspection(inspection)

    cleared = service.run_retention_sweep(retention_days=30, now=now)

    assert cleared == 1
    cleared_doc = repo.get_inspection(old.inspection_id)
    assert cleared_doc.batch_id is None
    assert cleared_doc.status == InspectionStatus.APPROVED
    assert cleared_doc.updated_at == old.updated_at
    assert repo.get_inspection(recent.inspection_id).batch_id == "BATCH-old"
    assert repo.get_inspection(waiting.inspection_id).batch_id == "BATCH-open"
