"""Scheduled jobs run directly, without starting APScheduler"""
import asyncio
from datetime import timedelta

import pytest

from approval_engine.domain.enums import InspectionStatus
from approval_engine.repositories.inspection_repo import InspectionRepository
from approval_engine.scheduler.job_scheduler import JobScheduler
from approval_engine.utils.time import utc_now
from tests.factories import OTHER_ORG, make_inspection


@pytest.fixture
def scheduler(users):
    return JobScheduler()


@pytest.fixture
def pending_in_two_orgs(save_workflow):
    save_workflow(workflow_id="WF-A", bulk_approval_enabled=True)
    save_workflow(workflow_id="WF-B", organization_id=OTHER_ORG, bulk_approval_enabled=True)
    repo = InspectionRepository()
    repo.create_inspection(make_inspection(["approver-1"], workflow_id="WF-A"))
    repo.create_inspection(make_inspection(["approver-9"], workflow_id="WF-B", organization_id=OTHER_ORG))


def test_grouping_sweep_covers_every_organization(scheduler, pending_in_two_orgs):
    results = asyncio.run(scheduler.run_grouping_sweep())

    assert [r.organization_id for r in results] == ["ORG-1", "ORG-2"]
    assert all(r.batches_formed == 1 for r in results)


def test_one_failing_organization_does_not_stop_the_sweep(scheduler, pending_in_two_orgs, monkeypatch):
    original = scheduler.batch_service.run_batch_grouping_sweep

    def flaky(organization_id):
        if organization_id == "ORG-1":
            raise RuntimeError("replica set election")
        return original(organization_id)

    monkeypatch.setattr(scheduler.batch_service, "run_batch_grouping_sweep", flaky)
    results = asyncio.run(scheduler.run_grouping_sweep())

    assert [r.organization_id for r in results] == ["ORG-2"]
    assert results[0].inspections_grouped == 1


def test_retention_job(scheduler):
    repo = InspectionRepository()
    repo.create_inspection(make_inspection(
        status=InspectionStatus.REJECTED,
        batch_id="BATCH-old",
        updated_at=utc_now() - timedelta(days=45)
    ))
    assert asyncio.run(scheduler.run_retention_sweep()) == 1


def test_notification_job_sends_outbox(scheduler, pending_in_two_orgs):
    asyncio.run(scheduler.run_grouping_sweep())
    assert asyncio.run(scheduler.dispatch_notifications()) == 2
    assert asyncio.run(scheduler.dispatch_notifications()) == 0
