"""
Seed Data Script - Creates a demo organization for manual testing
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from approval_engine.repositories.mongo_client import get_collection, create_indexes
from approval_engine.repositories.workflow_repo import WorkflowRepository
from approval_engine.domain.models import AutoApprovalRuleSet, UserRecord, WorkflowSnapshot
from approval_engine.domain.enums import FrequencyPeriod, UserRole
from approval_engine.utils.time import utc_now

DEMO_ORG = "ORG-DEMO"


def create_sample_users():
    """One administrator, two approvers and an inspector"""
    users_col = get_collection("users")

    if users_col.count_documents({"organization_id": DEMO_ORG}) > 0:
        print("Demo organization already has users. Skipping.")
        return

    now = utc_now()
    users = [
        UserRecord(user_id="admin-1", organization_id=DEMO_ORG, role=UserRole.ADMIN, name="Site Admin", created_at=now),
        UserRecord(user_id="approver-1", organization_id=DEMO_ORG, role=UserRole.APPROVER, name="Shift Lead", created_at=now),
        UserRecord(user_id="approver-2", organization_id=DEMO_ORG, role=UserRole.APPROVER, name="Safety Officer", created_at=now),
        UserRecord(user_id="inspector-1", organization_id=DEMO_ORG, role=UserRole.INSPECTOR, name="Field Inspector", created_at=now),
    ]
    for user in users:
        doc = user.model_dump()
        doc["_id"] = user.user_id
        users_col.insert_one(doc)
        print(f"Created user: {user.user_id} ({user.role.value})")


def create_sample_workflows():
    """A routine meter check with auto-approval and a bulk-approved daily walkthrough"""
    repo = WorkflowRepository()
    now = utc_now()

    meter_check = WorkflowSnapshot(
        workflow_id="WF-METER",
        organization_id=DEMO_ORG,
        name="Boiler Pressure Check",
        category="Utilities",
        is_routine_inspection=True,
        auto_approval=AutoApprovalRuleSet(
            enabled=True,
            time_range_start="06:00",
            time_range_end="22:00",
            min_value=10,
            max_value=100,
            frequency_limit=10,
            frequency_period=FrequencyPeriod.DAY
        ),
        updated_at=now
    )
    walkthrough = WorkflowSnapshot(
        workflow_id="WF-WALK",
        organization_id=DEMO_ORG,
        name="Daily Floor Walkthrough",
        category="Safety",
        is_routine_inspection=True,
        auto_approval=AutoApprovalRuleSet(require_photo=True, bulk_approval_enabled=True),
        updated_at=now
    )

    for workflow in (meter_check, walkthrough):
        repo.upsert_workflow(workflow)
        print(f"Saved workflow: {workflow.workflow_id} - {workflow.name}")


def main():
    print("=== Seeding database ===")
    print("-" * 40)

    create_indexes()

    create_sample_users()
    create_sample_workflows()

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
