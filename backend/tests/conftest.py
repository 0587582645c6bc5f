"""
Pytest Configuration and Fixtures

MongoDB is replaced by mongomock for every test by swapping the module-level
client and database handles the repositories read from.
"""

import mongomock
import pytest

from approval_engine.repositories import mongo_client
from approval_engine.repositories.workflow_repo import WorkflowRepository
from approval_engine.domain.enums import UserRole

from tests.factories import ORG, OTHER_ORG, make_actor, make_workflow


@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    """Fresh in-memory database per test"""
    client = mongomock.MongoClient()
    database = client["approval_engine_test"]
    monkeypatch.setattr(mongo_client, "_client", client)
    monkeypatch.setattr(mongo_client, "_database", database)
    yield database


@pytest.fixture
def users(mongo_db):
    """Users of the test organizations"""
    docs = [
        {"user_id": "admin-1", "organization_id": ORG, "role": UserRole.ADMIN.value, "name": "Admin"},
        {"user_id": "admin-2", "organization_id": ORG, "role": UserRole.ADMIN.value, "name": "Second Admin"},
        {"user_id": "approver-1", "organization_id": ORG, "role": UserRole.APPROVER.value},
        {"user_id": "approver-2", "organization_id": ORG, "role": UserRole.APPROVER.value},
        {"user_id": "approver-3", "organization_id": ORG, "role": UserRole.APPROVER.value},
        {"user_id": "inspector-1", "organization_id": ORG, "role": UserRole.INSPECTOR.value},
        {"user_id": "admin-9", "organization_id": OTHER_ORG, "role": UserRole.ADMIN.value},
        {"user_id": "approver-9", "organization_id": OTHER_ORG, "role": UserRole.APPROVER.value},
    ]
    mongo_db["users"].insert_many(docs)
    return docs


@pytest.fixture
def save_workflow(mongo_db):
    """Persist a workflow snapshot built from keyword rules"""
    repo = WorkflowRepository()

    def _save(workflow_id="WF-1", **kwargs):
        return repo.upsert_workflow(make_workflow(workflow_id=workflow_id, **kwargs))

    return _save


@pytest.fixture
def admin():
    return make_actor("admin-1", UserRole.ADMIN)


@pytest.fixture
def approver():
    return make_actor("approver-1", UserRole.APPROVER)


@pytest.fixture
def second_approver():
    return make_actor("approver-2", UserRole.APPROVER)


@pytest.fixture
def third_approver():
    return make_actor("approver-3", UserRole.APPROVER)


@pytest.fixture
def inspector():
    return make_actor("inspector-1", UserRole.INSPECTOR)


@pytest.fixture
def outsider():
    return make_actor("admin-9", UserRole.ADMIN, organization_id=OTHER_ORG)
