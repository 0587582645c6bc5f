"""Workflow Repository - Read access to workflow approval configuration

Workflows are authored by the workflow service; this repository only reads
the fields the approval engine needs and lets administrators change the
approval settings.
"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ReturnDocument
from pydantic import ValidationError

from .mongo_client import get_collection
from ..domain.models import WorkflowSnapshot, AutoApprovalRuleSet
from ..domain.errors import WorkflowNotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class WorkflowRepository:
    """Repository for workflow operations"""

    def __init__(self):
        self._workflows: Collection = get_collection("workflows")

    def upsert_workflow(self, workflow: WorkflowSnapshot) -> WorkflowSnapshot:
        """Create or replace the workflow snapshot"""
        doc = workflow.model_dump()
        doc["_id"] = workflow.workflow_id
        self._workflows.replace_one({"workflow_id": workflow.workflow_id}, doc, upsert=True)
        logger.info(f"Saved workflow: {workflow.workflow_id}", extra={"workflow_id": workflow.workflow_id})
        return workflow

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowSnapshot]:
        """Get workflow by ID"""
        doc = self._workflows.find_one({"workflow_id": workflow_id})
        if doc:
            doc.pop("_id", None)
            try:
                return WorkflowSnapshot.model_validate(doc)
            except ValidationError as e:
                logger.error(
                    f"Corrupted workflow data for {workflow_id}. Validation failed: {str(e)[:500]}",
                    extra={"workflow_id": workflow_id}
                )
                raise
        return None

    def get_workflow_or_raise(self, workflow_id: str) -> WorkflowSnapshot:
        """Get workflow by ID or raise error"""
        workflow = self.get_workflow(workflow_id)
        if not workflow:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    def list_bulk_enabled_workflows(self, organization_id: str) -> List[WorkflowSnapshot]:
        """Workflows of the organization whose pending inspections may be batched"""
        cursor = self._workflows.find({
            "organization_id": organization_id,
            "auto_approval.bulk_approval_enabled": True,
        })

        workflows = []
        for doc in cursor:
            doc.pop("_id", None)
            workflows.append(WorkflowSnapshot.model_validate(doc))
        return workflows

    def update_approval_settings(
        self,
        workflow_id: str,
        is_routine_inspection: bool,
        auto_approval: AutoApprovalRuleSet
    ) -> WorkflowSnapshot:
        """Replace the approval configuration of a workflow"""
        updates: Dict[str, Any] = {
            "is_routine_inspection": is_routine_inspection,
            "auto_approval": auto_approval.model_dump(),
            "updated_at": utc_now(),
        }
        result = self._workflows.find_one_and_update(
            {"workflow_id": workflow_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")

        result.pop("_id", None)
        logger.info(f"Updated approval settings: {workflow_id}", extra={"workflow_id": workflow_id})
        return WorkflowSnapshot.model_validate(result)
