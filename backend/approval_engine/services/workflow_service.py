"""Workflow Service - Approval settings of workflows"""
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..domain.models import ActorContext, AutoApprovalRuleSet, WorkflowSnapshot
from ..domain.errors import PermissionDeniedError, ValidationError, WorkflowNotFoundError
from ..repositories.workflow_repo import WorkflowRepository
from ..engine.permission_guard import PermissionGuard
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowService:
    """Service for workflow operations"""

    def __init__(self):
        self.repo = WorkflowRepository()
        self.guard = PermissionGuard()

    def get_workflow(self, workflow_id: str, actor: ActorContext) -> WorkflowSnapshot:
        """Get workflow by ID, hidden from other organizations"""
        workflow = self.repo.get_workflow(workflow_id)
        if not workflow or not self.guard.same_organization(actor, workflow.organization_id):
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    def update_approval_settings(
        self,
        workflow_id: str,
        actor: ActorContext,
        is_routine_inspection: Optional[bool] = None,
        auto_approval: Optional[Union[AutoApprovalRuleSet, Dict[str, Any]]] = None
    ) -> WorkflowSnapshot:
        """
        Change whether a workflow is routine and how it auto-approves

        Omitted arguments keep their stored values. New rules only affect
        submissions made after the change.
        """
        workflow = self.get_workflow(workflow_id, actor)
        if not self.guard.can_manage_workflow_settings(actor, workflow.organization_id):
            raise PermissionDeniedError("Only administrators can change approval settings")

        if auto_approval is None:
            rules = workflow.auto_approval
        elif isinstance(auto_approval, AutoApprovalRuleSet):
            rules = auto_approval
        else:
            try:
                rules = AutoApprovalRuleSet.model_validate(auto_approval)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid auto-approval rules",
                    details={"errors": [error["msg"] for error in e.errors()]}
                )

        routine = workflow.is_routine_inspection if is_routine_inspection is None else is_routine_inspection
        updated = self.repo.update_approval_settings(workflow_id, routine, rules)

        logger.info(
            "Approval settings changed",
            extra={"workflow_id": workflow_id, "actor_id": actor.user_id}
        )
        return updated
