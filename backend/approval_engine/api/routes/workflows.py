"""Workflow API Routes - Approval settings endpoints"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..deps import get_current_user_dep, get_correlation_id_dep
from ...domain.models import ActorContext, AutoApprovalRuleSet, WorkflowSnapshot
from ...domain.errors import DomainError
from ...services.workflow_service import WorkflowService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class UpdateApprovalSettingsRequest(BaseModel):
    """Request to change a workflow's approval settings"""
    is_routine_inspection: Optional[bool] = Field(None, description="Eligible for auto/bulk approval")
    auto_approval: Optional[AutoApprovalRuleSet] = None


# ============================================================================
# Routes
# ============================================================================

@router.get("/{workflow_id}", response_model=WorkflowSnapshot)
async def get_workflow(
    workflow_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get a workflow's approval configuration"""
    try:
        return WorkflowService().get_workflow(workflow_id, actor)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.patch("/{workflow_id}/approval-settings", response_model=WorkflowSnapshot)
async def update_approval_settings(
    workflow_id: str,
    request: UpdateApprovalSettingsRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Update routine flag and auto-approval rules (administrators)

    Only submissions made after the change are evaluated with the new rules.
    """
    try:
        return WorkflowService().update_approval_settings(
            workflow_id=workflow_id,
            actor=actor,
            is_routine_inspection=request.is_routine_inspection,
            auto_approval=request.auto_approval
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
