"""
Inspection Routes

Submit, read and vote on single inspections.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from ...deps import get_current_user_dep, get_correlation_id_dep
from ....domain.models import ActorContext, Inspection
from ....domain.enums import ApprovalDecision
from ....domain.errors import DomainError
from ....services.inspection_service import InspectionService
from ....utils.logger import get_logger
from .schemas import SubmitInspectionRequest, VoteRequest

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=Inspection, status_code=status.HTTP_201_CREATED)
async def submit_inspection(
    request: SubmitInspectionRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Submit a filled inspection.

    Routine workflows with auto-approval enabled may come back already
    auto-approved.
    """
    try:
        service = InspectionService()
        return service.submit(
            actor=actor,
            workflow_id=request.workflow_id,
            approver_ids=request.approver_ids,
            filled_steps=request.filled_steps,
            inspection_date=request.inspection_date,
            meter_reading=request.meter_reading,
            primary_approver_id=request.primary_approver_id,
            auto_approve=request.auto_approve
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{inspection_id}", response_model=Inspection)
async def get_inspection(
    inspection_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get one inspection with its votes"""
    try:
        return InspectionService().get_inspection(inspection_id, actor)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{inspection_id}/approve", response_model=Inspection)
async def approve_inspection(
    inspection_id: str,
    request: VoteRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Approve an inspection.

    Finalizes once every approver has approved, or immediately for an
    administrator. Repeating a vote is a no-op.
    """
    try:
        return InspectionService().cast_vote(
            inspection_id=inspection_id,
            actor=actor,
            decision=ApprovalDecision.APPROVED,
            remarks=request.remarks
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{inspection_id}/reject", response_model=Inspection)
async def reject_inspection(
    inspection_id: str,
    request: VoteRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Reject an inspection; remarks are required and one rejection is final"""
    try:
        return InspectionService().cast_vote(
            inspection_id=inspection_id,
            actor=actor,
            decision=ApprovalDecision.REJECTED,
            remarks=request.remarks
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
