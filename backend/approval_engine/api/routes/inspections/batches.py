"""
Batch Routes

Bulk approval endpoints:
- List and inspect pending batches
- Approve/Reject a whole batch
- Trigger a grouping sweep
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ...deps import get_current_user_dep, get_correlation_id_dep
from ....domain.models import (
    ActorContext, BatchDecisionResult, BatchDetail, BatchSummary, GroupingSweepResult
)
from ....domain.errors import DomainError
from ....services.batch_service import BatchService
from ....utils.logger import get_logger
from .schemas import BatchDecisionRequest

logger = get_logger(__name__)
router = APIRouter()


@router.get("/batch", response_model=List[BatchSummary])
async def list_batches(
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    List batches awaiting a decision.

    Administrators see their whole organization, approvers their own batches.
    """
    try:
        return BatchService().list_batches(actor)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/batch/{batch_id}", response_model=BatchDetail)
async def get_batch(
    batch_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get a batch with all member inspections"""
    try:
        return BatchService().get_batch(batch_id, actor)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/batch/{batch_id}/approve", response_model=BatchDecisionResult)
async def approve_batch(
    batch_id: str,
    request: BatchDecisionRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Approve every inspection still pending in the batch"""
    try:
        return BatchService().approve_batch(batch_id, actor, remarks=request.remarks)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/batch/{batch_id}/reject", response_model=BatchDecisionResult)
async def reject_batch(
    batch_id: str,
    request: BatchDecisionRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Reject every inspection still pending in the batch"""
    try:
        return BatchService().reject_batch(batch_id, actor, remarks=request.remarks)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/process-batches", response_model=GroupingSweepResult)
async def process_batches(
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Run the grouping sweep for the caller's organization now (administrators)"""
    try:
        result = BatchService().process_batches(actor)
        logger.info(
            f"Manual grouping sweep formed {result.batches_formed} batches",
            extra={"organization_id": actor.organization_id, "actor_id": actor.user_id}
        )
        return result

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
