"""
Inspection Routes Module

- batches.py: Batch listing, batch decisions, manual grouping
- crud.py: Submit, get, approve and reject single inspections
"""

from fastapi import APIRouter

from .schemas import SubmitInspectionRequest, VoteRequest, BatchDecisionRequest
from .batches import router as batches_router
from .crud import router as crud_router

router = APIRouter()

# /batch and /process-batches must be registered before /{inspection_id}
router.include_router(batches_router)
router.include_router(crud_router)

__all__ = [
    "router",
    "SubmitInspectionRequest", "VoteRequest", "BatchDecisionRequest"
]
