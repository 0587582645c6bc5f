"""
Inspection Schemas

Request and response models for inspection API endpoints.
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from ....domain.models import FilledStep


# =============================================================================
# Submission Schemas
# =============================================================================

class SubmitInspectionRequest(BaseModel):
    """Request to submit a filled inspection"""
    workflow_id: str
    approver_ids: List[str] = Field(default_factory=list, description="Users who must decide")
    primary_approver_id: Optional[str] = Field(None, description="Approver to place first")
    filled_steps: List[FilledStep] = Field(default_factory=list)
    inspection_date: str = Field(..., description="ISO 8601 date or timestamp")
    meter_reading: Optional[float] = None
    auto_approve: bool = Field(default=False, description="Evaluate auto-approval rules on submit")


# =============================================================================
# Decision Schemas
# =============================================================================

class VoteRequest(BaseModel):
    """Request for approve/reject of one inspection"""
    remarks: Optional[str] = Field(None, max_length=2000)


class BatchDecisionRequest(BaseModel):
    """Request for approve/reject of a whole batch"""
    remarks: Optional[str] = Field(None, max_length=2000)
