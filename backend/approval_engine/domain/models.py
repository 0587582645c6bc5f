"""Domain Models - Pydantic schemas for all entities"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, computed_field, field_validator, model_validator

from .enums import (
    InspectionStatus, ApprovalDecision, UserRole, FrequencyPeriod,
    NotificationStatus, NotificationTemplateKey
)


_HHMM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


# ============================================================================
# Identity
# ============================================================================

class ActorContext(BaseModel):
    """Current actor, as asserted by the upstream auth gateway"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="User ID")
    role: UserRole = Field(..., description="Actor role")
    organization_id: str = Field(..., description="Organization the actor belongs to")
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserRecord(BaseModel):
    """User as read from the external accounts collection"""
    model_config = ConfigDict(extra="ignore")

    user_id: str
    organization_id: str
    role: UserRole
    name: Optional[str] = None
    created_at: Optional[datetime] = None


# ============================================================================
# Workflow (external) & Auto-Approval Rules
# ============================================================================

class AutoApprovalRuleSet(BaseModel):
    """Declarative auto-approval rules attached to a workflow"""
    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=False, description="Auto-approval gate")
    time_range_start: Optional[str] = Field(None, description="HH:MM, inclusive")
    time_range_end: Optional[str] = Field(None, description="HH:MM, inclusive")
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    value_field: str = Field(default="responseText", description="Where to read the numeric value from")
    require_photo: bool = Field(default=False, description="Every filled step must carry media")
    frequency_limit: Optional[int] = Field(None, ge=0)
    frequency_period: FrequencyPeriod = Field(default=FrequencyPeriod.DAY)
    bulk_approval_enabled: bool = Field(default=False, description="Non auto-approved submissions may be batched")

    @field_validator("time_range_start", "time_range_end")
    @classmethod
    def _normalize_hhmm(cls, value: Optional[str]) -> Optional[str]:
        """Zero-pad to HH:MM so lexical comparison matches chronological order"""
        if value is None or value == "":
            return None
        match = _HHMM_PATTERN.match(value.strip())
        if not match:
            raise ValueError(f"Invalid time of day '{value}', expected HH:MM")
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise ValueError(f"Invalid time of day '{value}', expected HH:MM")
        return f"{hours:02d}:{minutes:02d}"

    @model_validator(mode="after")
    def _check_bounds(self) -> "AutoApprovalRuleSet":
        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            raise ValueError("min_value cannot be greater than max_value")
        return self

    @property
    def has_time_window(self) -> bool:
        return self.time_range_start is not None or self.time_range_end is not None

    @property
    def has_value_bounds(self) -> bool:
        return self.min_value is not None or self.max_value is not None


class WorkflowSnapshot(BaseModel):
    """Workflow fields the engine needs; the workflow itself is owned elsewhere"""
    model_config = ConfigDict(extra="ignore")

    workflow_id: str
    organization_id: str
    name: str
    category: str
    is_routine_inspection: bool = False
    auto_approval: AutoApprovalRuleSet = Field(default_factory=AutoApprovalRuleSet)
    updated_at: Optional[datetime] = None


# ============================================================================
# Inspection
# ============================================================================

class FilledStep(BaseModel):
    """One answered workflow step"""
    model_config = ConfigDict(extra="ignore")

    step_id: str
    step_title: Optional[str] = None
    response_text: str = ""
    media_urls: List[str] = Field(default_factory=list)
    timestamp: Optional[datetime] = None

    @field_validator("media_urls")
    @classmethod
    def _dedupe_media(cls, value: List[str]) -> List[str]:
        seen = []
        for url in value:
            if url and url not in seen:
                seen.append(url)
        return seen


class ApprovalVote(BaseModel):
    """One approver's stance on one inspection"""
    model_config = ConfigDict(extra="ignore")

    approver_id: str
    decision: ApprovalDecision = Field(default=ApprovalDecision.PENDING)
    remarks: str = ""
    decided_at: Optional[datetime] = None


class Inspection(BaseModel):
    """Inspection instance (runtime)"""
    model_config = ConfigDict(extra="ignore")  # Stored docs carry derived fields

    inspection_id: str = Field(..., description="Unique inspection ID")
    organization_id: str
    workflow_id: str
    workflow_name: str
    category: str
    inspector_id: str = Field(..., description="Submitting user")
    filled_steps: List[FilledStep] = Field(default_factory=list)
    status: InspectionStatus = Field(default=InspectionStatus.PENDING)
    approvers: List[ApprovalVote] = Field(default_factory=list)
    batch_id: Optional[str] = None
    meter_reading: Optional[float] = None
    remarks: str = ""
    rejection_reason: Optional[str] = None
    auto_approved: bool = False
    inspection_date: datetime
    created_at: datetime
    updated_at: datetime
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    version: int = Field(default=1, description="Optimistic concurrency version")

    @computed_field  # type: ignore[misc]
    @property
    def primary_approver_id(self) -> Optional[str]:
        """Legacy single-approver view: always the first vote slot"""
        return self.approvers[0].approver_id if self.approvers else None

    @property
    def approver_ids(self) -> List[str]:
        return [vote.approver_id for vote in self.approvers]

    def vote_for(self, approver_id: str) -> Optional[ApprovalVote]:
        for vote in self.approvers:
            if vote.approver_id == approver_id:
                return vote
        return None


# ============================================================================
# Evaluation, Batches & Sweeps
# ============================================================================

class RuleEvaluation(BaseModel):
    """Outcome of one auto-approval evaluation"""
    eligible: bool
    reason: str


class BatchSummary(BaseModel):
    """Read-only projection of one pending batch"""
    batch_id: str
    workflow_id: str
    workflow_name: str
    category: str
    approver_id: Optional[str] = None
    count: int
    first_created_at: datetime
    last_created_at: datetime


class BatchDetail(BatchSummary):
    """Batch with its member inspections and their votes"""
    inspections: List[Inspection] = Field(default_factory=list)


class BatchDecisionResult(BaseModel):
    """Result of a batch-level approve/reject"""
    batch_id: str
    modified_count: int


class GroupingSweepResult(BaseModel):
    """Result of one batch-grouping sweep for one organization"""
    organization_id: str
    batches_formed: int = 0
    inspections_grouped: int = 0
    batch_ids: List[str] = Field(default_factory=list)


# ============================================================================
# Notification Outbox
# ============================================================================

class NotificationOutbox(BaseModel):
    """Notification in outbox"""
    model_config = ConfigDict(extra="ignore")  # Allow extra fields from DB

    notification_id: str
    recipient_id: str
    template_key: NotificationTemplateKey
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    retry_count: int = Field(default=0)
    last_error: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None
