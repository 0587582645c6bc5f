"""Batch Service - Grouping of routine inspections and batch-level decisions

A batch is not a stored entity: it is the set of inspections sharing a
``batch_id``. The grouping sweep tags pending inspections of bulk-enabled
workflows, one batch per (workflow, primary approver, UTC day of submission).
"""
from collections import OrderedDict
from datetime import date, datetime
from typing import List, Optional, Tuple

from ..domain.models import (
    ActorContext, BatchDecisionResult, BatchDetail, BatchSummary,
    GroupingSweepResult, Inspection
)
from ..domain.enums import ApprovalDecision
from ..domain.errors import (
    BatchNotFoundError, ConcurrencyError, InspectionNotFoundError,
    PermissionDeniedError, ValidationError
)
from ..repositories.inspection_repo import InspectionRepository
from ..repositories.workflow_repo import WorkflowRepository
from ..engine.approval_state_machine import ApprovalStateMachine
from ..engine.permission_guard import PermissionGuard
from .notification_service import NotificationService
from ..config.settings import settings
from ..utils.idgen import generate_batch_id
from ..utils.time import day_of, days_ago, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

GroupKey = Tuple[str, Optional[str], date]


class BatchService:
    """Service for batch grouping, batch reads and batch decisions"""

    def __init__(self, notification_service: Optional[NotificationService] = None):
        self.inspection_repo = InspectionRepository()
        self.workflow_repo = WorkflowRepository()
        self.state_machine = ApprovalStateMachine()
        self.guard = PermissionGuard()
        self.notifications = notification_service or NotificationService()

    # =========================================================================
    # Grouping
    # =========================================================================

    def run_batch_grouping_sweep(self, organization_id: str) -> GroupingSweepResult:
        """
        Group one organization's pending routine inspections into batches

        Each member is claimed with a conditional update, so inspections
        decided or batched by someone else meanwhile are left alone and a
        repeated sweep never regroups anything.
        """
        result = GroupingSweepResult(organization_id=organization_id)

        workflows = {
            workflow.workflow_id: workflow
            for workflow in self.workflow_repo.list_bulk_enabled_workflows(organization_id)
        }
        if not workflows:
            return result

        candidates = self.inspection_repo.list_grouping_candidates(organization_id, workflows.keys())
        for (workflow_id, approver_id, day), members in self.group_candidates(candidates).items():
            batch_id = generate_batch_id(workflow_id, day)
            claimed = sum(
                1 for inspection in members
                if self.inspection_repo.claim_for_batch(inspection.inspection_id, batch_id)
            )
            if not claimed:
                continue

            result.batches_formed += 1
            result.inspections_grouped += claimed
            result.batch_ids.append(batch_id)

            logger.info(
                f"Formed batch with {claimed}/{len(members)} inspections",
                extra={
                    "batch_id": batch_id,
                    "organization_id": organization_id,
                    "workflow_id": workflow_id,
                    "approver_id": approver_id
                }
            )

            if approver_id:
                self.notifications.notify_batch_ready(
                    recipient_id=approver_id,
                    batch_id=batch_id,
                    workflow_id=workflow_id,
                    workflow_name=workflows[workflow_id].name,
                    count=claimed
                )

        return result

    def process_batches(self, actor: ActorContext) -> GroupingSweepResult:
        """Manually triggered grouping sweep for the actor's organization"""
        if not self.guard.can_run_grouping(actor, actor.organization_id):
            raise PermissionDeniedError("Only administrators can run batch grouping")
        return self.run_batch_grouping_sweep(actor.organization_id)

    @staticmethod
    def group_candidates(candidates: List[Inspection]) -> "OrderedDict[GroupKey, List[Inspection]]":
        """Partition inspections by (workflow, primary approver, UTC day), oldest group first"""
        groups: "OrderedDict[GroupKey, List[Inspection]]" = OrderedDict()
        for inspection in candidates:
            key = (inspection.workflow_id, inspection.primary_approver_id, day_of(inspection.created_at))
            groups.setdefault(key, []).append(inspection)
        return groups

    # =========================================================================
    # Reads
    # =========================================================================

    def list_batches(self, actor: ActorContext) -> List[BatchSummary]:
        """
        Batches still waiting for a decision

        Administrators see every batch of their organization, approvers only
        the batches addressed to them.
        """
        if not self.guard.can_list_batches(actor):
            raise PermissionDeniedError("Only approvers and administrators can view batches")

        approver_filter = None if actor.is_admin else actor.user_id
        pending = self.inspection_repo.list_bulk_pending(actor.organization_id, approver_id=approver_filter)

        by_batch: "OrderedDict[str, List[Inspection]]" = OrderedDict()
        for inspection in pending:
            by_batch.setdefault(inspection.batch_id, []).append(inspection)

        return [self._summarize(batch_id, members) for batch_id, members in by_batch.items()]

    def get_batch(self, batch_id: str, actor: ActorContext) -> BatchDetail:
        """Batch with all of its members, whatever their status"""
        members = self._load_members(batch_id, actor)
        summary = self._summarize(batch_id, members)
        if not self.guard.can_act_on_batch(actor, actor.organization_id, summary.approver_id):
            raise PermissionDeniedError(
                "You don't have access to this batch",
                details={"batch_id": batch_id}
            )
        return BatchDetail(**summary.model_dump(), inspections=members)

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve_batch(
        self,
        batch_id: str,
        actor: ActorContext,
        remarks: Optional[str] = None
    ) -> BatchDecisionResult:
        """Approve every member still waiting in the batch"""
        return self._decide(batch_id, actor, ApprovalDecision.APPROVED, remarks)

    def reject_batch(self, batch_id: str, actor: ActorContext, remarks: Optional[str]) -> BatchDecisionResult:
        """Reject every member still waiting in the batch; remarks are required"""
        if not (remarks or "").strip():
            raise ValidationError("Remarks are required when rejecting a batch")
        return self._decide(batch_id, actor, ApprovalDecision.REJECTED, remarks)

    def _decide(
        self,
        batch_id: str,
        actor: ActorContext,
        decision: ApprovalDecision,
        remarks: Optional[str]
    ) -> BatchDecisionResult:
        members = self._load_members(batch_id, actor)
        approver_id = members[0].primary_approver_id
        if not self.guard.can_act_on_batch(actor, actor.organization_id, approver_id):
            raise PermissionDeniedError(
                "Only the batch approver or an administrator can decide this batch",
                details={"batch_id": batch_id}
            )

        now = utc_now()
        modified = 0
        for inspection in members:
            if self._decide_member(batch_id, inspection, actor, decision, remarks, now):
                modified += 1

        if modified == 0:
            raise BatchNotFoundError(
                f"Batch {batch_id} has no inspections awaiting a decision",
                details={"batch_id": batch_id}
            )

        logger.info(
            f"Batch {decision.value}: {modified}/{len(members)} inspections",
            extra={
                "batch_id": batch_id,
                "organization_id": actor.organization_id,
                "actor_id": actor.user_id,
                "decision": decision.value
            }
        )
        return BatchDecisionResult(batch_id=batch_id, modified_count=modified)

    def _decide_member(
        self,
        batch_id: str,
        inspection: Inspection,
        actor: ActorContext,
        decision: ApprovalDecision,
        remarks: Optional[str],
        now: datetime
    ) -> bool:
        """
        Finalize one batch member, re-reading it after a lost compare-and-set

        Returns:
            True if the member was decided, False if it left the batch queue
        """
        last_error: Optional[ConcurrencyError] = None
        for attempt in range(settings.cas_max_retries):
            if inspection is None or inspection.batch_id != batch_id:
                return False

            updated = self.state_machine.apply_batch_decision(inspection, actor, decision, remarks, now)
            if updated is None:
                # Decided individually since the batch was read
                return False

            try:
                self.inspection_repo.save_transition(inspection, updated)
                return True
            except InspectionNotFoundError:
                return False
            except ConcurrencyError as e:
                last_error = e
                logger.info(
                    f"Batch member lost a concurrent update, retrying (attempt {attempt + 1})",
                    extra={"batch_id": batch_id, "inspection_id": inspection.inspection_id}
                )
                inspection = self.inspection_repo.get_inspection(inspection.inspection_id)

        raise last_error

    # =========================================================================
    # Retention
    # =========================================================================

    def run_retention_sweep(
        self,
        retention_days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Clear batch tags from inspections finalized long enough ago

        Returns:
            Number of inspections whose ``batch_id`` was removed
        """
        retention_days = retention_days if retention_days is not None else settings.batch_retention_days
        cutoff = days_ago(retention_days, now or utc_now())
        cleared = self.inspection_repo.clear_expired_batch_tags(cutoff)
        logger.info(f"Retention sweep cleared {cleared} batch tags older than {retention_days} days")
        return cleared

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_members(self, batch_id: str, actor: ActorContext) -> List[Inspection]:
        members = self.inspection_repo.list_batch_members(batch_id, organization_id=actor.organization_id)
        if not members:
            raise BatchNotFoundError(f"Batch {batch_id} not found", details={"batch_id": batch_id})
        return members

    @staticmethod
    def _summarize(batch_id: str, members: List[Inspection]) -> BatchSummary:
        first = members[0]
        created = [inspection.created_at for inspection in members]
        return BatchSummary(
            batch_id=batch_id,
            workflow_id=first.workflow_id,
            workflow_name=first.workflow_name,
            category=first.category,
            approver_id=first.primary_approver_id,
            count=len(members),
            first_created_at=min(created),
            last_created_at=max(created)
        )

