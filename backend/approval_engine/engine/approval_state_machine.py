"""Approval State Machine - Per-inspection consensus over named approvers

Transitions are computed on copies and never persisted here; the caller
writes the result with a compare-and-set on the state it read.

    pending      -> approved | rejected | auto-approved | pending-bulk
    pending-bulk -> approved | rejected

Consensus is asymmetric: one rejection ends the inspection, approval needs
every vote (or an administrator).
"""
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional

from ..domain.models import ActorContext, ApprovalVote, Inspection
from ..domain.enums import ApprovalDecision, InspectionStatus
from ..domain.errors import InvalidStateError, NotFoundError, ValidationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


ALLOWED_TRANSITIONS = {
    InspectionStatus.PENDING: frozenset({
        InspectionStatus.APPROVED,
        InspectionStatus.REJECTED,
        InspectionStatus.AUTO_APPROVED,
        InspectionStatus.PENDING_BULK,
    }),
    InspectionStatus.PENDING_BULK: frozenset({
        InspectionStatus.APPROVED,
        InspectionStatus.REJECTED,
    }),
}

AUTO_APPROVAL_REMARK = "Auto-approved based on predefined rules"


class VoteOutcome(NamedTuple):
    """Inspection after a vote, and whether anything changed"""
    inspection: Inspection
    changed: bool


class ApprovalStateMachine:
    """Pure transition logic for inspection approval"""

    @staticmethod
    def can_transition(current: InspectionStatus, target: InspectionStatus) -> bool:
        """Check whether ``current -> target`` is a legal transition"""
        return target in ALLOWED_TRANSITIONS.get(current, frozenset())

    @staticmethod
    def build_votes(approver_ids: Iterable[str]) -> List[ApprovalVote]:
        """One pending vote per distinct approver, first occurrence order kept"""
        votes: List[ApprovalVote] = []
        seen = set()
        for approver_id in approver_ids:
            if not approver_id or approver_id in seen:
                continue
            seen.add(approver_id)
            votes.append(ApprovalVote(approver_id=approver_id))
        return votes

    def apply_auto_approval(self, inspection: Inspection, now: datetime) -> Inspection:
        """Finalize a pending inspection as auto-approved, approving every vote"""
        self._require_transition(inspection, InspectionStatus.AUTO_APPROVED)

        updated = inspection.model_copy(deep=True)
        for vote in updated.approvers:
            vote.decision = ApprovalDecision.APPROVED
            vote.remarks = AUTO_APPROVAL_REMARK
            vote.decided_at = now

        updated.status = InspectionStatus.AUTO_APPROVED
        updated.auto_approved = True
        updated.remarks = AUTO_APPROVAL_REMARK
        updated.approved_at = now
        return updated

    def apply_vote(
        self,
        inspection: Inspection,
        actor: ActorContext,
        decision: ApprovalDecision,
        remarks: Optional[str],
        now: datetime
    ) -> VoteOutcome:
        """
        Record one approver's decision and derive the inspection status

        Args:
            inspection: Inspection as read from storage
            actor: Voting user (authorization is checked by the caller)
            decision: APPROVED or REJECTED
            remarks: Free text; required for rejections
            now: Decision timestamp

        Returns:
            VoteOutcome; ``changed`` is False when the actor had already decided

        Raises:
            ValidationError: PENDING decision, or rejection without remarks
            InvalidStateError: Inspection already terminal and the actor has not voted
            NotFoundError: Non-administrator without a vote slot
        """
        if decision == ApprovalDecision.PENDING:
            raise ValidationError("Decision must be approved or rejected")

        existing = inspection.vote_for(actor.user_id)
        if existing and existing.decision != ApprovalDecision.PENDING:
            # Decisions are immutable; a retry or a changed mind is a no-op
            logger.info(
                f"Vote already recorded as {existing.decision.value}, ignoring {decision.value}",
                extra={"inspection_id": inspection.inspection_id, "actor_id": actor.user_id}
            )
            return VoteOutcome(inspection, False)

        if inspection.status.is_terminal:
            raise InvalidStateError(
                f"Inspection {inspection.inspection_id} is already {inspection.status.value}",
                details={"status": inspection.status.value}
            )

        remarks = (remarks or "").strip()
        if decision == ApprovalDecision.REJECTED and not remarks:
            raise ValidationError("Remarks are required when rejecting an inspection")

        updated = inspection.model_copy(deep=True)
        vote = updated.vote_for(actor.user_id)
        if vote is None:
            if not actor.is_admin:
                raise NotFoundError(
                    f"No vote slot for {actor.user_id} on inspection {inspection.inspection_id}"
                )
            vote = ApprovalVote(approver_id=actor.user_id)
            updated.approvers.append(vote)

        vote.decision = decision
        vote.remarks = remarks
        vote.decided_at = now

        if decision == ApprovalDecision.REJECTED:
            self._finalize_rejected(updated, actor.user_id, remarks, now)
        elif actor.is_admin or all(v.decision == ApprovalDecision.APPROVED for v in updated.approvers):
            self._finalize_approved(updated, actor.user_id, remarks, now)

        return VoteOutcome(updated, True)

    def apply_batch_decision(
        self,
        inspection: Inspection,
        actor: ActorContext,
        decision: ApprovalDecision,
        remarks: Optional[str],
        now: datetime
    ) -> Optional[Inspection]:
        """
        Resolve one batch member on behalf of the batch approver

        Members that already left ``pending-bulk`` return None and are skipped.
        Only the acting user's own vote is recorded; an administrator acting
        on someone else's batch gets a slot of their own.
        """
        if inspection.status != InspectionStatus.PENDING_BULK:
            return None

        remarks = (remarks or "").strip()
        updated = inspection.model_copy(deep=True)
        vote = updated.vote_for(actor.user_id)
        if vote is None:
            vote = ApprovalVote(approver_id=actor.user_id)
            updated.approvers.append(vote)
        if vote.decision == ApprovalDecision.PENDING:
            vote.decision = decision
            vote.remarks = remarks
            vote.decided_at = now

        if decision == ApprovalDecision.REJECTED:
            self._finalize_rejected(updated, actor.user_id, remarks, now)
        else:
            self._finalize_approved(updated, actor.user_id, remarks, now)
        return updated

    def _require_transition(self, inspection: Inspection, target: InspectionStatus) -> None:
        if not self.can_transition(inspection.status, target):
            raise InvalidStateError(
                f"Cannot move inspection {inspection.inspection_id} from "
                f"{inspection.status.value} to {target.value}",
                details={"status": inspection.status.value, "target": target.value}
            )

    def _finalize_approved(self, inspection: Inspection, actor_id: str, remarks: str, now: datetime) -> None:
        self._require_transition(inspection, InspectionStatus.APPROVED)
        inspection.status = InspectionStatus.APPROVED
        inspection.remarks = remarks
        inspection.approved_at = now
        inspection.approved_by = actor_id

    def _finalize_rejected(self, inspection: Inspection, actor_id: str, remarks: str, now: datetime) -> None:
        self._require_transition(inspection, InspectionStatus.REJECTED)
        inspection.status = InspectionStatus.REJECTED
        inspection.remarks = remarks
        inspection.rejection_reason = remarks
        inspection.rejected_at = now
        inspection.rejected_by = actor_id
