"""Inspection Service - Submission and per-inspection voting"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..domain.models import (
    ActorContext, FilledStep, Inspection, RuleEvaluation, WorkflowSnapshot
)
from ..domain.enums import ApprovalDecision, InspectionStatus
from ..domain.errors import (
    ConcurrencyError, PermissionDeniedError, ValidationError, WorkflowNotFoundError
)
from ..repositories.inspection_repo import InspectionRepository
from ..repositories.workflow_repo import WorkflowRepository
from ..repositories.user_repo import UserRepository
from ..engine.rule_evaluator import RuleEvaluator, frequency_window
from ..engine.approval_state_machine import ApprovalStateMachine
from ..engine.permission_guard import PermissionGuard
from .notification_service import NotificationService
from ..config.settings import settings
from ..utils.idgen import generate_inspection_id
from ..utils.time import parse_iso, to_utc_naive, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class InspectionService:
    """Service for inspection operations"""

    def __init__(self, notification_service: Optional[NotificationService] = None):
        self.inspection_repo = InspectionRepository()
        self.workflow_repo = WorkflowRepository()
        self.user_repo = UserRepository()
        self.evaluator = RuleEvaluator()
        self.state_machine = ApprovalStateMachine()
        self.guard = PermissionGuard()
        self.notifications = notification_service or NotificationService()

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(
        self,
        actor: ActorContext,
        workflow_id: str,
        approver_ids: List[str],
        filled_steps: List[Union[FilledStep, Dict[str, Any]]],
        inspection_date: Union[datetime, str],
        meter_reading: Optional[float] = None,
        primary_approver_id: Optional[str] = None,
        auto_approve: bool = False
    ) -> Inspection:
        """
        Submit a filled inspection

        Routine workflows with auto-approval switched on are evaluated before
        the first write, so an eligible submission is stored already
        auto-approved and never shows up as pending.

        Raises:
            WorkflowNotFoundError: Unknown workflow or one of another organization
            ValidationError: No approvers, unknown approver, bad steps or date
        """
        workflow = self.workflow_repo.get_workflow(workflow_id)
        if not workflow or not self.guard.can_submit(actor, workflow.organization_id):
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")

        steps = self._parse_steps(filled_steps)
        inspected_on = self._parse_inspection_date(inspection_date)
        approvers = self._resolve_approvers(actor, approver_ids, primary_approver_id)

        now = utc_now()
        inspection = Inspection(
            inspection_id=generate_inspection_id(),
            organization_id=workflow.organization_id,
            workflow_id=workflow.workflow_id,
            workflow_name=workflow.name,
            category=workflow.category,
            inspector_id=actor.user_id,
            filled_steps=steps,
            status=InspectionStatus.PENDING,
            approvers=self.state_machine.build_votes(approvers),
            meter_reading=meter_reading,
            inspection_date=inspected_on,
            created_at=now,
            updated_at=now
        )
        if inspection.meter_reading is None:
            inspection.meter_reading = self.evaluator.resolve_value(inspection, workflow.auto_approval)

        if self._auto_approval_applies(workflow, auto_approve):
            evaluation = self.evaluate(inspection, workflow, now)
            if evaluation.eligible:
                inspection = self.state_machine.apply_auto_approval(inspection, now)
            logger.info(
                f"Auto-approval evaluated: {evaluation.reason}",
                extra={
                    "inspection_id": inspection.inspection_id,
                    "workflow_id": workflow.workflow_id,
                    "decision": "eligible" if evaluation.eligible else "not_eligible"
                }
            )

        inspection = self.inspection_repo.create_inspection(inspection)

        if inspection.status == InspectionStatus.PENDING and not workflow.auto_approval.bulk_approval_enabled:
            # Bulk-enabled workflows notify once per batch instead
            for approver_id in inspection.approver_ids:
                self.notifications.notify_inspection_pending(
                    recipient_id=approver_id,
                    inspection_id=inspection.inspection_id,
                    workflow_id=inspection.workflow_id,
                    workflow_name=inspection.workflow_name,
                    inspector_id=inspection.inspector_id
                )

        return inspection

    def evaluate(self, inspection: Inspection, workflow: WorkflowSnapshot, now: datetime) -> RuleEvaluation:
        """Run the rule evaluator with the inspector's recent auto-approval count"""
        rules = workflow.auto_approval
        recent = None
        if rules.frequency_limit is not None:
            recent = self.inspection_repo.count_auto_approved_since(
                organization_id=inspection.organization_id,
                workflow_id=inspection.workflow_id,
                inspector_id=inspection.inspector_id,
                since=now - frequency_window(rules.frequency_period)
            )
        return self.evaluator.evaluate(inspection, rules, recent_auto_approvals=recent)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_inspection(self, inspection_id: str, actor: ActorContext) -> Inspection:
        """Get one inspection of the actor's organization"""
        inspection = self.inspection_repo.get_inspection_or_raise(inspection_id)
        if not self.guard.can_view_inspection(actor, inspection):
            raise PermissionDeniedError(
                "You don't have access to this inspection",
                details={"inspection_id": inspection_id}
            )
        return inspection

    # =========================================================================
    # Voting
    # =========================================================================

    def cast_vote(
        self,
        inspection_id: str,
        actor: ActorContext,
        decision: ApprovalDecision,
        remarks: Optional[str] = None
    ) -> Inspection:
        """
        Record the actor's decision on one inspection

        A lost compare-and-set re-reads the inspection and re-applies the vote,
        so concurrent voters never overwrite each other's slots.

        Raises:
            InspectionNotFoundError: Unknown inspection
            PermissionDeniedError: Other organization, or not an approver
            ValidationError: Missing rejection remarks or invalid decision
            InvalidStateError: Inspection already finalized
            ConcurrencyError: Retries exhausted
        """
        last_error: Optional[ConcurrencyError] = None
        for attempt in range(settings.cas_max_retries):
            inspection = self.inspection_repo.get_inspection_or_raise(inspection_id)
            if not self.guard.can_vote(actor, inspection):
                raise PermissionDeniedError(
                    "You are not an approver of this inspection",
                    details={"inspection_id": inspection_id}
                )

            outcome = self.state_machine.apply_vote(inspection, actor, decision, remarks, utc_now())
            if not outcome.changed:
                return outcome.inspection

            try:
                saved = self.inspection_repo.save_transition(inspection, outcome.inspection)
            except ConcurrencyError as e:
                last_error = e
                logger.info(
                    f"Vote lost a concurrent update, retrying (attempt {attempt + 1})",
                    extra={"inspection_id": inspection_id, "actor_id": actor.user_id}
                )
                continue

            logger.info(
                f"Vote recorded: {decision.value}",
                extra={
                    "inspection_id": inspection_id,
                    "actor_id": actor.user_id,
                    "decision": decision.value,
                    "status": saved.status.value
                }
            )
            return saved

        raise last_error or ConcurrencyError(f"Inspection {inspection_id} was modified concurrently")

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _auto_approval_applies(workflow: WorkflowSnapshot, auto_approve: bool) -> bool:
        return workflow.is_routine_inspection and (auto_approve or workflow.auto_approval.enabled)

    def _resolve_approvers(
        self,
        actor: ActorContext,
        approver_ids: List[str],
        primary_approver_id: Optional[str]
    ) -> List[str]:
        """Ordered, de-duplicated approver IDs, all users of the organization"""
        ordered: List[str] = []
        candidates = ([primary_approver_id] if primary_approver_id else []) + list(approver_ids or [])
        for approver_id in candidates:
            if approver_id and approver_id not in ordered:
                ordered.append(approver_id)

        if not ordered:
            raise ValidationError("At least one approver is required")

        known = {user.user_id for user in self.user_repo.get_users(actor.organization_id, ordered)}
        unknown = [approver_id for approver_id in ordered if approver_id not in known]
        if unknown:
            raise ValidationError(
                "Approvers must be users of the organization",
                details={"unknown_approver_ids": unknown}
            )

        if self.guard.requires_supervisory_admin(actor):
            admin = self.user_repo.find_org_admin(actor.organization_id)
            if admin and admin.user_id not in ordered:
                ordered.append(admin.user_id)
            elif admin is None:
                logger.warning(
                    f"No administrator found to supervise submission by {actor.user_id}",
                    extra={"organization_id": actor.organization_id}
                )

        return ordered

    @staticmethod
    def _parse_steps(filled_steps: List[Union[FilledStep, Dict[str, Any]]]) -> List[FilledStep]:
        try:
            return [
                step if isinstance(step, FilledStep) else FilledStep.model_validate(step)
                for step in filled_steps or []
            ]
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid filled steps",
                details={"errors": [error["msg"] for error in e.errors()]}
            )

    @staticmethod
    def _parse_inspection_date(value: Union[datetime, str]) -> datetime:
        if isinstance(value, datetime):
            return to_utc_naive(value)
        try:
            return parse_iso(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Invalid inspection date '{value}'",
                details={"inspection_date": str(value)}
            )
