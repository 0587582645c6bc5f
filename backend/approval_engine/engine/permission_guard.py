"""Permission Guard - Authorization predicates for every engine operation

Each check is a pure function of the actor (role, identity, organization)
and the resource it acts on, so it can be tested apart from the transitions.

Rules:
- Nobody acts outside their own organization
- Administrators may do everything inside their organization
- Approvers may vote on inspections that list them, and act on batches
  where they are the approver
- Inspectors may submit and view, nothing else
"""
from typing import Optional

from ..domain.models import ActorContext, Inspection
from ..domain.enums import UserRole
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PermissionGuard:
    """Permission enforcement for inspection and batch operations"""

    def same_organization(self, actor: ActorContext, organization_id: str) -> bool:
        return actor.organization_id == organization_id

    def can_submit(self, actor: ActorContext, organization_id: str) -> bool:
        """Any member of the organization may submit"""
        return self.same_organization(actor, organization_id)

    def can_view_inspection(self, actor: ActorContext, inspection: Inspection) -> bool:
        return self.same_organization(actor, inspection.organization_id)

    def can_vote(self, actor: ActorContext, inspection: Inspection) -> bool:
        """Administrators, or users holding a vote slot on the inspection"""
        if not self.same_organization(actor, inspection.organization_id):
            return False
        if actor.is_admin:
            return True
        return actor.user_id in inspection.approver_ids

    def can_list_batches(self, actor: ActorContext) -> bool:
        return actor.role in (UserRole.ADMIN, UserRole.APPROVER)

    def can_act_on_batch(
        self,
        actor: ActorContext,
        organization_id: str,
        batch_approver_id: Optional[str]
    ) -> bool:
        """Administrators of the organization, or the batch's approver"""
        if not self.same_organization(actor, organization_id):
            return False
        if actor.is_admin:
            return True
        return actor.role == UserRole.APPROVER and actor.user_id == batch_approver_id

    def can_run_grouping(self, actor: ActorContext, organization_id: str) -> bool:
        """Manual grouping sweeps are an administrator action"""
        return actor.is_admin and self.same_organization(actor, organization_id)

    def can_manage_workflow_settings(self, actor: ActorContext, organization_id: str) -> bool:
        return actor.is_admin and self.same_organization(actor, organization_id)

    def requires_supervisory_admin(self, actor: ActorContext) -> bool:
        """Inspections submitted by approvers get an administrator added as approver"""
        return actor.role == UserRole.APPROVER
