"""Inspection Repository - Data access for inspections and their votes

Every write that changes ``status`` or a vote is conditional on the state the
caller read (``version`` and ``status``), so concurrent voters and the
background sweeps never overwrite each other.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import Inspection
from ..domain.enums import InspectionStatus, TERMINAL_STATUSES
from ..domain.errors import InspectionNotFoundError, ConcurrencyError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


# Fields a state transition may rewrite; everything else is immutable after submission
_TRANSITION_FIELDS = (
    "status", "remarks", "rejection_reason", "auto_approved",
    "approved_at", "approved_by", "rejected_at", "rejected_by",
)


class InspectionRepository:
    """Repository for inspection operations"""

    def __init__(self):
        self._inspections: Collection = get_collection("inspections")

    # =========================================================================
    # Inspection CRUD
    # =========================================================================

    def create_inspection(self, inspection: Inspection) -> Inspection:
        """Create a new inspection"""
        # Don't use mode="json" - it converts datetime to strings, breaking range queries
        doc = inspection.model_dump()
        doc["_id"] = inspection.inspection_id

        self._inspections.insert_one(doc)
        logger.info(
            f"Created inspection: {inspection.inspection_id}",
            extra={"inspection_id": inspection.inspection_id, "status": inspection.status.value}
        )
        return inspection

    def get_inspection(self, inspection_id: str) -> Optional[Inspection]:
        """Get inspection by ID"""
        doc = self._inspections.find_one({"inspection_id": inspection_id})
        if doc:
            return self._to_model(doc)
        return None

    def get_inspection_or_raise(self, inspection_id: str) -> Inspection:
        """Get inspection by ID or raise error"""
        inspection = self.get_inspection(inspection_id)
        if not inspection:
            raise InspectionNotFoundError(f"Inspection {inspection_id} not found")
        return inspection

    def save_transition(self, original: Inspection, updated: Inspection) -> Inspection:
        """
        Persist a state-machine transition computed from ``original``

        The write only lands if the stored document still has the version and
        status that ``original`` was read with.

        Raises:
            ConcurrencyError: If the inspection changed since it was read
            InspectionNotFoundError: If the inspection no longer exists
        """
        updates: Dict[str, Any] = {field: getattr(updated, field) for field in _TRANSITION_FIELDS}
        updates["status"] = updated.status.value
        updates["approvers"] = [vote.model_dump() for vote in updated.approvers]
        updates["primary_approver_id"] = updated.primary_approver_id
        updates["updated_at"] = utc_now()
        updates["version"] = original.version + 1

        result = self._inspections.find_one_and_update(
            {
                "inspection_id": original.inspection_id,
                "version": original.version,
                "status": original.status.value,
            },
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            exists = self._inspections.find_one({"inspection_id": original.inspection_id}, {"_id": 1})
            if exists:
                raise ConcurrencyError(
                    f"Inspection {original.inspection_id} was modified concurrently",
                    details={"expected_version": original.version, "expected_status": original.status.value}
                )
            raise InspectionNotFoundError(f"Inspection {original.inspection_id} not found")

        logger.info(
            f"Inspection {original.inspection_id}: {original.status.value} -> {updated.status.value}",
            extra={"inspection_id": original.inspection_id, "status": updated.status.value}
        )
        return self._to_model(result)

    # =========================================================================
    # Batch Grouping
    # =========================================================================

    def list_grouping_candidates(self, organization_id: str, workflow_ids: Iterable[str]) -> List[Inspection]:
        """Pending, not yet batched inspections of the given workflows"""
        workflow_ids = list(workflow_ids)
        if not workflow_ids:
            return []

        cursor = self._inspections.find({
            "organization_id": organization_id,
            "workflow_id": {"$in": workflow_ids},
            "status": InspectionStatus.PENDING.value,
            "batch_id": None,
        }).sort("created_at", ASCENDING)

        return [self._to_model(doc) for doc in cursor]

    def claim_for_batch(self, inspection_id: str, batch_id: str) -> bool:
        """
        Move one inspection into a batch if it is still pending and unbatched

        Returns:
            True if the inspection was claimed, False if it moved on meanwhile
        """
        result = self._inspections.update_one(
            {
                "inspection_id": inspection_id,
                "status": InspectionStatus.PENDING.value,
                "batch_id": None,
            },
            {
                "$set": {
                    "batch_id": batch_id,
                    "status": InspectionStatus.PENDING_BULK.value,
                    "updated_at": utc_now(),
                },
                "$inc": {"version": 1},
            }
        )
        return result.modified_count == 1

    def list_batch_members(self, batch_id: str, organization_id: Optional[str] = None) -> List[Inspection]:
        """All inspections carrying the batch ID, any status"""
        query: Dict[str, Any] = {"batch_id": batch_id}
        if organization_id:
            query["organization_id"] = organization_id

        cursor = self._inspections.find(query).sort("created_at", ASCENDING)
        return [self._to_model(doc) for doc in cursor]

    def list_bulk_pending(self, organization_id: str, approver_id: Optional[str] = None) -> List[Inspection]:
        """Inspections waiting in a batch, optionally only one approver's"""
        query: Dict[str, Any] = {
            "organization_id": organization_id,
            "status": InspectionStatus.PENDING_BULK.value,
            "batch_id": {"$ne": None},
        }
        if approver_id:
            query["primary_approver_id"] = approver_id

        cursor = self._inspections.find(query).sort("created_at", ASCENDING)
        return [self._to_model(doc) for doc in cursor]

    def list_organizations_with_pending(self) -> List[str]:
        """Organizations that have at least one pending inspection"""
        return sorted(self._inspections.distinct(
            "organization_id",
            {"status": InspectionStatus.PENDING.value}
        ))

    # =========================================================================
    # Rule Support & Retention
    # =========================================================================

    def count_auto_approved_since(
        self,
        organization_id: str,
        workflow_id: str,
        inspector_id: str,
        since: datetime
    ) -> int:
        """Auto-approved submissions of one inspector on one workflow since a point in time"""
        return self._inspections.count_documents({
            "organization_id": organization_id,
            "workflow_id": workflow_id,
            "inspector_id": inspector_id,
            "status": InspectionStatus.AUTO_APPROVED.value,
            "approved_at": {"$gte": since},
        })

    def clear_expired_batch_tags(self, cutoff: datetime) -> int:
        """
        Remove ``batch_id`` from terminal inspections last updated before cutoff

        Only the grouping tag is touched; status, votes and ``updated_at`` stay.

        Returns:
            Number of inspections cleared
        """
        result = self._inspections.update_many(
            {
                "batch_id": {"$ne": None},
                "status": {"$in": [status.value for status in TERMINAL_STATUSES]},
                "updated_at": {"$lt": cutoff},
            },
            {"$unset": {"batch_id": ""}}
        )
        return result.modified_count

    @staticmethod
    def _to_model(doc: Dict[str, Any]) -> Inspection:
        doc.pop("_id", None)
        return Inspection.model_validate(doc)
