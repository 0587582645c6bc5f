"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class InspectionStatus(str, Enum):
    """Overall inspection status"""
    PENDING = "pending"
    PENDING_BULK = "pending-bulk"  # Claimed into a batch by the grouping sweep
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto-approved"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    InspectionStatus.APPROVED,
    InspectionStatus.REJECTED,
    InspectionStatus.AUTO_APPROVED,
})


class ApprovalDecision(str, Enum):
    """Individual approver decision"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(str, Enum):
    """Closed set of actor roles"""
    ADMIN = "admin"
    APPROVER = "approver"
    INSPECTOR = "inspector"


class FrequencyPeriod(str, Enum):
    """Trailing window for the auto-approval frequency limit"""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationTemplateKey(str, Enum):
    """Notification template identifiers"""
    INSPECTION_PENDING = "INSPECTION_PENDING"  # New inspection awaiting this approver
    BATCH_READY = "BATCH_READY"  # Batch formed for bulk approval
