"""Notification Repository - Data access for notification outbox

Status changes use conditional updates so that two dispatcher runs never
deliver the same notification twice.
"""
from typing import List
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from .mongo_client import get_collection
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self):
        self._outbox: Collection = get_collection("notification_outbox")

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id

        self._outbox.insert_one(doc)
        logger.info(
            f"Created notification: {notification.template_key.value}",
            extra={
                "notification_id": notification.notification_id,
                "approver_id": notification.recipient_id
            }
        )
        return notification

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """Get pending notifications, oldest first"""
        try:
            cursor = self._outbox.find(
                {"status": NotificationStatus.PENDING.value}
            ).sort("created_at", ASCENDING).limit(limit)

            notifications = []
            for doc in cursor:
                doc.pop("_id", None)
                notifications.append(NotificationOutbox.model_validate(doc))
            return notifications

        except PyMongoError as e:
            logger.error(
                f"Database error fetching pending notifications: {e}",
                extra={"error_type": type(e).__name__}
            )
            return []

    def list_for_recipient(self, recipient_id: str) -> List[NotificationOutbox]:
        """All notifications addressed to one user, oldest first"""
        cursor = self._outbox.find({"recipient_id": recipient_id}).sort("created_at", ASCENDING)
        notifications = []
        for doc in cursor:
            doc.pop("_id", None)
            notifications.append(NotificationOutbox.model_validate(doc))
        return notifications

    def mark_sent(self, notification_id: str) -> bool:
        """Mark a pending notification as sent; False if it was not pending"""
        result = self._outbox.update_one(
            {"notification_id": notification_id, "status": NotificationStatus.PENDING.value},
            {"$set": {"status": NotificationStatus.SENT.value, "sent_at": utc_now(), "last_error": None}}
        )
        return result.modified_count == 1

    def mark_failed(self, notification_id: str, error: str, retry_count: int, max_retries: int) -> None:
        """
        Record a failed delivery attempt

        The notification stays PENDING for another attempt until ``max_retries``
        attempts have failed, after which it becomes FAILED.
        """
        attempts = retry_count + 1
        status = NotificationStatus.FAILED if attempts >= max_retries else NotificationStatus.PENDING
        self._outbox.update_one(
            {"notification_id": notification_id, "status": NotificationStatus.PENDING.value},
            {"$set": {"status": status.value, "retry_count": attempts, "last_error": error[:500]}}
        )
        logger.warning(
            f"Notification {notification_id} delivery failed (attempt {attempts}/{max_retries}): {error}",
            extra={"notification_id": notification_id, "status": status.value}
        )
