"""Notification Service - Outbox enqueue and delivery

Notifications are written to the outbox and delivered later by the
scheduler, so a failing delivery channel never affects approval state.
"""
from typing import Any, Dict, List, Optional

from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus, NotificationTemplateKey
from ..repositories.notification_repo import NotificationRepository
from ..templates import get_message_template
from ..config.settings import settings
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class LogNotificationChannel:
    """Delivery channel that writes rendered messages to the application log"""

    async def deliver(self, recipient_id: str, subject: str, body: str) -> None:
        logger.info(
            f"Notification to {recipient_id}: {subject}",
            extra={"approver_id": recipient_id}
        )


class NotificationService:
    """Service for enqueueing and sending notifications"""

    def __init__(self, channel: Optional[Any] = None):
        self.repo = NotificationRepository()
        self.channel = channel or LogNotificationChannel()

    # =========================================================================
    # Outbox Creation
    # =========================================================================

    def notify(
        self,
        recipient_id: str,
        template_key: NotificationTemplateKey,
        payload: Dict[str, Any]
    ) -> Optional[NotificationOutbox]:
        """
        Enqueue a notification for sending

        Never raises: the state change that triggered the notification has
        already been committed, so failures are logged and dropped.
        """
        try:
            notification = NotificationOutbox(
                notification_id=generate_notification_id(),
                recipient_id=recipient_id,
                template_key=template_key,
                payload=payload,
                status=NotificationStatus.PENDING,
                created_at=utc_now()
            )
            return self.repo.create_notification(notification)
        except Exception as e:
            logger.warning(
                f"Failed to enqueue {template_key.value} notification for {recipient_id}: {e}",
                extra={"approver_id": recipient_id}
            )
            return None

    def notify_inspection_pending(
        self,
        recipient_id: str,
        inspection_id: str,
        workflow_id: str,
        workflow_name: str,
        inspector_id: str
    ) -> Optional[NotificationOutbox]:
        """Enqueue inspection pending notification"""
        return self.notify(
            recipient_id=recipient_id,
            template_key=NotificationTemplateKey.INSPECTION_PENDING,
            payload={
                "inspection_id": inspection_id,
                "workflow_id": workflow_id,
                "workflow_name": workflow_name,
                "inspector_id": inspector_id
            }
        )

    def notify_batch_ready(
        self,
        recipient_id: str,
        batch_id: str,
        workflow_id: str,
        workflow_name: str,
        count: int
    ) -> Optional[NotificationOutbox]:
        """Enqueue batch ready notification"""
        return self.notify(
            recipient_id=recipient_id,
            template_key=NotificationTemplateKey.BATCH_READY,
            payload={
                "batch_id": batch_id,
                "workflow_id": workflow_id,
                "workflow_name": workflow_name,
                "count": count
            }
        )

    # =========================================================================
    # Delivery
    # =========================================================================

    async def send_notification(self, notification: NotificationOutbox) -> bool:
        """
        Deliver a single notification

        Returns True if sent successfully, False otherwise.
        """
        try:
            content = get_message_template(notification.template_key.value, notification.payload)
            await self.channel.deliver(
                recipient_id=notification.recipient_id,
                subject=content["subject"],
                body=content["body"]
            )

            if not self.repo.mark_sent(notification.notification_id):
                logger.debug(
                    f"Notification {notification.notification_id} was no longer pending",
                    extra={"notification_id": notification.notification_id}
                )
            return True

        except Exception as e:
            self.repo.mark_failed(
                notification.notification_id,
                str(e),
                retry_count=notification.retry_count,
                max_retries=settings.notification_max_retries
            )
            return False

    async def dispatch_pending(self, limit: int = 100) -> Dict[str, int]:
        """Deliver pending notifications, oldest first"""
        pending: List[NotificationOutbox] = self.repo.get_pending_notifications(limit=limit)
        sent = 0
        for notification in pending:
            if await self.send_notification(notification):
                sent += 1

        if pending:
            logger.info(f"Dispatched {sent}/{len(pending)} notifications")
        return {"processed": len(pending), "sent": sent, "failed": len(pending) - sent}
