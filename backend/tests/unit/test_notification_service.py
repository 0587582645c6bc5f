"""Notification outbox: enqueue, delivery and retry accounting"""
import asyncio

from approval_engine.config.settings import settings
from approval_engine.domain.enums import NotificationStatus, NotificationTemplateKey
from approval_engine.services.notification_service import NotificationService
from approval_engine.templates import get_message_template


class RecordingChannel:
    def __init__(self):
        self.delivered = []

    async def deliver(self, recipient_id, subject, body):
        self.delivered.append((recipient_id, subject))


class FailingChannel:
    async def deliver(self, recipient_id, subject, body):
        raise ConnectionError("smtp relay down")


def test_dispatch_marks_sent():
    channel = RecordingChannel()
    service = NotificationService(channel=channel)
    service.notify_batch_ready("approver-1", "BATCH-1", "WF-1", "Boiler Check", 4)

    summary = asyncio.run(service.dispatch_pending())

    assert summary == {"processed": 1, "sent": 1, "failed": 0}
    assert channel.delivered == [("approver-1", "4 inspections ready for bulk approval: Boiler Check")]
    stored = service.repo.list_for_recipient("approver-1")[0]
    assert stored.status == NotificationStatus.SENT
    assert stored.sent_at is not None


def test_failed_delivery_is_retried_then_abandoned():
    service = NotificationService(channel=FailingChannel())
    service.notify_inspection_pending("approver-1", "INS-1", "WF-1", "Boiler Check", "inspector-1")

    asyncio.run(service.dispatch_pending())
    stored = service.repo.list_for_recipient("approver-1")[0]
    assert stored.status == NotificationStatus.PENDING
    assert stored.retry_count == 1
    assert "smtp relay down" in stored.last_error

    for _ in range(settings.notification_max_retries - 1):
        asyncio.run(service.dispatch_pending())

    stored = service.repo.list_for_recipient("approver-1")[0]
    assert stored.status == NotificationStatus.FAILED
    assert stored.retry_count == settings.notification_max_retries


def test_enqueue_failure_is_swallowed(monkeypatch):
    service = NotificationService()

    def broken_insert(notification):
        raise RuntimeError("outbox unavailable")

    monkeypatch.setattr(service.repo, "create_notification", broken_insert)
    assert service.notify("approver-1", NotificationTemplateKey.BATCH_READY, {}) is None


def test_message_templates():
    pending = get_message_template("INSPECTION_PENDING", {"inspection_id": "INS-1", "workflow_name": "Boiler"})
    assert pending["subject"] == "Inspection awaiting approval: Boiler"
    assert "INS-1" in pending["body"]

    fallback = get_message_template("UNKNOWN", {})
    assert fallback["subject"].startswith("[Notification]")
