"""Service modules - Business logic layer"""
from .inspection_service import InspectionService
from .batch_service import BatchService
from .workflow_service import WorkflowService
from .notification_service import NotificationService, LogNotificationChannel

__all__ = [
    "InspectionService",
    "BatchService",
    "WorkflowService",
    "NotificationService",
    "LogNotificationChannel",
]
