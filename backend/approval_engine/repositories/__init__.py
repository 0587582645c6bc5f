"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .inspection_repo import InspectionRepository
from .workflow_repo import WorkflowRepository
from .user_repo import UserRepository
from .notification_repo import NotificationRepository

__all__ = [
    "get_database",
    "get_collection",
    "InspectionRepository",
    "WorkflowRepository",
    "UserRepository",
    "NotificationRepository",
]
