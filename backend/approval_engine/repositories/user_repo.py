"""User Repository - Read access to the accounts collection"""
from typing import Iterable, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING

from .mongo_client import get_collection
from ..domain.models import UserRecord
from ..domain.enums import UserRole
from ..utils.logger import get_logger

logger = get_logger(__name__)


class UserRepository:
    """Repository for user lookups"""

    def __init__(self):
        self._users: Collection = get_collection("users")

    def get_users(self, organization_id: str, user_ids: Iterable[str]) -> List[UserRecord]:
        """Users of the organization among the given IDs"""
        user_ids = list(user_ids)
        if not user_ids:
            return []

        cursor = self._users.find({
            "organization_id": organization_id,
            "user_id": {"$in": user_ids},
        })
        users = []
        for doc in cursor:
            doc.pop("_id", None)
            users.append(UserRecord.model_validate(doc))
        return users

    def find_org_admin(self, organization_id: str) -> Optional[UserRecord]:
        """First administrator of the organization, if any"""
        cursor = self._users.find({
            "organization_id": organization_id,
            "role": UserRole.ADMIN.value,
        }).sort("user_id", ASCENDING).limit(1)

        for doc in cursor:
            doc.pop("_id", None)
            return UserRecord.model_validate(doc)
        return None
