"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    db = get_database()
    return db[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Inspections collection
    inspections = db["inspections"]
    inspections.create_index("inspection_id", unique=True)
    inspections.create_index([("organization_id", ASCENDING), ("status", ASCENDING)])
    inspections.create_index([("workflow_id", ASCENDING), ("status", ASCENDING), ("batch_id", ASCENDING)])
    inspections.create_index([("batch_id", ASCENDING), ("status", ASCENDING)])
    inspections.create_index([("primary_approver_id", ASCENDING), ("status", ASCENDING)])
    inspections.create_index(
        [("inspector_id", ASCENDING), ("workflow_id", ASCENDING), ("status", ASCENDING), ("approved_at", ASCENDING)]
    )
    inspections.create_index("updated_at", background=True)

    # Workflows collection (owned by the workflow service, read here)
    workflows = db["workflows"]
    workflows.create_index("workflow_id", unique=True)
    workflows.create_index([("organization_id", ASCENDING), ("auto_approval.bulk_approval_enabled", ASCENDING)])

    # Users collection (owned by the accounts service, read here)
    users = db["users"]
    users.create_index("user_id", unique=True)
    users.create_index([("organization_id", ASCENDING), ("role", ASCENDING)])

    # Notification outbox collection
    notification_outbox = db["notification_outbox"]
    notification_outbox.create_index("notification_id", unique=True)
    notification_outbox.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
    notification_outbox.create_index("recipient_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
