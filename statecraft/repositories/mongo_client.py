"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Collection names
WORKFLOWS = "workflows"
WORKFLOW_STATES = "workflow_states"
CONFIG_TRANSITIONS = "config_transitions"
TRANSITION_HISTORY = "transition_history"
SCHEDULED_TRANSITIONS = "scheduled_transitions"
TARGET_ENTITIES = "target_entities"
AUDIT_EVENTS = "audit_events"

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
        _database = get_client()[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    return get_database()[name]


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

    # Graph definition
    db[WORKFLOWS].create_index("workflow_id", unique=True)

    states = db[WORKFLOW_STATES]
    states.create_index("state_id", unique=True)
    states.create_index([("workflow_id", ASCENDING), ("weight", ASCENDING), ("position", ASCENDING)])

    edges = db[CONFIG_TRANSITIONS]
    edges.create_index("transition_id", unique=True)
    edges.create_index([("workflow_id", ASCENDING), ("from_sid", ASCENDING), ("to_sid", ASCENDING)])

    # Executed transitions (append-only)
    history = db[TRANSITION_HISTORY]
    history.create_index("transition_id", unique=True)
    history.create_index([
        ("entity_type", ASCENDING), ("entity_id", ASCENDING),
        ("field_name", ASCENDING), ("timestamp", DESCENDING),
    ])
    history.create_index([("from_sid", ASCENDING), ("to_sid", ASCENDING)])

    # Pending scheduled transitions: at most one per (entity, field)
    queue = db[SCHEDULED_TRANSITIONS]
    queue.create_index("transition_id", unique=True)
    queue.create_index(
        [("entity_type", ASCENDING), ("entity_id", ASCENDING), ("field_name", ASCENDING)],
        unique=True
    )
    queue.create_index("timestamp")

    targets = db[TARGET_ENTITIES]
    targets.create_index([("entity_type", ASCENDING), ("entity_id", ASCENDING)], unique=True)
    targets.create_index([("workflow_fields.workflow_id", ASCENDING), ("workflow_fields.state_id", ASCENDING)])

    audit_events = db[AUDIT_EVENTS]
    audit_events.create_index("audit_event_id", unique=True)
    audit_events.create_index([("entity_type", ASCENDING), ("entity_id", ASCENDING), ("timestamp", DESCENDING)])
    audit_events.create_index("timestamp", background=True)
    audit_events.create_index("correlation_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        get_client().admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
