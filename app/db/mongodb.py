"""
MongoDB Connection Utility

MongoDB stores every entity of the hub:
- students: profile, saved opportunities, application ids, notification inbox
- companies: profile and posted opportunity ids
- opportunities: postings with applicant list and analytics counters
- applications: one document per (student, opportunity) candidacy
"""
import logging

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(settings.mongodb_uri)
    return _client


def get_mongo_db() -> Database:
    """Get the hub database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[settings.mongodb_db]
    return _db


def get_collection(name: str) -> Collection:
    """Get a specific collection by name (see COLLECTIONS)."""
    db = get_mongo_db()
    return db[name]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except PyMongoError as e:
        logger.error("MongoDB connection failed: %s", e)
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "students": "students",
    "companies": "companies",
    "opportunities": "opportunities",
    "applications": "applications"
}


def init_mongo_indexes():
    """
    Create indexes for uniqueness and query performance.
    Call this once during app startup.
    """
    db = get_mongo_db()

    db[COLLECTIONS["students"]].create_index("email", unique=True)
    db[COLLECTIONS["companies"]].create_index("email", unique=True)

    db[COLLECTIONS["opportunities"]].create_index([("company", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["opportunities"]].create_index([("category", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["opportunities"]].create_index("experience_level")
    db[COLLECTIONS["opportunities"]].create_index("tags")

    # One application per (student, opportunity); backs the service pre-check
    db[COLLECTIONS["applications"]].create_index(
        [("student", ASCENDING), ("opportunity", ASCENDING)],
        unique=True
    )
    db[COLLECTIONS["applications"]].create_index([("opportunity", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["applications"]].create_index([("student", ASCENDING), ("status", ASCENDING)])

    logger.info("MongoDB indexes created successfully")
