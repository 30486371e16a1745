# lifemate/db/mongo.py
import logging
from typing import Optional

import motor.motor_asyncio as _motor_asyncio
from pymongo import ASCENDING, DESCENDING

from lifemate.core.config import settings

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
OTPS_COLLECTION = "otps"
JOBSEEKERS_COLLECTION = "jobseekers"
EMPLOYERS_COLLECTION = "employers"
RESUMES_COLLECTION = "resumes"

_mongo_client: Optional[_motor_asyncio.AsyncIOMotorClient] = None


def get_mongo_client() -> _motor_asyncio.AsyncIOMotorClient:
    """
    Returns a cached Motor client. Datetimes come back timezone-aware (UTC).
    """
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = _motor_asyncio.AsyncIOMotorClient(
            settings.MONGODB_URI,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.MONGODB_TIMEOUT_MS,
        )
    return _mongo_client


def get_db():
    client = get_mongo_client()
    return client[settings.MONGODB_DB]


async def ensure_indexes(db) -> None:
    """
    Create the indexes the services rely on for correctness:
    unique emails (registration race), one OTP per (email, purpose),
    TTL expiry of OTP records and one job-seeker profile per user.
    """
    await db[USERS_COLLECTION].create_index([("email", ASCENDING)], unique=True)
    await db[USERS_COLLECTION].create_index(
        [("oauth_provider", ASCENDING), ("oauth_id", ASCENDING)], sparse=True
    )
    await db[OTPS_COLLECTION].create_index([("email", ASCENDING), ("purpose", ASCENDING)], unique=True)
    await db[OTPS_COLLECTION].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
    await db[JOBSEEKERS_COLLECTION].create_index([("user_id", ASCENDING)], unique=True)
    await db[EMPLOYERS_COLLECTION].create_index([("user_id", ASCENDING)])
    await db[RESUMES_COLLECTION].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    logger.info("MongoDB indexes ensured on %s", db.name)


async def init_db() -> None:
    await ensure_indexes(get_db())


def close_db() -> None:
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
