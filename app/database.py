import logging

from motor.motor_asyncio import AsyncIOMotorClient # type: ignore
from pymongo import ASCENDING, DESCENDING # type: ignore

from .config import MONGODB_URL, DATABASE_NAME

logger = logging.getLogger(__name__)

# Async client for FastAPI
client = AsyncIOMotorClient(MONGODB_URL)
database = client[DATABASE_NAME]

# Collections
sessions_collection = database.sessions
events_collection = database.events


async def ensure_indexes(db=database) -> None:
    await db.events.create_index([("session_id", ASCENDING), ("occurred_at", ASCENDING)])
    await db.sessions.create_index([("started_at", DESCENDING)])
    logger.info("MongoDB indexes ensured on %s", DATABASE_NAME)
