from motor.motor_asyncio import AsyncIOMotorClient
import logging

from core.config import settings

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(settings.mongo_url, tz_aware=True)
db = client[settings.db_name]

# Collections
trips_collection = db.trips
preferences_collection = db.user_preferences
matches_collection = db.trip_matches
notifications_collection = db.notifications


async def init_indexes():
    """Initialize database indexes"""
    await trips_collection.create_index("user_id")
    await trips_collection.create_index([("status", 1), ("departure_time", 1)])
    await preferences_collection.create_index("user_id", unique=True)
    await matches_collection.create_index("pair_key", unique=True)
    await matches_collection.create_index([("trip_id", 1), ("compatibility_score", -1)])
    await matches_collection.create_index("matched_trip_id")
    await matches_collection.create_index([("status", 1), ("expires_at", 1)])
    await notifications_collection.create_index([("user_id", 1), ("read", 1)])
    await notifications_collection.create_index([("user_id", 1), ("created_at", -1)])
    logger.info("Database indexes created successfully")
