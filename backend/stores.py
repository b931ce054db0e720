"""
Storage interfaces used by the matching services, with MongoDB (motor)
implementations. Services receive a store instead of reaching for a
global collection, so they can run against any backend.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Optional, List, Iterable
import logging

from pymongo.errors import DuplicateKeyError

from models import (
    Trip, TripStatus, UserPreferences, TripMatch, MatchStatus,
    TERMINAL_MATCH_STATUSES, match_pair_key
)

logger = logging.getLogger(__name__)

OPEN_MATCH_STATUSES = [s.value for s in MatchStatus if s not in TERMINAL_MATCH_STATUSES]


def to_document(model) -> dict:
    """Model -> Mongo document with enums stored as plain values."""
    def encode(value):
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, dict):
            return {k: encode(v) for k, v in value.items()}
        if isinstance(value, list):
            return [encode(v) for v in value]
        return value

    doc = encode(model.model_dump())
    if "id" in doc:
        doc["_id"] = doc.pop("id")
    return doc


def _encode_fields(fields: dict) -> dict:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in fields.items()}


def _from_document(doc: dict) -> dict:
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class TripStore(ABC):
    @abstractmethod
    async def get(self, trip_id: str) -> Optional[Trip]:
        pass

    @abstractmethod
    async def insert(self, trip: Trip) -> Trip:
        pass

    @abstractmethod
    async def update(self, trip_id: str, fields: dict) -> Optional[Trip]:
        pass

    @abstractmethod
    async def list_active(
        self,
        limit: int = 200,
        departure_from: Optional[datetime] = None,
        departure_to: Optional[datetime] = None,
        exclude_user_id: Optional[str] = None
    ) -> List[Trip]:
        """Active trips with seats left, earliest departure first, optionally inside a departure range."""
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[Trip]:
        pass


class PreferencesStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserPreferences]:
        pass

    @abstractmethod
    async def upsert(self, preferences: UserPreferences) -> UserPreferences:
        """Insert or replace; repeating the call has no further effect."""
        pass


class MatchStore(ABC):
    @abstractmethod
    async def get(self, match_id: str) -> Optional[TripMatch]:
        pass

    @abstractmethod
    async def find_pair(self, trip_id: str, matched_trip_id: str) -> Optional[TripMatch]:
        """Match between two trips, whichever side created it."""
        pass

    @abstractmethod
    async def insert(self, match: TripMatch) -> Optional[TripMatch]:
        """Returns None when the pair already has a match."""
        pass

    @abstractmethod
    async def update(self, match_id: str, fields: dict) -> Optional[TripMatch]:
        pass

    @abstractmethod
    async def list_for_trip(
        self,
        trip_id: str,
        statuses: Optional[Iterable[MatchStatus]] = None,
        limit: int = 20
    ) -> List[TripMatch]:
        """Matches on either side of a trip, best score first."""
        pass

    @abstractmethod
    async def expire_stale(self, now: datetime) -> int:
        pass

    @abstractmethod
    async def expire_for_trip(self, trip_id: str, now: datetime) -> int:
        pass


class NotificationStore(ABC):
    @abstractmethod
    async def insert(self, notification: dict) -> dict:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[dict]:
        pass

    @abstractmethod
    async def mark_read(self, notification_id: str, user_id: str, now: datetime) -> bool:
        pass

    @abstractmethod
    async def unread_count(self, user_id: str) -> int:
        pass


class MongoTripStore(TripStore):
    def __init__(self, collection):
        self.collection = collection

    async def get(self, trip_id: str) -> Optional[Trip]:
        doc = await self.collection.find_one({"_id": trip_id})
        return Trip(**_from_document(doc)) if doc else None

    async def insert(self, trip: Trip) -> Trip:
        await self.collection.insert_one(to_document(trip))
        return trip

    async def update(self, trip_id: str, fields: dict) -> Optional[Trip]:
        await self.collection.update_one({"_id": trip_id}, {"$set": _encode_fields(fields)})
        return await self.get(trip_id)

    async def list_active(
        self,
        limit: int = 200,
        departure_from: Optional[datetime] = None,
        departure_to: Optional[datetime] = None,
        exclude_user_id: Optional[str] = None
    ) -> List[Trip]:
        query = {"status": TripStatus.ACTIVE.value, "available_seats": {"$gt": 0}}
        departure = {}
        if departure_from:
            departure["$gte"] = departure_from
        if departure_to:
            departure["$lte"] = departure_to
        if departure:
            query["departure_time"] = departure
        if exclude_user_id:
            query["user_id"] = {"$ne": exclude_user_id}

        docs = await self.collection.find(query).sort("departure_time", 1).to_list(limit)
        return [Trip(**_from_document(doc)) for doc in docs]

    async def list_by_user(self, user_id: str) -> List[Trip]:
        docs = await self.collection.find({"user_id": user_id}).sort("departure_time", -1).to_list(100)
        return [Trip(**_from_document(doc)) for doc in docs]


class MongoPreferencesStore(PreferencesStore):
    def __init__(self, collection):
        self.collection = collection

    async def get(self, user_id: str) -> Optional[UserPreferences]:
        doc = await self.collection.find_one({"user_id": user_id})
        if not doc:
            return None
        doc.pop("_id", None)
        return UserPreferences(**doc)

    async def upsert(self, preferences: UserPreferences) -> UserPreferences:
        doc = to_document(preferences)
        await self.collection.replace_one({"user_id": preferences.user_id}, doc, upsert=True)
        return preferences


class MongoMatchStore(MatchStore):
    def __init__(self, collection):
        self.collection = collection

    async def get(self, match_id: str) -> Optional[TripMatch]:
        doc = await self.collection.find_one({"_id": match_id})
        return TripMatch(**_from_document(doc)) if doc else None

    async def find_pair(self, trip_id: str, matched_trip_id: str) -> Optional[TripMatch]:
        doc = await self.collection.find_one({"pair_key": match_pair_key(trip_id, matched_trip_id)})
        return TripMatch(**_from_document(doc)) if doc else None

    async def insert(self, match: TripMatch) -> Optional[TripMatch]:
        try:
            await self.collection.insert_one(to_document(match))
        except DuplicateKeyError:
            logger.info(f"Match for pair {match.pair_key} already exists")
            return None
        return match

    async def update(self, match_id: str, fields: dict) -> Optional[TripMatch]:
        await self.collection.update_one({"_id": match_id}, {"$set": _encode_fields(fields)})
        return await self.get(match_id)

    async def list_for_trip(
        self,
        trip_id: str,
        statuses: Optional[Iterable[MatchStatus]] = None,
        limit: int = 20
    ) -> List[TripMatch]:
        query = {"$or": [{"trip_id": trip_id}, {"matched_trip_id": trip_id}]}
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}

        docs = await self.collection.find(query)\
            .sort([("compatibility_score", -1), ("route_score", -1)])\
            .limit(limit)\
            .to_list(limit)
        return [TripMatch(**_from_document(doc)) for doc in docs]

    async def expire_stale(self, now: datetime) -> int:
        result = await self.collection.update_many(
            {"status": {"$in": OPEN_MATCH_STATUSES}, "expires_at": {"$lt": now}},
            {"$set": {"status": MatchStatus.EXPIRED.value, "updated_at": now}}
        )
        return result.modified_count

    async def expire_for_trip(self, trip_id: str, now: datetime) -> int:
        result = await self.collection.update_many(
            {
                "status": {"$in": OPEN_MATCH_STATUSES},
                "$or": [{"trip_id": trip_id}, {"matched_trip_id": trip_id}]
            },
            {"$set": {"status": MatchStatus.EXPIRED.value, "updated_at": now}}
        )
        return result.modified_count


class MongoNotificationStore(NotificationStore):
    def __init__(self, collection):
        self.collection = collection

    async def insert(self, notification: dict) -> dict:
        doc = dict(notification)
        doc["_id"] = doc.pop("id")
        await self.collection.insert_one(doc)
        return notification

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[dict]:
        query = {"user_id": user_id}
        if unread_only:
            query["read"] = False

        notifications = await self.collection.find(query)\
            .sort("created_at", -1)\
            .limit(limit)\
            .to_list(limit)
        return [_from_document(n) for n in notifications]

    async def mark_read(self, notification_id: str, user_id: str, now: datetime) -> bool:
        result = await self.collection.update_one(
            {"_id": notification_id, "user_id": user_id},
            {"$set": {"read": True, "read_at": now}}
        )
        return result.modified_count > 0

    async def unread_count(self, user_id: str) -> int:
        return await self.collection.count_documents({"user_id": user_id, "read": False})
