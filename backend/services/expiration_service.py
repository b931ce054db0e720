"""
Expiration Service - Automatic timeout handling
==============================================

Handles expiration of match suggestions:
- Match: any open status -> EXPIRED once `expires_at` has passed (30 days)
- Match: any open status -> EXPIRED when one of its trips is cancelled or completed

The sweep is idempotent and can run periodically (e.g. every hour via cron/scheduler)
or on demand through the API.
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional
import logging

from stores import MatchStore

logger = logging.getLogger(__name__)


async def expire_stale_matches(store: MatchStore, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Expire matches whose suggestion window has passed.

    Rule: SUGGESTED / VIEWED / CONTACTED -> EXPIRED after expires_at
    """
    now = now or datetime.now(timezone.utc)
    expired = await store.expire_stale(now)

    if expired > 0:
        logger.info(f"Expired {expired} matches past their expiry date")

    return {
        "type": "match_expiry",
        "expired_count": expired,
        "executed_at": now.isoformat()
    }


async def expire_matches_for_trip(store: MatchStore, trip_id: str, now: Optional[datetime] = None) -> int:
    """Expire the open matches of a trip that left the matching pool."""
    now = now or datetime.now(timezone.utc)
    expired = await store.expire_for_trip(trip_id, now)

    if expired > 0:
        logger.info(f"Expired {expired} open matches of trip {trip_id}")

    return expired
