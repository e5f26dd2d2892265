"""
Latest-Location Store

The mobile app pushes GPS fixes for a user; the tracker reads the most recent
one on every cycle. This module defines the `LocationProvider` contract and an
in-memory store that keeps one fix per user.

Responsibilities:
-----------------
- Record the latest fix per user with the time it was received.
- Return the latest fix as a shapely `Point(lon, lat)`.
- Report a fix as unavailable (`None`) when none exists or it is stale.

Usage:
------
    from app.data.location_store import InMemoryLocationStore

    store = InMemoryLocationStore(max_age=120)
    await store.update_location(user_id, latitude=4.8639, longitude=6.9722)
    point = await store.get_current_location(user_id)   # None when unavailable
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple

from shapely.geometry import Point

from app.core.config import LOCATION_MAX_AGE
from app.core.data_types import utc_now

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    """
    Contract for reading a user's current position.
    """

    async def get_current_location(self, user_id: str) -> Optional[Point]:
        """Latest position as Point(lon, lat), or None if unavailable."""
        ...


class InMemoryLocationStore:
    """
    Keeps the latest fix per user in memory.

    Attributes:
        max_age (Optional[float]): Seconds after which a fix counts as unavailable.
            None disables the staleness check.
    """

    def __init__(
        self,
        max_age: Optional[float] = LOCATION_MAX_AGE,
        clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.max_age = max_age
        self._clock = clock
        self._fixes: Dict[str, Tuple[Point, datetime]] = {}
        self._lock = asyncio.Lock()

    async def update_location(self, user_id: str, latitude: float, longitude: float) -> None:
        """
        Records a new fix for `user_id`, replacing the previous one.

        Raises:
            ValueError: If the coordinates are outside WGS84 bounds.
        """
        if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
            raise ValueError(f"Invalid coordinates ({latitude}, {longitude}).")
        async with self._lock:
            self._fixes[user_id] = (Point(longitude, latitude), self._clock())
        logger.debug(f"Location updated for user {user_id}: ({latitude:.5f}, {longitude:.5f})")

    async def get_current_location(self, user_id: str) -> Optional[Point]:
        async with self._lock:
            fix = self._fixes.get(user_id)
        if fix is None:
            return None

        point, received_at = fix
        if self.max_age is not None and self._clock() - received_at > timedelta(seconds=self.max_age):
            logger.debug(f"Latest fix for user {user_id} is stale (received {received_at.isoformat()}).")
            return None
        return point
