"""
Journey Storage Layer

This module provides read/write access to journeys, their legs and the route
geometry they run on. The tracker depends only on the `JourneyRepository`
contract; two implementations ship with the service.

Responsibilities:
-----------------
- Load a journey with legs, segments and endpoint locations eagerly resolved.
- Persist leg status, alert flags and timestamps.
- Persist journey status and timestamps.
- Resolve a location by id (used for intermediate stops).

Implementations:
----------------
- `InMemoryJourneyRepository`: Process-local store, optionally seeded from JSON.
- `PostgresJourneyRepository`: Reads and updates the platform's PostgreSQL
  tables (`journeys`, `journey_legs`, `route_segments`, `locations`) via psycopg2.

Usage:
------
    from app.data.journey_storage import InMemoryJourneyRepository

    repository = InMemoryJourneyRepository()
    repository.load_seed(SEED_PATH / "port_harcourt_journeys.json")
    journey = await repository.get_journey(journey_id)

Notes:
------
- Both implementations return detached copies: mutating a returned `Journey`
  never changes stored state. Writes go through `update_leg` / `update_journey`.
- psycopg2 is blocking; its calls run on a thread-pool executor.
"""

import asyncio
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from app.core.config import DB_CREDENTIALS
from app.core.data_types import (
    IntermediateStop,
    Journey,
    JourneyUpdate,
    LegUpdate,
    Location,
    Segment,
    JourneyLeg,
)

logger = logging.getLogger(__name__)


class JourneyRepository(Protocol):
    """
    Contract between the tracker and journey storage.
    """

    async def get_journey(self, journey_id: str) -> Optional[Journey]:
        """Journey with legs and segment geometry loaded, or None if it does not exist."""
        ...

    async def update_leg(self, leg_id: str, changes: LegUpdate) -> None:
        ...

    async def update_journey(self, journey_id: str, changes: JourneyUpdate) -> None:
        ...

    async def get_location(self, location_id: str) -> Optional[Location]:
        """Location by id, or None if it cannot be resolved."""
        ...

    def close(self) -> None:
        ...


class InMemoryJourneyRepository:
    """
    Process-local journey store.

    Journeys and locations live in dictionaries guarded by one asyncio lock.
    Used for development, seeded demos and tests.
    """

    def __init__(self) -> None:
        self._journeys: Dict[str, Journey] = {}
        self._locations: Dict[str, Location] = {}
        self._leg_owner: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def add_location(self, location: Location) -> None:
        if location.id is None:
            raise ValueError(f"Location '{location.name}' has no id.")
        self._locations[location.id] = location.model_copy(deep=True)

    def add_journey(self, journey: Journey) -> None:
        stored = journey.model_copy(deep=True)
        self._journeys[stored.id] = stored
        for leg in stored.legs:
            self._leg_owner[leg.id] = stored.id

    def load_seed(self, path: Path) -> int:
        """
        Loads locations and journeys from a JSON seed document.

        Expected layout:
            {"locations": [Location, ...], "journeys": [Journey, ...]}

        Args:
            path (Path): Seed file.

        Returns:
            int: Number of journeys loaded.
        """
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)

        for raw in document.get("locations", []):
            self.add_location(Location.model_validate(raw))
        journeys = [Journey.model_validate(raw) for raw in document.get("journeys", [])]
        for journey in journeys:
            self.add_journey(journey)

        logger.info(f"Loaded {len(journeys)} journeys and {len(self._locations)} locations from '{path}'.")
        return len(journeys)

    async def get_journey(self, journey_id: str) -> Optional[Journey]:
        async with self._lock:
            journey = self._journeys.get(journey_id)
            return journey.model_copy(deep=True) if journey else None

    async def update_leg(self, leg_id: str, changes: LegUpdate) -> None:
        async with self._lock:
            journey_id = self._leg_owner.get(leg_id)
            if journey_id is None:
                raise LookupError(f"Journey leg {leg_id} does not exist.")
            leg = next(leg for leg in self._journeys[journey_id].legs if leg.id == leg_id)
            for field, value in changes.items():
                setattr(leg, field, value)

    async def update_journey(self, journey_id: str, changes: JourneyUpdate) -> None:
        async with self._lock:
            journey = self._journeys.get(journey_id)
            if journey is None:
                raise LookupError(f"Journey {journey_id} does not exist.")
            for field, value in changes.items():
                setattr(journey, field, value)

    async def get_location(self, location_id: str) -> Optional[Location]:
        location = self._locations.get(location_id)
        return location.model_copy() if location else None

    def close(self) -> None:
        return None


# === PostgreSQL ===

executor = ThreadPoolExecutor(max_workers=4)

LEG_COLUMNS: Dict[str, str] = {
    "status": "status",
    "transfer_alert_sent": "transferAlertSent",
    "transfer_imminent_sent": "transferImminentSent",
    "destination_alert_sent": "destinationAlertSent",
    "actual_start_time": "actualStartTime",
    "actual_end_time": "actualEndTime",
}

JOURNEY_COLUMNS: Dict[str, str] = {
    "status": "status",
    "actual_start_time": "actualStartTime",
    "actual_end_time": "actualEndTime",
}

JOURNEY_QUERY = """
    SELECT id, "userId", status, "startLocation", "endLocation",
           "startLatitude", "startLongitude", "endLatitude", "endLongitude",
           "endLandmark", "actualStartTime", "actualEndTime", "createdAt"
    FROM journeys
    WHERE id = %s;
"""

LEGS_QUERY = """
    SELECT l.id, l."journeyId", l."legOrder", l."transportMode",
           l."minFare", l."maxFare", l."estimatedDuration", l.status,
           l."transferAlertSent", l."transferImminentSent", l."destinationAlertSent",
           l."actualStartTime", l."actualEndTime",
           s.id AS "segmentId", s.name AS "segmentName", s."intermediateStops",
           s.distance AS "segmentDistance", s."estimatedDuration" AS "segmentDuration",
           s.landmarks AS "segmentLandmarks",
           sl.id AS "startLocationId", sl.name AS "startLocationName",
           sl.latitude AS "startLocationLatitude", sl.longitude AS "startLocationLongitude",
           el.id AS "endLocationId", el.name AS "endLocationName",
           el.latitude AS "endLocationLatitude", el.longitude AS "endLocationLongitude"
    FROM journey_legs l
    JOIN route_segments s ON s.id = l."segmentId"
    JOIN locations sl ON sl.id = s."startLocationId"
    JOIN locations el ON el.id = s."endLocationId"
    WHERE l."journeyId" = %s
    ORDER BY l."legOrder";
"""

LOCATION_QUERY = """
    SELECT id, name, latitude, longitude
    FROM locations
    WHERE id = %s;
"""


def _float(value: Any, default: float = 0.0) -> float:
    return float(value) if value is not None else default


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # TIMESTAMP columns carry no zone; the platform writes UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _stop_from_json(raw: Dict[str, Any]) -> IntermediateStop:
    return IntermediateStop(
        name=raw["name"],
        order=int(raw.get("order", 0)),
        location_id=raw.get("locationId"),
        latitude=_optional_float(raw.get("latitude", raw.get("lat"))),
        longitude=_optional_float(raw.get("longitude", raw.get("lng"))),
        is_optional=bool(raw.get("isOptional", False)),
    )


def leg_from_row(row: Dict[str, Any]) -> JourneyLeg:
    """
    Maps one row of `LEGS_QUERY` to a `JourneyLeg` with its segment geometry.
    """
    segment = Segment(
        id=str(row["segmentId"]),
        name=row.get("segmentName") or "",
        start_location=Location(
            id=str(row["startLocationId"]),
            name=row["startLocationName"],
            latitude=float(row["startLocationLatitude"]),
            longitude=float(row["startLocationLongitude"]),
        ),
        end_location=Location(
            id=str(row["endLocationId"]),
            name=row["endLocationName"],
            latitude=float(row["endLocationLatitude"]),
            longitude=float(row["endLocationLongitude"]),
        ),
        intermediate_stops=[_stop_from_json(stop) for stop in row.get("intermediateStops") or []],
        distance=_float(row.get("segmentDistance")),
        estimated_duration=_float(row.get("segmentDuration")),
        landmarks=list(row.get("segmentLandmarks") or []),
    )
    return JourneyLeg(
        id=str(row["id"]),
        journey_id=str(row["journeyId"]),
        leg_order=int(row.get("legOrder") or 0),
        transport_mode=row["transportMode"],
        min_fare=_float(row.get("minFare")),
        max_fare=_float(row.get("maxFare")),
        estimated_duration=_float(row.get("estimatedDuration")),
        segment=segment,
        status=row["status"],
        transfer_alert_sent=bool(row["transferAlertSent"]),
        transfer_imminent_sent=bool(row["transferImminentSent"]),
        destination_alert_sent=bool(row["destinationAlertSent"]),
        actual_start_time=_utc(row.get("actualStartTime")),
        actual_end_time=_utc(row.get("actualEndTime")),
    )


def journey_from_rows(journey_row: Dict[str, Any], leg_rows: List[Dict[str, Any]]) -> Journey:
    """
    Maps a `JOURNEY_QUERY` row and its `LEGS_QUERY` rows to a `Journey`.
    """
    return Journey(
        id=str(journey_row["id"]),
        user_id=str(journey_row["userId"]),
        legs=[leg_from_row(row) for row in leg_rows],
        status=journey_row["status"],
        start_location=journey_row["startLocation"],
        end_location=journey_row["endLocation"],
        start_latitude=_optional_float(journey_row.get("startLatitude")),
        start_longitude=_optional_float(journey_row.get("startLongitude")),
        end_latitude=float(journey_row["endLatitude"]),
        end_longitude=float(journey_row["endLongitude"]),
        end_landmark=journey_row.get("endLandmark"),
        actual_start_time=_utc(journey_row.get("actualStartTime")),
        actual_end_time=_utc(journey_row.get("actualEndTime")),
        created_at=_utc(journey_row["createdAt"]),
    )


def build_update_query(table: str, columns: Dict[str, str], changes: Dict[str, Any]) -> sql.Composed:
    """
    Builds `UPDATE <table> SET "<col>" = %(<field>)s, ... WHERE id = %(id)s`.

    Raises:
        ValueError: If `changes` is empty or names a field that cannot be updated.
    """
    if not changes:
        raise ValueError("No changes to write.")
    unknown = set(changes) - set(columns)
    if unknown:
        raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

    assignments = sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(columns[field]), sql.Placeholder(field))
        for field in changes
    )
    return sql.SQL("UPDATE {} SET {} WHERE id = {};").format(
        sql.Identifier(table), assignments, sql.Placeholder("id")
    )


class PostgresJourneyRepository:
    """
    Journey storage backed by the platform's PostgreSQL database.

    Each call opens a short-lived connection; no schema is created here.
    """

    def __init__(self, credentials: Optional[Dict[str, str]] = None) -> None:
        self._credentials = credentials or DB_CREDENTIALS

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, fn, *args)

    def _fetch_journey(self, journey_id: str) -> Optional[Journey]:
        with psycopg2.connect(**self._credentials) as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(JOURNEY_QUERY, (journey_id,))
                journey_row = cur.fetchone()
                if journey_row is None:
                    return None
                cur.execute(LEGS_QUERY, (journey_id,))
                leg_rows = cur.fetchall()
        return journey_from_rows(journey_row, leg_rows)

    def _execute_update(self, table: str, columns: Dict[str, str], row_id: str, changes: Dict[str, Any]) -> None:
        query = build_update_query(table, columns, changes)
        with psycopg2.connect(**self._credentials) as conn:
            with conn.cursor() as cur:
                try:
                    cur.execute(query, {**changes, "id": row_id})
                    if cur.rowcount == 0:
                        raise LookupError(f"No row {row_id} in {table}.")
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise

    def _fetch_location(self, location_id: str) -> Optional[Location]:
        with psycopg2.connect(**self._credentials) as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(LOCATION_QUERY, (location_id,))
                row = cur.fetchone()
        if row is None:
            return None
        return Location(
            id=str(row["id"]),
            name=row["name"],
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
        )

    async def get_journey(self, journey_id: str) -> Optional[Journey]:
        return await self._run(self._fetch_journey, journey_id)

    async def update_leg(self, leg_id: str, changes: LegUpdate) -> None:
        await self._run(self._execute_update, "journey_legs", LEG_COLUMNS, leg_id, dict(changes))
        logger.debug(f"Updated journey leg {leg_id}: {sorted(changes)}")

    async def update_journey(self, journey_id: str, changes: JourneyUpdate) -> None:
        await self._run(self._execute_update, "journeys", JOURNEY_COLUMNS, journey_id, dict(changes))
        logger.debug(f"Updated journey {journey_id}: {sorted(changes)}")

    async def get_location(self, location_id: str) -> Optional[Location]:
        return await self._run(self._fetch_location, location_id)

    def close(self) -> None:
        executor.shutdown(wait=False)
