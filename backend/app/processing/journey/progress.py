"""
Journey Progress Computation

This module derives the traveler's position relative to the planned route:
which leg is active, which intermediate stop is next, how far the upcoming
transfer point is, and the aggregate figures reported on arrival.

Responsibilities:
-----------------
- Locate the current and next leg of a journey.
- Scan the current leg's intermediate stops for the first one within the scan radius.
- Measure the distance to the current leg's transfer point.
- Aggregate remaining duration, total fare and actual journey duration.

Main Functions:
---------------
- `calculate_journey_progress(...)`: Builds a `JourneyProgress` snapshot for one cycle.
- `resolve_stop_point(...)`: Coordinates of an intermediate stop, inline or by location id.
- `calculate_total_fare(...)`, `calculate_remaining_time(...)`, `calculate_actual_duration(...)`.

Notes:
------
Nothing here mutates the journey; state transitions belong to the tracker.
"""

import logging
import math
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple

from shapely.geometry import Point

from app.core.config import (
    STOP_APPROACHING_DISTANCE,
    STOP_SCAN_FACTOR,
    TRANSFER_ALERT_DISTANCE,
)
from app.core.data_types import (
    IntermediateStop,
    Journey,
    JourneyLeg,
    JourneyProgress,
    Location,
    StopProgress,
)
from app.utils.geofencing import calculate_distance, estimate_eta

logger = logging.getLogger(__name__)

LocationResolver = Callable[[str], Awaitable[Optional[Location]]]


def get_current_leg_index(journey: Journey) -> int:
    for index, leg in enumerate(journey.legs):
        if leg.status == "in_progress":
            return index
    return -1


def get_current_leg(journey: Journey) -> Optional[JourneyLeg]:
    index = get_current_leg_index(journey)
    return journey.legs[index] if index != -1 else None


def get_next_leg(journey: Journey) -> Optional[JourneyLeg]:
    """
    Returns the leg after the in-progress one, or None when there is no
    active leg or the active leg is the last.
    """
    index = get_current_leg_index(journey)
    if index == -1 or index == len(journey.legs) - 1:
        return None
    return journey.legs[index + 1]


def calculate_remaining_time(journey: Journey, current_leg: JourneyLeg) -> float:
    """
    Sum of estimated durations (minutes) of all legs after `current_leg`.
    """
    ids = [leg.id for leg in journey.legs]
    remaining = journey.legs[ids.index(current_leg.id) + 1:]
    return sum(leg.estimated_duration for leg in remaining)


def calculate_total_fare(journey: Journey) -> float:
    """
    Expected fare paid over the whole journey: the midpoint of each leg's fare range.

    Example:
        Legs with fare ranges (100, 200) and (300, 500) -> 150 + 400 = 550.
    """
    return sum((leg.min_fare + leg.max_fare) / 2 for leg in journey.legs)


def calculate_actual_duration(journey: Journey, end_time: datetime) -> int:
    """
    Whole minutes, rounded up, between the journey start (or creation) and `end_time`.
    """
    start_time = journey.actual_start_time or journey.created_at
    seconds = (end_time - start_time).total_seconds()
    return math.ceil(seconds / 60)


async def resolve_stop_point(
    stop: IntermediateStop,
    resolve_location: LocationResolver
) -> Optional[Point]:
    """
    Resolves the coordinates of an intermediate stop.

    Inline coordinates win; otherwise the stop's `location_id` is looked up.

    Args:
        stop (IntermediateStop): Stop to resolve.
        resolve_location (LocationResolver): Async lookup of a location by id.

    Returns:
        Optional[Point]: Stop coordinates, or None if they cannot be resolved.
    """
    if stop.point is not None:
        return stop.point
    if not stop.location_id:
        return None

    location = await resolve_location(stop.location_id)
    if location is None:
        logger.debug(f"Location {stop.location_id} for stop '{stop.name}' could not be resolved.")
        return None
    return location.point


async def find_next_stop(
    leg: JourneyLeg,
    current_location: Point,
    resolve_location: LocationResolver
) -> Tuple[int, Optional[StopProgress]]:
    """
    Scans the leg's stops in travel order and returns the first one within
    `STOP_SCAN_FACTOR * STOP_APPROACHING_DISTANCE`.

    Stops whose coordinates cannot be resolved are skipped, as are stops whose
    lookup fails; one bad stop never fails the scan.

    Returns:
        Tuple[int, Optional[StopProgress]]: Stop index (-1 if none) and its progress entry.
    """
    scan_radius = STOP_APPROACHING_DISTANCE * STOP_SCAN_FACTOR
    stops = sorted(leg.segment.intermediate_stops, key=lambda s: s.order)

    for index, stop in enumerate(stops):
        try:
            stop_point = await resolve_stop_point(stop, resolve_location)
        except Exception as e:
            logger.warning(f"Skipping stop '{stop.name}': location lookup failed: {e}")
            continue
        if stop_point is None:
            continue

        distance = calculate_distance(current_location, stop_point)
        if distance <= scan_radius:
            next_stop: StopProgress = {
                "name": stop.name,
                "distance": distance,
                "eta": estimate_eta(distance),
            }
            return index, next_stop

    return -1, None


async def calculate_journey_progress(
    journey: Journey,
    current_location: Point,
    resolve_location: LocationResolver
) -> JourneyProgress:
    """
    Builds the progress snapshot for one tracking cycle.

    Args:
        journey (Journey): Journey with legs and segment geometry loaded.
        current_location (Point): Traveler position (lon, lat).
        resolve_location (LocationResolver): Async lookup used for stops without inline coordinates.

    Returns:
        JourneyProgress: Snapshot with `next_stop` and `upcoming_transfer` set
        only when they are within range.
    """
    completed_legs = sum(1 for leg in journey.legs if leg.status == "completed")
    current_leg_index = get_current_leg_index(journey)

    progress: JourneyProgress = {
        "current_leg_index": current_leg_index,
        "completed_legs": completed_legs,
        "total_legs": len(journey.legs),
        "current_stop_index": -1,
    }
    if current_leg_index == -1:
        return progress

    current_leg = journey.legs[current_leg_index]

    stop_index, next_stop = await find_next_stop(current_leg, current_location, resolve_location)
    progress["current_stop_index"] = stop_index
    if next_stop is not None:
        progress["next_stop"] = next_stop

    if current_leg_index < len(journey.legs) - 1:
        transfer_location = current_leg.segment.end_location
        transfer_distance = calculate_distance(current_location, transfer_location.point)
        if transfer_distance <= TRANSFER_ALERT_DISTANCE:
            progress["upcoming_transfer"] = {
                "name": transfer_location.name,
                "distance": transfer_distance,
                "eta": estimate_eta(transfer_distance),
            }

    return progress
