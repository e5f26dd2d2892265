"""
Typed Data Structures for Journey Tracking

This module defines the data contracts shared by the journey tracker and its
collaborators. Route geometry and journey state are pydantic models so that
seed files and database rows are validated on the way in; partial updates and
derived progress snapshots are plain `TypedDict`s.

Key Structures:
---------------
- `Location`: A named place with WGS84 coordinates.
- `IntermediateStop`: An ordered stop inside a route segment.
- `Segment`: Geometry of one leg (start/end location, stops, distance, duration).
- `JourneyLeg`: One single-vehicle leg of a journey, with its one-shot alert flags.
- `Journey`: A user's traversal of a planned multi-leg route.
- `LegUpdate` / `JourneyUpdate`: Partial updates written through the journey repository.
- `StopProgress` / `JourneyProgress`: Transient per-cycle progress snapshot.

Usage:
------
    from app.core.data_types import Journey
    journey = Journey.model_validate(row)
    destination = journey.destination_point

Notes:
------
- Points are built as `Point(longitude, latitude)`, matching shapely's x/y order.
- Models are mutable; the tracker mirrors every persisted update on the
  in-memory instance it is working with.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional, TypedDict

from pydantic import BaseModel, Field
from shapely.geometry import Point

from app.core.config import JourneyStatus, LegStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Location(BaseModel):
    """
    A named place with coordinates.

    Attributes:
        id (Optional[str]): Location identifier, if the place is stored.
        name (str): Display name (e.g., "Rumuokoro Junction").
        latitude (float): WGS84 latitude.
        longitude (float): WGS84 longitude.
    """
    id: Optional[str] = None
    name: str
    latitude: float
    longitude: float

    @property
    def point(self) -> Point:
        return Point(self.longitude, self.latitude)


class IntermediateStop(BaseModel):
    """
    A stop between a segment's start and end.

    Coordinates are either carried inline or resolved through `location_id`.
    """
    name: str
    order: int = 0
    location_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_optional: bool = False

    @property
    def point(self) -> Optional[Point]:
        if self.latitude is None or self.longitude is None:
            return None
        return Point(self.longitude, self.latitude)


class Segment(BaseModel):
    """
    Geometric and transport definition of one leg.

    Attributes:
        id (str): Segment identifier.
        name (str): Human readable name (e.g., "Choba to Rumuokoro via East-West Road").
        start_location (Location): Boarding point.
        end_location (Location): Drop point (a transfer point unless this is the last leg).
        intermediate_stops (List[IntermediateStop]): Stops in travel order.
        distance (float): Segment length in kilometers.
        estimated_duration (float): Typical travel time in minutes.
        landmarks (List[Any]): Landmarks along the segment, names or objects with coordinates.
    """
    id: str
    name: str = ""
    start_location: Location
    end_location: Location
    intermediate_stops: List[IntermediateStop] = Field(default_factory=list)
    distance: float = 0.0
    estimated_duration: float = 0.0
    landmarks: List[Any] = Field(default_factory=list)


class JourneyLeg(BaseModel):
    """
    One single-vehicle leg of a journey.

    The three alert flags are one-shot: once set they are never reset
    within the same journey.
    """
    id: str
    journey_id: str
    leg_order: int = 0
    transport_mode: str
    min_fare: float = 0.0
    max_fare: float = 0.0
    estimated_duration: float = 0.0
    segment: Segment
    status: LegStatus = "pending"
    transfer_alert_sent: bool = False
    transfer_imminent_sent: bool = False
    destination_alert_sent: bool = False
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None


class Journey(BaseModel):
    """
    One user's traversal of a planned multi-leg route.

    Legs are ordered; leg[i].segment.end_location is the transfer point
    where leg[i + 1] begins.
    """
    id: str
    user_id: str
    legs: List[JourneyLeg] = Field(default_factory=list)
    status: JourneyStatus = "planning"
    start_location: str
    end_location: str
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: float
    end_longitude: float
    end_landmark: Optional[str] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def destination_point(self) -> Point:
        return Point(self.end_longitude, self.end_latitude)

    @property
    def transfer_count(self) -> int:
        return max(len(self.legs) - 1, 0)


class LegUpdate(TypedDict, total=False):
    """
    Partial update of a journey leg.

    Attributes:
        status (LegStatus): New leg status.
        transfer_alert_sent (bool): Early transfer alert delivered.
        transfer_imminent_sent (bool): Imminent transfer alert delivered.
        destination_alert_sent (bool): Destination alert delivered.
        actual_start_time (datetime): When the user boarded.
        actual_end_time (datetime): When the user dropped.
    """
    status: LegStatus
    transfer_alert_sent: bool
    transfer_imminent_sent: bool
    destination_alert_sent: bool
    actual_start_time: datetime
    actual_end_time: datetime


class JourneyUpdate(TypedDict, total=False):
    """
    Partial update of a journey.

    Attributes:
        status (JourneyStatus): New journey status.
        actual_start_time (datetime): When tracking began.
        actual_end_time (datetime): When the journey completed or was cancelled.
    """
    status: JourneyStatus
    actual_start_time: datetime
    actual_end_time: datetime


class StopProgress(TypedDict):
    """
    Proximity to a named point ahead of the traveler.

    Attributes:
        name (str): Stop or transfer point name.
        distance (float): Distance in meters.
        eta (int): Estimated minutes to arrival.
    """
    name: str
    distance: float
    eta: int


class JourneyProgress(TypedDict, total=False):
    """
    Per-cycle progress snapshot. Never persisted.

    Attributes:
        current_leg_index (int): Index of the in-progress leg, -1 if none.
        completed_legs (int): Number of completed legs.
        total_legs (int): Number of legs in the journey.
        current_stop_index (int): Index of `next_stop` among the leg's stops, -1 if none.
        next_stop (StopProgress): First stop within the scan radius, if any.
        upcoming_transfer (StopProgress): Transfer point within alert range, if any.
    """
    current_leg_index: int
    completed_legs: int
    total_legs: int
    current_stop_index: int
    next_stop: StopProgress
    upcoming_transfer: StopProgress
