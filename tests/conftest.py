import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from shapely.geometry import Point

from app.core.data_types import IntermediateStop, Journey, JourneyLeg, Location, Segment
from app.data.journey_storage import InMemoryJourneyRepository
from app.notifications.messages import Notification
from app.processing.journey.tracker import JourneyTracker
from app.utils.geofencing import GEOD

# Port Harcourt: Choba -> Rumuokoro (transfer) -> Mile 1 area
ORIGIN = Location(id="loc-choba", name="Choba Junction", latitude=4.902222, longitude=6.917778)
TRANSFER = Location(id="loc-rumuokoro", name="Rumuokoro Junction", latitude=4.863889, longitude=6.972222)
DESTINATION = Location(id="loc-mile1", name="Mile 1 Diobu", latitude=4.8333, longitude=7.0167)

FIXED_NOW = datetime(2025, 6, 2, 8, 30, tzinfo=timezone.utc)


def point_at(location: Location, distance: float, azimuth: float = 315.0) -> Point:
    """Point `distance` meters from `location` along `azimuth` degrees."""
    lon, lat, _ = GEOD.fwd(location.longitude, location.latitude, azimuth, distance)
    return Point(lon, lat)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingSink:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, Notification]] = []

    async def send_to_user(self, user_id: str, notification: Notification) -> None:
        self.sent.append((user_id, notification))

    def close(self) -> None:
        pass

    def types(self) -> List[str]:
        return [n.type for _, n in self.sent]

    def of_type(self, type_: str) -> List[Notification]:
        return [n for _, n in self.sent if n.type == type_]


class FailOnceSink(RecordingSink):
    """Raises on the first message of `failing_type`, records everything else."""

    def __init__(self, failing_type: str) -> None:
        super().__init__()
        self.failing_type = failing_type
        self.failed = False

    async def send_to_user(self, user_id: str, notification: Notification) -> None:
        if notification.type == self.failing_type and not self.failed:
            self.failed = True
            raise ConnectionError("notification gateway unavailable")
        await super().send_to_user(user_id, notification)


class StaticLocationProvider:
    def __init__(self) -> None:
        self.locations: Dict[str, Point] = {}
        self.calls = 0

    def set(self, user_id: str, point: Point) -> None:
        self.locations[user_id] = point

    async def get_current_location(self, user_id: str) -> Optional[Point]:
        self.calls += 1
        return self.locations.get(user_id)


def make_leg(
    leg_id: str,
    journey_id: str,
    order: int,
    start: Location,
    end: Location,
    mode: str,
    fares: Tuple[float, float],
    duration: float,
    stops: Optional[List[IntermediateStop]] = None,
    status: str = "pending",
) -> JourneyLeg:
    return JourneyLeg(
        id=leg_id,
        journey_id=journey_id,
        leg_order=order,
        transport_mode=mode,
        min_fare=fares[0],
        max_fare=fares[1],
        estimated_duration=duration,
        segment=Segment(
            id=f"seg-{leg_id}",
            name=f"{start.name} to {end.name}",
            start_location=start,
            end_location=end,
            intermediate_stops=stops or [],
        ),
        status=status,
    )


def make_two_leg_journey(journey_id: str = "journey-2", status: str = "planning") -> Journey:
    far_stop = IntermediateStop(name="Alakahia", order=1, latitude=4.895833, longitude=6.925556)
    return Journey(
        id=journey_id,
        user_id="user-1",
        status=status,
        start_location=ORIGIN.name,
        end_location=DESTINATION.name,
        start_latitude=ORIGIN.latitude,
        start_longitude=ORIGIN.longitude,
        end_latitude=DESTINATION.latitude,
        end_longitude=DESTINATION.longitude,
        end_landmark="Mile One Market",
        legs=[
            make_leg("leg-1", journey_id, 0, ORIGIN, TRANSFER, "bus", (100, 200), 20, [far_stop]),
            make_leg("leg-2", journey_id, 1, TRANSFER, DESTINATION, "taxi", (300, 500), 30),
        ],
        created_at=FIXED_NOW - timedelta(hours=1),
    )


def make_one_leg_journey(journey_id: str = "journey-1", status: str = "planning") -> Journey:
    return Journey(
        id=journey_id,
        user_id="user-1",
        status=status,
        start_location=TRANSFER.name,
        end_location=DESTINATION.name,
        end_latitude=DESTINATION.latitude,
        end_longitude=DESTINATION.longitude,
        legs=[make_leg("leg-only", journey_id, 0, TRANSFER, DESTINATION, "keke", (100, 200), 15)],
        created_at=FIXED_NOW - timedelta(hours=1),
    )


def in_progress(journey: Journey, started_minutes_ago: float = 30) -> Journey:
    journey.status = "in_progress"
    journey.actual_start_time = FIXED_NOW - timedelta(minutes=started_minutes_ago)
    journey.legs[0].status = "in_progress"
    journey.legs[0].actual_start_time = journey.actual_start_time
    return journey


async def wait_for(condition, timeout: float = 2.0, step: float = 0.01) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(step)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def locations():
    return StaticLocationProvider()


@pytest.fixture
def repository():
    repo = InMemoryJourneyRepository()
    for location in (ORIGIN, TRANSFER, DESTINATION):
        repo.add_location(location)
    return repo


@pytest.fixture
async def tracker(repository, locations, sink, clock):
    """Tracker with a short poll interval and no rating delay."""
    journey_tracker = JourneyTracker(
        repository,
        locations,
        sink,
        poll_interval=0.01,
        rating_delay=0,
        collaborator_timeout=1.0,
        clock=clock,
    )
    yield journey_tracker
    await journey_tracker.shutdown()
