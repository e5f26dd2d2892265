"""
Real-Time Journey Tracking with Transfer and Arrival Notifications
==================================================================

This module drives a traveler through a planned multi-leg journey. Every
tracked journey gets its own polling task; each cycle compares the user's
latest position with the route geometry, sends proximity notifications and
advances the leg-by-leg state machine.

Responsibilities:
-----------------
- Start tracking: activate the journey and its first leg, announce the start,
  spawn the journey's polling task.
- Per cycle: approaching-stop, transfer-alert, transfer-imminent and
  destination-alert notifications; transfer and destination arrival handling.
- Stop tracking: cancel the polling task, mark the journey cancelled, notify.
- Keep every alert one-shot through the leg flags.

State machine:
--------------
    leg:      pending -> in_progress -> completed
    journey:  planning -> in_progress -> completed | cancelled

Thresholds (meters, from `app.core.config`):
--------------------------------------------
    transfer alert      500 < d <= 2000  (once per leg)
    transfer imminent         d <= 500   (once per leg)
    approaching stop          d <= 300   (every cycle while in range)
    destination alert         d <= 1000  (once per leg)
    arrival                   d <= 100   (transfer point or destination)

Concurrency:
------------
- One asyncio task per journey, kept in the tracker's registry keyed by journey id.
- A cycle runs under the journey's lock; `stop_tracking` takes the same lock
  before cancelling, so a cycle is never cut in half and none runs after it returns.
- Every collaborator call is bounded by `collaborator_timeout`.
- Destination arrival ends the journey's own polling task.

Usage:
------
    tracker = JourneyTracker(repository, location_store, sink)
    await tracker.start_tracking(journey_id, user_id)
    ...
    await tracker.stop_tracking(journey_id, user_id)
    await tracker.shutdown()
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from shapely.geometry import Point

from app.core.config import (
    ARRIVAL_DISTANCE,
    COLLABORATOR_TIMEOUT,
    DESTINATION_ALERT_DISTANCE,
    POLL_INTERVAL,
    RATING_REQUEST_DELAY,
    STOP_APPROACHING_DISTANCE,
    TERMINAL_JOURNEY_STATUSES,
    TRANSFER_ALERT_DISTANCE,
    TRANSFER_IMMINENT_DISTANCE,
)
from app.core.data_types import Journey, JourneyLeg, JourneyUpdate, LegUpdate, Location, utc_now
from app.core.logger import set_journey_context
from app.data.journey_storage import JourneyRepository
from app.data.location_store import LocationProvider
from app.notifications.messages import (
    Notification,
    build_approaching_stop,
    build_destination_alert,
    build_journey_complete,
    build_journey_start,
    build_journey_stopped,
    build_rating_request,
    build_transfer_alert,
    build_transfer_complete,
    build_transfer_imminent,
)
from app.notifications.sink import NotificationSink
from app.processing.journey.progress import (
    calculate_actual_duration,
    calculate_journey_progress,
    calculate_remaining_time,
    calculate_total_fare,
    get_current_leg,
    get_next_leg,
)
from app.utils.geofencing import calculate_distance, estimate_eta

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TrackingSession:
    """
    Registry entry for one tracked journey.

    Attributes:
        journey_id (str): Tracked journey.
        user_id (str): Traveler receiving the notifications.
        task (Optional[asyncio.Task]): The journey's polling task once started.
        lock (asyncio.Lock): Serializes cycles and cancellation for this journey.
    """

    def __init__(self, journey_id: str, user_id: str) -> None:
        self.journey_id = journey_id
        self.user_id = user_id
        self.task: Optional[asyncio.Task] = None
        self.lock = asyncio.Lock()


class JourneyTracker:
    """
    Tracks journeys in progress and emits transfer and arrival notifications.

    Args:
        repository (JourneyRepository): Journey, leg and location storage.
        location_provider (LocationProvider): Source of the traveler's latest position.
        notification_sink (NotificationSink): Delivery of user notifications.
        poll_interval (float): Seconds between two cycles of one journey.
        rating_delay (float): Seconds between arrival and the rating request.
        collaborator_timeout (float): Upper bound in seconds for any single collaborator call.
        clock (Callable[[], datetime]): Source of timezone-aware "now".
    """

    def __init__(
        self,
        repository: JourneyRepository,
        location_provider: LocationProvider,
        notification_sink: NotificationSink,
        poll_interval: float = POLL_INTERVAL,
        rating_delay: float = RATING_REQUEST_DELAY,
        collaborator_timeout: float = COLLABORATOR_TIMEOUT,
        clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.repository = repository
        self.location_provider = location_provider
        self.notification_sink = notification_sink
        self.poll_interval = poll_interval
        self.rating_delay = rating_delay
        self.collaborator_timeout = collaborator_timeout
        self._clock = clock
        self._sessions: Dict[str, TrackingSession] = {}
        self._background: Set[asyncio.Task] = set()

    # === Registry ===

    @property
    def tracked_journeys(self) -> List[str]:
        return sorted(self._sessions)

    def is_tracking(self, journey_id: str) -> bool:
        return journey_id in self._sessions

    def _release(self, journey_id: str) -> None:
        """
        Removes a journey from the registry and cancels its polling task,
        unless the caller is that task (it will return on its own).
        """
        session = self._sessions.pop(journey_id, None)
        if session is None or session.task is None:
            return
        if session.task is not asyncio.current_task() and not session.task.done():
            session.task.cancel()

    # === Collaborator calls ===

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.collaborator_timeout)

    async def _send(self, user_id: str, notification: Notification) -> None:
        await self._call(self.notification_sink.send_to_user(user_id, notification))

    async def _resolve_location(self, location_id: str) -> Optional[Location]:
        return await self._call(self.repository.get_location(location_id))

    async def _update_leg(self, leg: JourneyLeg, changes: LegUpdate) -> None:
        await self._call(self.repository.update_leg(leg.id, changes))
        for field, value in changes.items():
            setattr(leg, field, value)

    async def _update_journey(self, journey: Journey, changes: JourneyUpdate) -> None:
        await self._call(self.repository.update_journey(journey.id, changes))
        for field, value in changes.items():
            setattr(journey, field, value)

    # === Public contract ===

    async def start_tracking(self, journey_id: str, user_id: str) -> None:
        """
        Starts real-time tracking of a journey.

        Activates the journey (and its first pending leg when no leg is in
        progress), sends the journey-start notification and spawns the
        journey's polling task. Starting a journey that is already tracked
        does nothing.

        Raises:
            JourneyNotFoundError: If the journey does not exist.
            JourneyStateError: If the journey is completed, cancelled or has no legs.
        """
        if journey_id in self._sessions:
            logger.info(f"Journey {journey_id} is already being tracked.")
            return

        logger.info(f"Starting journey tracking for journey {journey_id}, user {user_id}")
        session = TrackingSession(journey_id, user_id)
        self._sessions[journey_id] = session
        try:
            async with session.lock:
                journey = await self._call(self.repository.get_journey(journey_id))
                if journey is None:
                    raise JourneyNotFoundError(f"Journey {journey_id} not found.")
                if journey.status in TERMINAL_JOURNEY_STATUSES:
                    raise JourneyStateError(f"Journey {journey_id} is already {journey.status}.")
                if not journey.legs:
                    raise JourneyStateError(f"Journey {journey_id} has no legs.")

                await self._activate(journey)
                await self._send(user_id, build_journey_start(journey))
                logger.info(f"Journey start notification sent to user {user_id}")

                session.task = asyncio.create_task(
                    self._poll_journey(session), name=f"journey-tracking-{journey_id}"
                )
        finally:
            if session.task is None and self._sessions.get(journey_id) is session:
                del self._sessions[journey_id]

    async def stop_tracking(self, journey_id: str, user_id: str) -> bool:
        """
        Stops tracking a journey and marks it cancelled.

        Waits for an in-flight cycle to finish, cancels the polling task, then
        cancels the journey and sends one "journey stopped" notification.
        Calling it again on a journey that is already cancelled or completed
        changes nothing and sends nothing.

        Returns:
            bool: True if the journey was cancelled by this call.

        Raises:
            JourneyNotFoundError: If the journey does not exist.
        """
        session = self._sessions.get(journey_id)
        if session is not None:
            async with session.lock:
                self._release(journey_id)
            if session.task is not None:
                await asyncio.gather(session.task, return_exceptions=True)

        journey = await self._call(self.repository.get_journey(journey_id))
        if journey is None:
            raise JourneyNotFoundError(f"Journey {journey_id} not found.")
        if journey.status in TERMINAL_JOURNEY_STATUSES:
            logger.info(f"Journey {journey_id} already {journey.status}; nothing to stop.")
            return False

        await self._update_journey(journey, {"status": "cancelled", "actual_end_time": self._clock()})
        await self._send(user_id, build_journey_stopped(journey_id))
        logger.info(f"Journey tracking stopped for journey {journey_id}, user {user_id}")
        return True

    async def shutdown(self) -> None:
        """
        Cancels every polling task and pending rating request.
        """
        tasks = [s.task for s in self._sessions.values() if s.task is not None]
        tasks.extend(self._background)
        self._sessions.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Journey tracker shut down ({len(tasks)} tasks cancelled).")

    # === Polling ===

    async def _activate(self, journey: Journey) -> None:
        now = self._clock()
        changes: JourneyUpdate = {}
        if journey.status != "in_progress":
            changes["status"] = "in_progress"
        if journey.actual_start_time is None:
            changes["actual_start_time"] = now
        if changes:
            await self._update_journey(journey, changes)

        if get_current_leg(journey) is None:
            first_pending = next((leg for leg in journey.legs if leg.status == "pending"), None)
            if first_pending is not None:
                await self._update_leg(first_pending, {"status": "in_progress", "actual_start_time": now})

    async def _poll_journey(self, session: TrackingSession) -> None:
        set_journey_context(session.journey_id)
        logger.info(f"Journey tracking started (interval={self.poll_interval}s)")
        try:
            while True:
                await asyncio.sleep(self.poll_interval)
                async with session.lock:
                    finished = await self._run_cycle(session)
                if finished:
                    break
        finally:
            if self._sessions.get(session.journey_id) is session:
                del self._sessions[session.journey_id]
            logger.info("Journey polling ended")

    async def _run_cycle(self, session: TrackingSession) -> bool:
        """
        Runs one tracking cycle.

        Returns:
            bool: True when the journey is no longer in progress and polling should end.
        """
        try:
            journey = await self._call(self.repository.get_journey(session.journey_id))
            if journey is None or journey.status != "in_progress":
                logger.info("Journey is no longer in progress; ending tracking.")
                return True

            location = await self._call(self.location_provider.get_current_location(session.user_id))
            if location is None:
                logger.warning(f"User location not available for user {session.user_id}")
                return False

            await self.process_progress(journey, session.user_id, location)
            return journey.status in TERMINAL_JOURNEY_STATUSES
        except Exception:
            logger.error(f"Error in journey tracking for journey {session.journey_id}", exc_info=True)
            return False

    # === Progress ===

    async def process_progress(
        self,
        journey: Journey,
        user_id: str,
        current_location: Point
    ) -> None:
        """
        Evaluates one position against the journey and sends due notifications.

        Args:
            journey (Journey): Journey with legs and geometry; updated in place.
            user_id (str): Traveler receiving the notifications.
            current_location (Point): Traveler position (lon, lat).
        """
        current_leg = get_current_leg(journey)
        if current_leg is None:
            logger.warning(f"No current leg found for journey {journey.id}")
            return

        progress = await calculate_journey_progress(journey, current_location, self._resolve_location)

        # Not flag-gated: repeats every cycle while the stop is in range
        next_stop = progress.get("next_stop")
        if next_stop is not None and next_stop["distance"] <= STOP_APPROACHING_DISTANCE:
            await self._send(user_id, build_approaching_stop(journey, next_stop))
            logger.info(f"Approaching stop notification sent: {next_stop['name']}")

        transfer = progress.get("upcoming_transfer")
        next_leg = get_next_leg(journey)
        if transfer is not None and next_leg is not None:
            transfer_distance = transfer["distance"]

            if (
                TRANSFER_IMMINENT_DISTANCE < transfer_distance <= TRANSFER_ALERT_DISTANCE
                and not current_leg.transfer_alert_sent
            ):
                await self._send(user_id, build_transfer_alert(journey, transfer, next_leg))
                await self._update_leg(current_leg, {"transfer_alert_sent": True})
                logger.info(f"Transfer alert notification sent: {transfer['name']}, eta={transfer['eta']} min")

            if (
                transfer_distance <= TRANSFER_IMMINENT_DISTANCE
                and not current_leg.transfer_imminent_sent
            ):
                await self._send(user_id, build_transfer_imminent(journey, transfer, next_leg))
                await self._update_leg(current_leg, {"transfer_imminent_sent": True})
                logger.info(f"Transfer imminent notification sent: {transfer['name']}")

            if transfer_distance <= ARRIVAL_DISTANCE:
                await self.handle_transfer_arrival(user_id, journey, current_leg)

        destination_distance = calculate_distance(current_location, journey.destination_point)

        if (
            destination_distance <= DESTINATION_ALERT_DISTANCE
            and not current_leg.destination_alert_sent
        ):
            eta = estimate_eta(destination_distance)
            await self._send(user_id, build_destination_alert(journey, eta))
            await self._update_leg(current_leg, {"destination_alert_sent": True})
            logger.info(f"Destination alert notification sent: {journey.end_location}, eta={eta} min")

        if destination_distance <= ARRIVAL_DISTANCE:
            await self.handle_destination_arrival(user_id, journey)

    async def handle_transfer_arrival(
        self,
        user_id: str,
        journey: Journey,
        current_leg: JourneyLeg
    ) -> None:
        """
        Announces the transfer, then completes the current leg and activates the next one.

        The legs only change once the notification is out; a failed send
        leaves them untouched so the next cycle handles the arrival again.
        """
        next_leg = get_next_leg(journey)
        if next_leg is None:
            return

        now = self._clock()
        remaining = calculate_remaining_time(journey, current_leg)
        await self._send(user_id, build_transfer_complete(journey, current_leg, next_leg, remaining))

        await self._update_leg(current_leg, {"status": "completed", "actual_end_time": now})
        await self._update_leg(next_leg, {"status": "in_progress", "actual_start_time": now})
        logger.info(f"Transfer point arrival handled: completed leg {current_leg.id}, next leg {next_leg.id}")

    async def handle_destination_arrival(self, user_id: str, journey: Journey) -> None:
        """
        Reports fare and duration, completes the journey, schedules the rating
        request and ends the journey's polling task.

        The journey is only marked completed once the arrival notification is
        out; a failed send leaves it in progress for the next cycle.
        """
        now = self._clock()
        actual_duration = calculate_actual_duration(journey, now)
        total_fare = calculate_total_fare(journey)
        await self._send(user_id, build_journey_complete(journey, total_fare, actual_duration))

        current_leg = get_current_leg(journey)
        last_leg = journey.legs[-1]
        for leg in (current_leg, last_leg):
            if leg is not None and leg.status != "completed":
                await self._update_leg(leg, {"status": "completed", "actual_end_time": now})
        await self._update_journey(journey, {"status": "completed", "actual_end_time": now})

        self._schedule_rating_request(user_id, journey)
        self._release(journey.id)

        logger.info(
            f"Journey {journey.id} completed for user {user_id}: "
            f"duration={actual_duration} min, fare={total_fare:.0f}"
        )

    # === Rating request ===

    def _schedule_rating_request(self, user_id: str, journey: Journey) -> None:
        task = asyncio.create_task(self._send_rating_request(user_id, journey))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_rating_request(self, user_id: str, journey: Journey) -> None:
        await asyncio.sleep(self.rating_delay)
        try:
            await self._send(user_id, build_rating_request(journey))
            logger.info(f"Rating request sent for journey {journey.id}")
        except Exception:
            logger.error(f"Failed to send rating request for journey {journey.id}", exc_info=True)


class JourneyNotFoundError(Exception):
    """Raised when the journey to track does not exist."""


class JourneyStateError(Exception):
    """Raised when a journey cannot be tracked in its current state."""
