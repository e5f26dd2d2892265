"""
API Endpoints for Journey Tracking

This module exposes the journey tracker to the mobile app. The app starts and
stops tracking of a planned journey and pushes the traveler's GPS fixes; all
proximity logic runs server-side in the tracker's polling tasks.

Routes:
-------
- `POST /journeys/{journey_id}/start`: Begin tracking (404 unknown journey, 409 finished journey).
- `POST /journeys/{journey_id}/stop`: Stop tracking and cancel the journey (404 unknown journey).
- `GET  /journeys/tracked`: Ids of journeys with an active polling task.
- `POST /locations`: Record the latest position of a user.

Dependencies:
-------------
The tracker and the location store are created at startup and read from
`request.app.state` (see `app.lifecycle.startup`).
"""

import logging
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from app.data.location_store import InMemoryLocationStore
from app.processing.journey.tracker import (
    JourneyNotFoundError,
    JourneyStateError,
    JourneyTracker,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def get_tracker(request: Request) -> JourneyTracker:
    return request.app.state.tracker


def get_location_store(request: Request) -> InMemoryLocationStore:
    return request.app.state.location_store


class TrackingRequest(BaseModel):
    """
    Request body for starting or stopping journey tracking.

    Attributes:
        user_id (str): Traveler who follows the journey and receives notifications.
    """
    user_id: str = Field(min_length=1)


class TrackingResponse(BaseModel):
    """
    Outcome of a start/stop request.

    Attributes:
        journey_id (str): Journey concerned.
        status (str): "tracking", "stopped" or "already_stopped".
    """
    journey_id: str
    status: Literal["tracking", "stopped", "already_stopped"]


class TrackedJourneysResponse(BaseModel):
    journey_ids: List[str]


class LocationUpdate(BaseModel):
    """
    A GPS fix pushed by the mobile app.

    Attributes:
        user_id (str): Traveler the fix belongs to.
        latitude (float): WGS84 latitude in degrees.
        longitude (float): WGS84 longitude in degrees.
    """
    user_id: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


@router.post("/journeys/{journey_id}/start", response_model=TrackingResponse)
async def start_journey_tracking(
    journey_id: str,
    req: TrackingRequest,
    tracker: JourneyTracker = Depends(get_tracker)
) -> TrackingResponse:
    """
    Starts real-time tracking of a journey for a user.

    Raises:
        HTTPException: 404 if the journey does not exist, 409 if it is already finished.
    """
    try:
        await tracker.start_tracking(journey_id, req.user_id)
    except JourneyNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except JourneyStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return TrackingResponse(journey_id=journey_id, status="tracking")


@router.post("/journeys/{journey_id}/stop", response_model=TrackingResponse)
async def stop_journey_tracking(
    journey_id: str,
    req: TrackingRequest,
    tracker: JourneyTracker = Depends(get_tracker)
) -> TrackingResponse:
    """
    Stops tracking and cancels the journey. Repeated calls are harmless.

    Raises:
        HTTPException: 404 if the journey does not exist.
    """
    try:
        stopped = await tracker.stop_tracking(journey_id, req.user_id)
    except JourneyNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return TrackingResponse(journey_id=journey_id, status="stopped" if stopped else "already_stopped")


@router.get("/journeys/tracked", response_model=TrackedJourneysResponse)
async def list_tracked_journeys(
    tracker: JourneyTracker = Depends(get_tracker)
) -> TrackedJourneysResponse:
    return TrackedJourneysResponse(journey_ids=tracker.tracked_journeys)


@router.post("/locations", status_code=status.HTTP_204_NO_CONTENT)
async def update_location(
    req: LocationUpdate,
    store: InMemoryLocationStore = Depends(get_location_store)
) -> None:
    """
    Records the latest GPS fix of a user; the next tracking cycle picks it up.
    """
    await store.update_location(req.user_id, req.latitude, req.longitude)
