"""
Startup Logic for the Journey Tracking API

This module defines startup routines that are executed once when the FastAPI app launches.

Responsibilities:
-----------------
- Build the journey repository for the configured backend (memory or PostgreSQL),
  loading seed data into the in-memory store when configured.
- Build the latest-location store fed by the mobile app.
- Build the notification sink (webhook gateway or log).
- Create the `JourneyTracker` and expose everything on `app.state`.

Functions:
----------
- `build_repository()`, `build_notification_sink()`: Collaborator factories.
- `bind_startup_event(app: FastAPI)`: Registers the startup hook with a FastAPI app.

Usage:
------
    from app.lifecycle.startup import bind_startup_event
    bind_startup_event(app)
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from app.core.config import JOURNEY_BACKEND, JOURNEY_SEED_FILE, NOTIFICATION_WEBHOOK_URL
from app.data.journey_storage import (
    InMemoryJourneyRepository,
    JourneyRepository,
    PostgresJourneyRepository,
)
from app.data.location_store import InMemoryLocationStore
from app.notifications.sink import (
    LoggingNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
)
from app.processing.journey.tracker import JourneyTracker

logger = logging.getLogger(__name__)

def build_repository(
    backend: str = JOURNEY_BACKEND,
    seed_file: Optional[Path] = JOURNEY_SEED_FILE
) -> JourneyRepository:
    """
    Creates the journey repository for the configured backend.

    Args:
        backend (str): "memory" or "postgres".
        seed_file (Optional[Path]): JSON seed loaded into the in-memory store.

    Returns:
        JourneyRepository: Ready-to-use repository.

    Raises:
        ValueError: If the backend name is unknown.
    """
    if backend == "postgres":
        logger.info("Using PostgreSQL journey storage.")
        return PostgresJourneyRepository()
    if backend != "memory":
        raise ValueError(f"Unknown journey backend '{backend}'.")

    repository = InMemoryJourneyRepository()
    if seed_file is not None:
        repository.load_seed(seed_file)
    logger.info("Using in-memory journey storage.")
    return repository

def build_notification_sink(webhook_url: Optional[str] = NOTIFICATION_WEBHOOK_URL) -> NotificationSink:
    if webhook_url:
        logger.info(f"Delivering notifications to {webhook_url}")
        return WebhookNotificationSink(webhook_url)
    logger.info("No notification gateway configured; notifications are logged only.")
    return LoggingNotificationSink()

def bind_startup_event(app: FastAPI) -> None:
    """
    Registers a startup event handler on the given FastAPI app.

    Args:
        app (FastAPI): The FastAPI application instance.

    Returns:
        None
    """

    @app.on_event("startup")
    async def startup_event() -> None:
        """
        Creates the tracker and its collaborators and stores them on `app.state`.

        Returns:
            None
        """
        logger.info("Starting up: Initializing journey storage, location store and notifications...")
        app.state.repository = build_repository()
        app.state.location_store = InMemoryLocationStore()
        app.state.notification_sink = build_notification_sink()
        app.state.tracker = JourneyTracker(
            app.state.repository,
            app.state.location_store,
            app.state.notification_sink,
        )
        logger.info("Journey tracker ready.")
