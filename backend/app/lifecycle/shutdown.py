"""
Shutdown Logic for the Journey Tracking API

This module defines cleanup routines for FastAPI shutdown events.

Responsibilities:
-----------------
- Cancel every journey polling task and pending rating request.
- Release the notification sink and journey repository resources.

Functions:
----------
- `bind_shutdown_event(app: FastAPI)`: Registers the shutdown hook with a FastAPI app.

Usage:
------
    from app.lifecycle.shutdown import bind_shutdown_event
    bind_shutdown_event(app)
"""

import logging
from fastapi import FastAPI

logger = logging.getLogger(__name__)

def bind_shutdown_event(app: FastAPI) -> None:
    """
    Registers a shutdown event handler on the given FastAPI app.

    Args:
        app (FastAPI): The FastAPI application instance.

    Returns:
        None
    """

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """
        Stops all journey tracking and closes collaborators.

        Tracked journeys keep their persisted state; they are not cancelled.

        Returns:
            None
        """
        logger.info("Shutting down: Stopping journey tracking tasks...")
        await app.state.tracker.shutdown()
        app.state.notification_sink.close()
        app.state.repository.close()
        logger.info("Journey tracker stopped.")
