"""
Main Application Entry Point

This script initializes the FastAPI application serving real-time journey tracking.

Key Responsibilities:
---------------------
- Sets up unified structured logging.
- Instantiates the FastAPI app and registers API routes.
- Configures CORS and request logging middleware.
- Creates the journey tracker and its collaborators at startup.

Application Lifecycle:
-----------------------
- @startup: build journey storage, the location store, the notification sink and the tracker.
- @shutdown: cancel all journey polling tasks and close collaborators.

Typical Use:
------------
This module should be specified as the app entry point when running the FastAPI server,
e.g., using `uvicorn` from the `backend` directory:

    uvicorn main:app --reload
"""
from fastapi import FastAPI

from app.api.endpoints.journeys import router as journeys_router
from app.core.config import API_PREFIX, ROOT_PATH
from app.core.logger import setup_logging
from app.core.middleware import register_middleware
from app.lifecycle.startup import bind_startup_event
from app.lifecycle.shutdown import bind_shutdown_event

setup_logging()

app = FastAPI(root_path=ROOT_PATH)
register_middleware(app)
app.include_router(journeys_router, prefix=API_PREFIX, tags=["journeys"])

bind_startup_event(app)
bind_shutdown_event(app)
