"""
Middleware Setup for FastAPI Application

This module defines and registers custom and standard middleware components
for the journey tracking API.

Key Responsibilities:
---------------------
- Allow the web frontend origin through CORS.
- Log every request with its status code and handling time (`RequestLoggingMiddleware`).

Typical Use:
------------
Call `register_middleware(app)` passing a FastAPI app instance during app
initialization, before the app starts serving requests.
"""
import logging
import time
from typing import Callable, Awaitable
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import FRONTEND

logger = logging.getLogger(__name__)

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware logging method, path, status code and duration of each request.
    """
    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)"
        )
        return response

def register_middleware(app: FastAPI) -> None:
    """
    Register middleware on the FastAPI application instance.

    Adds middleware components in the following order:
    1. CORSMiddleware configured for the frontend origin.
    2. RequestLoggingMiddleware for access logging.

    Args:
        app (FastAPI): The FastAPI application instance to register middleware on.
    """
    app.add_middleware(CORSMiddleware,
        allow_origins=[FRONTEND],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
