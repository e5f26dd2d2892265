"""
Project Configuration and Constants

This module centralizes configuration settings, paths, and constants
used across the journey tracking service.

Contents:
---------
- API and deployment settings (prefix, root path, frontend origin)
- Collaborator backends (journey storage, notification delivery)
- Geofence thresholds and timing constants for journey tracking
- Directory and file path structure for logs and seed data
- Supported journey / leg status and transport mode definitions

Key Concepts:
-------------
- Thresholds: Fixed distances (meters) that trigger a notification or a state transition.
- Poll Interval: Seconds between two progress cycles of one tracked journey.
- Collaborator Timeout: Upper bound for a single storage, location or notification call.

Usage:
------
Import any constant from this module for use in the application:

    from app.core.config import TRANSFER_ALERT_DISTANCE, POLL_INTERVAL

Environment Variables:
----------------------
- `.env` file used for loading database credentials and delivery endpoints.

Notes:
------
- Constants use `Final` from `typing` to indicate immutability.
- Directory creation ensures all required data paths exist on startup.
"""

from dotenv import load_dotenv
import os

from pathlib import Path
from typing import Dict, Final, Literal, Optional

# === General API Settings ===

load_dotenv()
DB_CREDENTIALS: Final[Dict[str, str]] = {
    "user": os.getenv("DB_USER", ""),
    "password": os.getenv("DB_PASSWORD", ""),
    "host": os.getenv("DB_HOST", ""),
    "port": os.getenv("DB_PORT", ""),
    "dbname": os.getenv("DB_NAME", "")
}

API_PREFIX: Final[str] = os.getenv("API_PREFIX", "/api")
ROOT_PATH: Final[str] = os.getenv("ROOT_PATH", "")
FRONTEND: Final[str] = os.getenv("FRONTEND", "http://127.0.0.1:5500") # Allowed CORS origin

# === Collaborator Backends ===

JOURNEY_BACKEND: Final[str] = os.getenv("JOURNEY_BACKEND", "memory")
NOTIFICATION_WEBHOOK_URL: Final[Optional[str]] = os.getenv("NOTIFICATION_WEBHOOK_URL") or None
WEBHOOK_REQUEST_TIMEOUT: Final[float] = 10.0 # Seconds for a single webhook POST

# === Geofence Thresholds (meters) ===

TRANSFER_ALERT_DISTANCE: Final[float] = 2000.0 # Early heads-up before a transfer point
TRANSFER_IMMINENT_DISTANCE: Final[float] = 500.0 # Prepare to drop
STOP_APPROACHING_DISTANCE: Final[float] = 300.0 # Approaching an intermediate stop
DESTINATION_ALERT_DISTANCE: Final[float] = 1000.0 # Final destination heads-up
ARRIVAL_DISTANCE: Final[float] = 100.0 # Arrival at a transfer point or the destination

# Stops are scanned within twice the approach distance
STOP_SCAN_FACTOR: Final[int] = 2

# ~15 km/h effective urban transit speed including stops
ETA_METERS_PER_MINUTE: Final[float] = 250.0

# === Timing ===

POLL_INTERVAL: Final[float] = 10.0 # Seconds between progress cycles of one journey
RATING_REQUEST_DELAY: Final[float] = 5.0 # Seconds between arrival and the rating request
COLLABORATOR_TIMEOUT: Final[float] = float(os.getenv("COLLABORATOR_TIMEOUT", "5"))
LOCATION_MAX_AGE: Final[float] = float(os.getenv("LOCATION_MAX_AGE", "120")) # Older fixes count as unavailable

# === Directories ===

ROOT_DIR: Final[Path] = Path(__file__).resolve().parents[2]
DATA_PATH: Final[Path] = ROOT_DIR / "data"
SEED_PATH: Final[Path] = DATA_PATH / "seed"
LOG_PATH: Final[Path] = DATA_PATH / "logs"

# Ensure required directories exist
for path in [DATA_PATH, SEED_PATH, LOG_PATH]:
    path.mkdir(parents=True, exist_ok=True)

LOG_FILE: Final[Path] = LOG_PATH / "debug.log"
JOURNEY_SEED_FILE: Final[Optional[Path]] = (
    Path(os.environ["JOURNEY_SEED_FILE"]) if os.getenv("JOURNEY_SEED_FILE") else None
)

# === Statuses and Modes ===

JourneyStatus = Literal[
    "planning",
    "in_progress",
    "completed",
    "cancelled"
]

LegStatus = Literal[
    "pending",
    "in_progress",
    "completed"
]

TERMINAL_JOURNEY_STATUSES: Final[frozenset] = frozenset({"completed", "cancelled"})

VEHICLE_NAMES: Final[Dict[str, str]] = {
    "taxi": "Taxi",
    "bus": "Bus",
    "keke": "Keke NAPEP",
    "okada": "Okada",
    "car": "Car"
}

VEHICLE_EMOJIS: Final[Dict[str, str]] = {
    "taxi": "🚕",
    "bus": "🚌",
    "keke": "🛺",
    "okada": "🏍️"
}
DEFAULT_VEHICLE_EMOJI: Final[str] = "🚗"

CURRENCY_SYMBOL: Final[str] = "₦"
APP_NAME: Final[str] = "Avigate"
