"""
Display Formatting Helpers for Notifications

Small helpers shared by the notification builders: vehicle names and icons,
fare ranges and half-up rounding of currency amounts.
"""

import math

from app.core.config import (
    CURRENCY_SYMBOL,
    DEFAULT_VEHICLE_EMOJI,
    VEHICLE_EMOJIS,
    VEHICLE_NAMES,
)


def format_vehicle_type(transport_mode: str) -> str:
    """
    Human readable vehicle name, e.g. "keke" -> "Keke NAPEP".

    Unknown modes are returned unchanged.
    """
    return VEHICLE_NAMES.get(transport_mode.lower(), transport_mode)


def vehicle_emoji(transport_mode: str) -> str:
    return VEHICLE_EMOJIS.get(transport_mode.lower(), DEFAULT_VEHICLE_EMOJI)


def format_amount(amount: float) -> str:
    """Formats a fare without a trailing `.0` for whole amounts."""
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def format_fare_range(min_fare: float, max_fare: float) -> str:
    return f"{CURRENCY_SYMBOL}{format_amount(min_fare)}-{format_amount(max_fare)}"


def round_half_up(value: float) -> int:
    # Python's round() rounds halves to even
    return math.floor(value + 0.5)


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"
