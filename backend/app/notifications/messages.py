"""
Journey Notification Catalogue

This module defines every notification the journey tracker can emit and the
builders that turn journey state into user-facing messages.

Payloads:
---------
Each notification kind is its own pydantic model with a literal `type` tag.
`NotificationPayload` is the discriminated union over all nine kinds, so a
builder cannot omit a field its kind requires:

- `journey_start`      - tracking began (transfer count, total legs)
- `approaching_stop`   - an intermediate stop is close (stop name, ETA)
- `transfer_alert`     - transfer point within 2 km (location, ETA, next vehicle)
- `transfer_imminent`  - transfer point within 500 m (location)
- `transfer_complete`  - the traveler changed vehicles (completed and next leg ids)
- `destination_alert`  - destination within 1 km (destination, ETA)
- `journey_complete`   - arrived (total fare, actual duration, total legs)
- `rating_request`     - ask for a journey rating
- `journey_stopped`    - tracking was stopped by the user

Usage:
------
    from app.notifications.messages import build_journey_start
    notification = build_journey_start(journey)
    await sink.send_to_user(journey.user_id, notification)

`Notification.to_data()` flattens the payload into the string-only map
expected by push services (camelCase keys, e.g. `journeyId`).
"""

from typing import Annotated, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.config import APP_NAME, CURRENCY_SYMBOL
from app.core.data_types import Journey, JourneyLeg, StopProgress
from app.utils.formatting import (
    format_fare_range,
    format_vehicle_type,
    plural,
    round_half_up,
    vehicle_emoji,
)


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    journey_id: str


class JourneyStartPayload(_Payload):
    type: Literal["journey_start"] = "journey_start"
    has_transfers: bool
    total_legs: int


class ApproachingStopPayload(_Payload):
    type: Literal["approaching_stop"] = "approaching_stop"
    stop_name: str
    eta: int


class TransferAlertPayload(_Payload):
    type: Literal["transfer_alert"] = "transfer_alert"
    transfer_location: str
    eta: int
    next_vehicle: str


class TransferImminentPayload(_Payload):
    type: Literal["transfer_imminent"] = "transfer_imminent"
    transfer_location: str
    priority: Literal["high"] = "high"


class TransferCompletePayload(_Payload):
    type: Literal["transfer_complete"] = "transfer_complete"
    current_leg_id: str
    next_leg_id: str


class DestinationAlertPayload(_Payload):
    type: Literal["destination_alert"] = "destination_alert"
    destination: str
    eta: int


class JourneyCompletePayload(_Payload):
    type: Literal["journey_complete"] = "journey_complete"
    total_fare: float
    actual_duration: int
    total_legs: int


class RatingRequestPayload(_Payload):
    type: Literal["rating_request"] = "rating_request"
    action: Literal["open_rating"] = "open_rating"


class JourneyStoppedPayload(_Payload):
    type: Literal["journey_stopped"] = "journey_stopped"


NotificationPayload = Annotated[
    Union[
        JourneyStartPayload,
        ApproachingStopPayload,
        TransferAlertPayload,
        TransferImminentPayload,
        TransferCompletePayload,
        DestinationAlertPayload,
        JourneyCompletePayload,
        RatingRequestPayload,
        JourneyStoppedPayload,
    ],
    Field(discriminator="type"),
]


class Notification(BaseModel):
    """
    A structured message addressed to one user.

    Attributes:
        title (str): Short headline.
        body (str): Multi-line message text.
        data (NotificationPayload): Typed payload, tagged by `data.type`.
    """
    title: str
    body: str
    data: NotificationPayload

    @property
    def type(self) -> str:
        return self.data.type

    def to_data(self) -> Dict[str, str]:
        """
        Flattens the payload into string values keyed in camelCase.

        Returns:
            Dict[str, str]: e.g. {"type": "journey_start", "journeyId": "...", "hasTransfers": "true"}
        """
        flat: Dict[str, str] = {}
        for key, value in self.data.model_dump(by_alias=True).items():
            if isinstance(value, bool):
                flat[key] = "true" if value else "false"
            else:
                flat[key] = str(value)
        return flat


def _minutes(eta: int) -> str:
    return plural(eta, "minute")


def build_journey_start(journey: Journey) -> Notification:
    first_leg = journey.legs[0]
    has_transfers = len(journey.legs) > 1
    transfer_info = (
        f"⚠️ {plural(journey.transfer_count, 'transfer')} required"
        if has_transfers else "✓ Direct route"
    )
    body = (
        f"{journey.start_location} → {journey.end_location}\n"
        f"Vehicle: {vehicle_emoji(first_leg.transport_mode)} {format_vehicle_type(first_leg.transport_mode)}\n"
        f"Fare: {format_fare_range(first_leg.min_fare, first_leg.max_fare)}\n"
        f"{transfer_info}"
    )
    return Notification(
        title="🚀 Journey Started",
        body=body,
        data=JourneyStartPayload(
            journey_id=journey.id,
            has_transfers=has_transfers,
            total_legs=len(journey.legs),
        ),
    )


def build_approaching_stop(journey: Journey, next_stop: StopProgress) -> Notification:
    return Notification(
        title="📍 Approaching Stop",
        body=f"{next_stop['name']}\nArriving in {_minutes(next_stop['eta'])}",
        data=ApproachingStopPayload(
            journey_id=journey.id,
            stop_name=next_stop["name"],
            eta=next_stop["eta"],
        ),
    )


def build_transfer_alert(
    journey: Journey,
    transfer: StopProgress,
    next_leg: JourneyLeg
) -> Notification:
    body = (
        f"Drop at {transfer['name']} in {transfer['eta']} minutes\n"
        f"Next vehicle: {format_vehicle_type(next_leg.transport_mode)}\n"
        f"Fare: {format_fare_range(next_leg.min_fare, next_leg.max_fare)}"
    )
    return Notification(
        title="⚠️ TRANSFER ALERT",
        body=body,
        data=TransferAlertPayload(
            journey_id=journey.id,
            transfer_location=transfer["name"],
            eta=transfer["eta"],
            next_vehicle=next_leg.transport_mode,
        ),
    )


def build_transfer_imminent(
    journey: Journey,
    transfer: StopProgress,
    next_leg: JourneyLeg
) -> Notification:
    body = (
        f"Prepare to drop at {transfer['name']}\n"
        f"Look for: {format_vehicle_type(next_leg.transport_mode)} to {next_leg.segment.end_location.name}"
    )
    return Notification(
        title="🔄 TRANSFER POINT AHEAD",
        body=body,
        data=TransferImminentPayload(
            journey_id=journey.id,
            transfer_location=transfer["name"],
        ),
    )


def build_transfer_complete(
    journey: Journey,
    completed_leg: JourneyLeg,
    next_leg: JourneyLeg,
    remaining_minutes: float
) -> Notification:
    body = (
        "Current leg complete ✓\n"
        f"Now board: {format_vehicle_type(next_leg.transport_mode)} to {next_leg.segment.end_location.name}\n"
        f"Fare: {format_fare_range(next_leg.min_fare, next_leg.max_fare)}\n"
        f"Remaining: {round_half_up(remaining_minutes)} mins"
    )
    return Notification(
        title="🔄 TRANSFER POINT REACHED",
        body=body,
        data=TransferCompletePayload(
            journey_id=journey.id,
            current_leg_id=completed_leg.id,
            next_leg_id=next_leg.id,
        ),
    )


def build_destination_alert(journey: Journey, eta: int) -> Notification:
    body = (
        f"Drop at {journey.end_location} in {_minutes(eta)}\n"
        f"Look for: {journey.end_landmark or 'Major landmarks'}"
    )
    return Notification(
        title="🎯 DESTINATION ALERT",
        body=body,
        data=DestinationAlertPayload(
            journey_id=journey.id,
            destination=journey.end_location,
            eta=eta,
        ),
    )


def build_journey_complete(
    journey: Journey,
    total_fare: float,
    actual_duration: int
) -> Notification:
    transfers = (
        f"Transfers: {journey.transfer_count}" if len(journey.legs) > 1 else "Direct route"
    )
    body = (
        f"{journey.end_location}\n"
        f"Total Fare: {CURRENCY_SYMBOL}{round_half_up(total_fare)}\n"
        f"Journey Time: {actual_duration} minutes\n"
        f"{transfers}"
    )
    return Notification(
        title="✅ ARRIVED AT DESTINATION",
        body=body,
        data=JourneyCompletePayload(
            journey_id=journey.id,
            total_fare=total_fare,
            actual_duration=actual_duration,
            total_legs=len(journey.legs),
        ),
    )


def build_rating_request(journey: Journey) -> Notification:
    return Notification(
        title="⭐ Rate Your Journey",
        body=f"How was your experience? Help us improve {APP_NAME}!",
        data=RatingRequestPayload(journey_id=journey.id),
    )


def build_journey_stopped(journey_id: str) -> Notification:
    return Notification(
        title="Journey Stopped",
        body="Your journey tracking has been stopped.",
        data=JourneyStoppedPayload(journey_id=journey_id),
    )
