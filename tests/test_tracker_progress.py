import asyncio

import pytest

from app.core.data_types import IntermediateStop
from app.processing.journey.tracker import JourneyTracker

from conftest import (
    DESTINATION,
    FIXED_NOW,
    TRANSFER,
    FailOnceSink,
    in_progress,
    make_one_leg_journey,
    make_two_leg_journey,
    point_at,
    wait_for,
)


async def step(tracker, repository, journey_id, point):
    """Runs one progress evaluation on a freshly loaded journey."""
    journey = await repository.get_journey(journey_id)
    await tracker.process_progress(journey, journey.user_id, point)
    return await repository.get_journey(journey_id)


@pytest.fixture
def two_leg(repository):
    repository.add_journey(in_progress(make_two_leg_journey()))
    return "journey-2"


@pytest.fixture
def one_leg(repository):
    repository.add_journey(in_progress(make_one_leg_journey()))
    return "journey-1"


async def test_outside_transfer_alert_range_sends_nothing(tracker, repository, sink, two_leg):
    journey = await step(tracker, repository, two_leg, point_at(TRANSFER, 2050))
    assert sink.sent == []
    assert journey.legs[0].transfer_alert_sent is False


async def test_transfer_alert_is_sent_once(tracker, repository, sink, two_leg):
    journey = await step(tracker, repository, two_leg, point_at(TRANSFER, 1950))
    assert sink.types() == ["transfer_alert"]
    assert journey.legs[0].transfer_alert_sent is True

    alert = sink.of_type("transfer_alert")[0]
    assert alert.to_data() == {
        "type": "transfer_alert",
        "journeyId": two_leg,
        "transferLocation": TRANSFER.name,
        "eta": "8",
        "nextVehicle": "taxi",
    }
    assert alert.body.startswith(f"Drop at {TRANSFER.name} in 8 minutes")

    for distance in (1800, 1200, 550):
        await step(tracker, repository, two_leg, point_at(TRANSFER, distance))
    assert sink.types() == ["transfer_alert"]


async def test_imminent_without_prior_alert(tracker, repository, sink, two_leg):
    journey = await step(tracker, repository, two_leg, point_at(TRANSFER, 450))
    assert sink.types() == ["transfer_imminent"]
    assert journey.legs[0].transfer_imminent_sent is True
    assert journey.legs[0].transfer_alert_sent is False
    assert sink.of_type("transfer_imminent")[0].to_data()["priority"] == "high"


async def test_transfer_sequence(tracker, repository, sink, two_leg, clock):
    for distance in (2500, 1800, 400, 50):
        journey = await step(tracker, repository, two_leg, point_at(TRANSFER, distance))

    assert sink.types() == ["transfer_alert", "transfer_imminent", "transfer_complete"]

    first, second = journey.legs
    assert first.status == "completed"
    assert first.actual_end_time == FIXED_NOW
    assert second.status == "in_progress"
    assert second.actual_start_time == FIXED_NOW

    complete = sink.of_type("transfer_complete")[0]
    assert complete.to_data()["currentLegId"] == "leg-1"
    assert complete.to_data()["nextLegId"] == "leg-2"
    assert "Now board: Taxi to Mile 1 Diobu" in complete.body
    assert "Remaining: 30 mins" in complete.body


async def test_flags_are_never_reset(tracker, repository, two_leg):
    await step(tracker, repository, two_leg, point_at(TRANSFER, 1500))
    await step(tracker, repository, two_leg, point_at(TRANSFER, 300))
    journey = await step(tracker, repository, two_leg, point_at(TRANSFER, 2500))

    leg = journey.legs[0]
    assert leg.transfer_alert_sent is True
    assert leg.transfer_imminent_sent is True


async def test_one_leg_in_progress_after_transfer(tracker, repository, two_leg):
    for distance in (1500, 300, 50, 50):
        journey = await step(tracker, repository, two_leg, point_at(TRANSFER, distance))
        assert sum(1 for leg in journey.legs if leg.status == "in_progress") <= 1

    assert [leg.status for leg in journey.legs] == ["completed", "in_progress"]


async def test_approaching_stop_repeats_every_cycle(tracker, repository, sink, one_leg):
    journey = await repository.get_journey(one_leg)
    stop = point_at(TRANSFER, 1000, azimuth=0)
    journey.legs[0].segment.intermediate_stops = [
        IntermediateStop(name="Rumuokoro Market", order=1, latitude=stop.y, longitude=stop.x)
    ]
    repository.add_journey(journey)

    user = point_at(TRANSFER, 800, azimuth=0)
    await step(tracker, repository, one_leg, user)
    await step(tracker, repository, one_leg, user)

    assert sink.types() == ["approaching_stop", "approaching_stop"]
    notification = sink.sent[0][1]
    assert notification.to_data() == {
        "type": "approaching_stop",
        "journeyId": one_leg,
        "stopName": "Rumuokoro Market",
        "eta": "1",
    }
    assert notification.body == "Rumuokoro Market\nArriving in 1 minute"


async def test_stop_in_scan_range_but_not_close_enough(tracker, repository, sink, one_leg):
    journey = await repository.get_journey(one_leg)
    stop = point_at(TRANSFER, 1000, azimuth=0)
    journey.legs[0].segment.intermediate_stops = [
        IntermediateStop(name="Rumuokoro Market", order=1, latitude=stop.y, longitude=stop.x)
    ]
    repository.add_journey(journey)

    await step(tracker, repository, one_leg, point_at(TRANSFER, 550, azimuth=0))
    assert sink.sent == []


async def test_destination_alert_is_sent_once(tracker, repository, sink, one_leg):
    journey = await step(tracker, repository, one_leg, point_at(DESTINATION, 950))
    assert sink.types() == ["destination_alert"]
    assert journey.legs[0].destination_alert_sent is True

    alert = sink.of_type("destination_alert")[0]
    assert alert.to_data()["eta"] == "4"
    assert alert.body == f"Drop at {DESTINATION.name} in 4 minutes\nLook for: Major landmarks"

    await step(tracker, repository, one_leg, point_at(DESTINATION, 500))
    assert sink.types() == ["destination_alert"]


async def test_no_transfer_alerts_on_last_leg(tracker, repository, sink, one_leg):
    await step(tracker, repository, one_leg, point_at(DESTINATION, 1500))
    assert sink.sent == []


async def test_destination_arrival_completes_journey(tracker, repository, sink, one_leg):
    journey = await step(tracker, repository, one_leg, DESTINATION.point)

    assert journey.status == "completed"
    assert journey.actual_end_time == FIXED_NOW
    assert journey.legs[0].status == "completed"
    assert journey.legs[0].actual_end_time == FIXED_NOW

    assert sink.types()[:2] == ["destination_alert", "journey_complete"]
    complete = sink.of_type("journey_complete")[0]
    assert complete.to_data() == {
        "type": "journey_complete",
        "journeyId": one_leg,
        "totalFare": "150.0",
        "actualDuration": "30",
        "totalLegs": "1",
    }
    assert "Total Fare: ₦150" in complete.body
    assert "Journey Time: 30 minutes" in complete.body
    assert complete.body.endswith("Direct route")

    await wait_for(lambda: "rating_request" in sink.types())
    assert sink.types().count("journey_complete") == 1
    assert sink.types().count("rating_request") == 1
    assert sink.of_type("rating_request")[0].to_data()["action"] == "open_rating"


async def test_arrival_on_first_leg_completes_every_leg(tracker, repository, sink, two_leg):
    journey = await step(tracker, repository, two_leg, DESTINATION.point)
    assert journey.status == "completed"
    assert [leg.status for leg in journey.legs] == ["completed", "completed"]
    assert "Transfers: 1" in sink.of_type("journey_complete")[0].body


async def test_rating_request_waits_for_delay(repository, locations, sink, clock, one_leg):
    delayed = JourneyTracker(
        repository, locations, sink, poll_interval=0.01, rating_delay=0.2,
        collaborator_timeout=1.0, clock=clock,
    )
    try:
        await step(delayed, repository, one_leg, DESTINATION.point)
        await asyncio.sleep(0.05)
        assert "rating_request" not in sink.types()

        await wait_for(lambda: "rating_request" in sink.types())
        assert sink.types()[-1] == "rating_request"
    finally:
        await delayed.shutdown()


async def test_no_current_leg_is_a_no_op(tracker, repository, sink):
    repository.add_journey(make_two_leg_journey(status="in_progress"))
    journey = await step(tracker, repository, "journey-2", DESTINATION.point)
    assert sink.sent == []
    assert journey.status == "in_progress"


@pytest.fixture
def fail_once_tracker(repository, locations, clock):
    def build(failing_type):
        sink = FailOnceSink(failing_type)
        tracker = JourneyTracker(
            repository, locations, sink, poll_interval=0.01, rating_delay=0,
            collaborator_timeout=1.0, clock=clock,
        )
        return tracker, sink
    return build


async def test_failed_transfer_complete_is_retried(fail_once_tracker, repository, two_leg):
    tracker, sink = fail_once_tracker("transfer_complete")
    try:
        with pytest.raises(ConnectionError):
            await step(tracker, repository, two_leg, point_at(TRANSFER, 50))
        journey = await repository.get_journey(two_leg)
        assert [leg.status for leg in journey.legs] == ["in_progress", "pending"]

        journey = await step(tracker, repository, two_leg, point_at(TRANSFER, 50))
        assert [leg.status for leg in journey.legs] == ["completed", "in_progress"]
        assert sink.types() == ["transfer_imminent", "transfer_complete"]
    finally:
        await tracker.shutdown()


async def test_failed_journey_complete_is_retried(fail_once_tracker, repository, one_leg):
    tracker, sink = fail_once_tracker("journey_complete")
    try:
        with pytest.raises(ConnectionError):
            await step(tracker, repository, one_leg, DESTINATION.point)
        journey = await repository.get_journey(one_leg)
        assert journey.status == "in_progress"
        assert journey.legs[0].status == "in_progress"

        journey = await step(tracker, repository, one_leg, DESTINATION.point)
        assert journey.status == "completed"
        await wait_for(lambda: "rating_request" in sink.types())
        assert sink.types() == ["destination_alert", "journey_complete", "rating_request"]
    finally:
        await tracker.shutdown()
