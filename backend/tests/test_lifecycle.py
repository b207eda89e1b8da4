from __future__ import annotations

import datetime as dt

import pytest

from fleetpro import lifecycle
from fleetpro.errors import Conflict, CooldownActive, InvalidState, NotFound, ResourceUnavailable
from fleetpro.schemas import Location

NOW = dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.timezone.utc)


def _requested(data, user_id="u1"):
    return lifecycle.create_journey(data, user_id, "Airport", Location(address="Head Office"), NOW)


def test_transition_table_only_moves_forward() -> None:
    assert lifecycle.can_transition("requested", "in-progress")
    assert lifecycle.can_transition("requested", "cancelled")
    assert lifecycle.can_transition("in-progress", "completed")
    assert lifecycle.can_transition("in-progress", "cancelled")
    assert not lifecycle.can_transition("requested", "completed")
    assert not lifecycle.can_transition("in-progress", "requested")
    for terminal in ("completed", "cancelled"):
        for target in ("requested", "in-progress", "completed", "cancelled"):
            assert not lifecycle.can_transition(terminal, target)


def test_create_journey_starts_requested_without_assignment(fleet) -> None:
    data = fleet
    journey = _requested(data)
    assert journey.status == "requested"
    assert journey.car_id == ""
    assert journey.driver_id == ""
    assert journey.user_name == "Una User"
    assert journey.end_location.address == "Airport"
    assert journey.end_location.lat == 0
    assert journey.end_time is None
    assert journey in data.journeys


def test_create_journey_rejects_unknown_user(fleet) -> None:
    with pytest.raises(NotFound):
        _requested(fleet, user_id="ghost")


def test_second_pending_request_conflicts(fleet) -> None:
    data = fleet
    _requested(data)
    with pytest.raises(Conflict):
        _requested(data)
    assert sum(1 for j in data.journeys if j.user_id == "u1" and j.status == "requested") == 1


def test_cooldown_counts_from_latest_request(fleet) -> None:
    data = fleet
    journey = _requested(data)
    lifecycle.cancel_journey(journey, NOW)
    later = NOW + dt.timedelta(seconds=100)
    assert lifecycle.cooldown_remaining(data, "u1", later, 300) == 200
    with pytest.raises(CooldownActive) as excinfo:
        lifecycle.create_journey(data, "u1", "Airport", Location(), later, cooldown_seconds=300)
    assert excinfo.value.status_code == 429
    assert excinfo.value.remaining_seconds == 200

    much_later = NOW + dt.timedelta(seconds=301)
    assert lifecycle.cooldown_remaining(data, "u1", much_later, 300) == 0
    lifecycle.create_journey(data, "u1", "Airport", Location(), much_later, cooldown_seconds=300)


def test_cooldown_disabled_with_zero(fleet) -> None:
    data = fleet
    _requested(data)
    assert lifecycle.cooldown_remaining(data, "u1", NOW, 0) == 0


def test_assign_moves_journey_and_car_together(fleet) -> None:
    data = fleet
    journey = _requested(data)
    assigned, car, driver = lifecycle.assign_journey(data, journey.id, "car1", "driver1", NOW)
    assert assigned.status == "in-progress"
    assert assigned.car_id == "car1"
    assert assigned.driver_id == "driver1"
    assert assigned.driver_name == "Dana Driver"
    assert assigned.car_model == "Toyota Axio"
    assert car.status == "in-use"
    assert data.find_car("car1").status == "in-use"


@pytest.mark.parametrize(
    "car_id, driver_id, error",
    [
        ("car2", "driver1", ResourceUnavailable),
        ("car1", "driver2", ResourceUnavailable),
        ("nope", "driver1", NotFound),
        ("car1", "nope", NotFound),
    ],
)
def test_failed_assignment_leaves_state_untouched(fleet, car_id, driver_id, error) -> None:
    data = fleet
    journey = _requested(data)
    before = data.model_dump()
    with pytest.raises(error):
        lifecycle.assign_journey(data, journey.id, car_id, driver_id, NOW)
    assert data.model_dump() == before
    assert journey.status == "requested"


def test_assign_requires_requested_journey(fleet) -> None:
    data = fleet
    with pytest.raises(InvalidState):
        lifecycle.assign_journey(data, "j-done", "car1", "driver1", NOW)
    with pytest.raises(NotFound):
        lifecycle.assign_journey(data, "missing", "car1", "driver1", NOW)


def test_cancel_sets_end_time_and_is_terminal(fleet) -> None:
    data = fleet
    journey = _requested(data)
    lifecycle.cancel_journey(journey, NOW)
    assert journey.status == "cancelled"
    assert journey.end_time == NOW
    with pytest.raises(InvalidState, match="already cancelled"):
        lifecycle.cancel_journey(journey, NOW)
    with pytest.raises(InvalidState):
        lifecycle.complete_journey(journey, NOW)


def test_completed_journey_cannot_be_cancelled(fleet) -> None:
    data = fleet
    with pytest.raises(InvalidState, match="Cannot cancel a completed journey"):
        lifecycle.cancel_journey(data.find_journey("j-done"), NOW)


def test_complete_requires_in_progress(fleet) -> None:
    data = fleet
    journey = _requested(data)
    with pytest.raises(InvalidState):
        lifecycle.complete_journey(journey, NOW)
    lifecycle.assign_journey(data, journey.id, "car1", "driver1", NOW)
    lifecycle.complete_journey(journey, NOW)
    assert journey.status == "completed"
    assert journey.end_time == NOW
    # completion does not release the car
    assert data.find_car("car1").status == "in-use"


def test_add_waypoint_records_route_change(fleet) -> None:
    data = fleet
    journey = _requested(data)
    with pytest.raises(InvalidState):
        lifecycle.add_waypoint(journey, "Bank", NOW)
    lifecycle.assign_journey(data, journey.id, "car1", "driver1", NOW)
    lifecycle.add_waypoint(journey, "Bank", NOW, reason="Cash pickup")
    assert journey.status == "in-progress"
    assert [w.address for w in journey.waypoints] == ["Bank"]
    change = journey.route_changes[-1]
    assert change.type == "waypoint_added"
    assert change.waypoint.address == "Bank"
    assert change.reason == "Cash pickup"
    assert change.timestamp == NOW


def test_driver_cannot_reopen_or_repeat_status(fleet) -> None:
    data = fleet
    journey = _requested(data)
    lifecycle.assign_journey(data, journey.id, "car1", "driver1", NOW)
    with pytest.raises(InvalidState, match="already in-progress"):
        lifecycle.driver_update_status(journey, "in-progress", NOW)
    lifecycle.driver_update_status(journey, "completed", NOW)
    with pytest.raises(InvalidState):
        lifecycle.driver_update_status(journey, "requested", NOW)
