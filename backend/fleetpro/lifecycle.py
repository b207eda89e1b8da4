"""Journey lifecycle state machine and car/driver assignment.

A journey moves ``requested -> in-progress -> completed`` with ``cancelled``
reachable from any non-terminal state. The functions here mutate the loaded
``FleetData`` object graph in place; persisting it is the caller's job, so a
raised error leaves the stored data untouched.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import uuid
from typing import Dict, FrozenSet, Optional, Tuple

from .errors import Conflict, CooldownActive, InvalidState, NotFound, ResourceUnavailable
from .schemas import Car, Driver, FleetData, Journey, JourneyStatus, Location, RouteChange

logger = logging.getLogger(__name__)


TERMINAL_STATES: FrozenSet[str] = frozenset({"completed", "cancelled"})

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "requested": frozenset({"in-progress", "cancelled"}),
    "in-progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(journey: Journey, target: JourneyStatus, now: dt.datetime, detail: Optional[str] = None) -> Journey:
    current = journey.status
    if not can_transition(current, target):
        if detail is None:
            if current == target:
                detail = f"Journey is already {current}"
            else:
                detail = f"Cannot change journey status from {current} to {target}"
        logger.warning("Rejected transition of journey %s: %s -> %s", journey.id, current, target)
        raise InvalidState(detail)
    journey.status = target
    if target in TERMINAL_STATES:
        journey.end_time = now
    return journey


def new_journey_id() -> str:
    return f"journey-{uuid.uuid4().hex[:12]}"


def cooldown_remaining(data: FleetData, user_id: str, now: dt.datetime, cooldown_seconds: int) -> int:
    """Seconds the user still has to wait before requesting another journey."""
    if cooldown_seconds <= 0:
        return 0
    own = [journey.start_time for journey in data.journeys if journey.user_id == user_id]
    if not own:
        return 0
    elapsed = (now - max(own)).total_seconds()
    return min(cooldown_seconds, max(0, math.ceil(cooldown_seconds - elapsed)))


def create_journey(
    data: FleetData,
    user_id: str,
    destination: str,
    start_location: Location,
    now: dt.datetime,
    cooldown_seconds: int = 0,
) -> Journey:
    user = data.find_user(user_id)
    if user is None:
        raise NotFound("User not found")
    if any(journey.user_id == user_id and journey.status == "requested" for journey in data.journeys):
        raise Conflict("You already have a pending journey request")
    remaining = cooldown_remaining(data, user_id, now, cooldown_seconds)
    if remaining:
        raise CooldownActive(remaining)
    journey = Journey(
        id=new_journey_id(),
        user_id=user.id,
        user_name=user.name,
        start_location=start_location,
        end_location=Location(lat=0, lng=0, address=destination),
        status="requested",
        start_time=now,
    )
    data.journeys.append(journey)
    return journey


def assign_journey(
    data: FleetData,
    journey_id: str,
    car_id: str,
    driver_id: str,
    now: dt.datetime,
) -> Tuple[Journey, Car, Driver]:
    """Bind a car and a driver to a requested journey.

    Every precondition is checked before anything is mutated, so a failure
    leaves journey, car and driver exactly as they were.
    """
    journey = data.find_journey(journey_id)
    if journey is None:
        raise NotFound("Journey not found")
    if journey.status != "requested":
        raise InvalidState("Can only assign car and driver to requested journeys")
    car = data.find_car(car_id)
    if car is None:
        raise NotFound("Car not found")
    if car.status != "available":
        raise ResourceUnavailable("Car is not available")
    driver = data.find_driver(driver_id)
    if driver is None:
        raise NotFound("Driver not found")
    if driver.on_leave:
        raise ResourceUnavailable("Driver is on leave")

    transition(journey, "in-progress", now)
    journey.car_id = car.id
    journey.driver_id = driver.id
    journey.driver_name = driver.name
    journey.car_model = car.model
    car.status = "in-use"
    return journey, car, driver


def cancel_journey(journey: Journey, now: dt.datetime) -> Journey:
    if journey.status == "completed":
        return transition(journey, "cancelled", now, "Cannot cancel a completed journey")
    if journey.status == "cancelled":
        return transition(journey, "cancelled", now, "Journey is already cancelled")
    return transition(journey, "cancelled", now)


def complete_journey(
    journey: Journey,
    now: dt.datetime,
    detail: str = "Only journeys in progress can be completed",
) -> Journey:
    if journey.status != "in-progress":
        return transition(journey, "completed", now, detail)
    return transition(journey, "completed", now)


def add_waypoint(journey: Journey, address: str, now: dt.datetime, reason: Optional[str] = None) -> Journey:
    if journey.status != "in-progress":
        logger.warning("Rejected route change for journey %s in status %s", journey.id, journey.status)
        raise InvalidState("Route changes can only be requested for journeys in progress")
    waypoint = Location(lat=0, lng=0, address=address)
    journey.waypoints.append(waypoint)
    journey.route_changes.append(
        RouteChange(type="waypoint_added", timestamp=now, waypoint=waypoint, reason=reason)
    )
    return journey


def driver_update_status(journey: Journey, target: JourneyStatus, now: dt.datetime) -> Journey:
    if target == "completed":
        return complete_journey(journey, now)
    if target == "cancelled":
        return cancel_journey(journey, now)
    return transition(journey, target, now)
