from __future__ import annotations

import datetime as dt
import hmac
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from pydantic import ValidationError as SchemaError

from . import lifecycle
from .config import settings
from .errors import AuthenticationFailed, Conflict, InvalidState, NotFound, ValidationError
from .schemas import (
    Account,
    Car,
    CarStatus,
    DistanceMetricsUpdate,
    Driver,
    DriverCreateRequest,
    DriverJourneyView,
    DriverUpdateRequest,
    FleetData,
    Journey,
    JourneyRequestPayload,
    JourneyStatus,
    LeaveRequest,
    LeaveSubmitRequest,
    Location,
    ProfileUpdateRequest,
    User,
    UserCreateRequest,
)
from .seed import HEAD_OFFICE
from .stats import refresh_system_stats
from .store import FleetStore

logger = logging.getLogger(__name__)

UTC = dt.timezone.utc

PROTECTED_PROFILE_FIELDS = {"id", "role", "password"}

T = TypeVar("T")


def _now() -> dt.datetime:
    return dt.datetime.now(UTC)


def _replace(items: List[T], old: T, new: T) -> None:
    for index, item in enumerate(items):
        if item is old:
            items[index] = new
            return
    items.append(new)


def _require_journey(data: FleetData, journey_id: str) -> Journey:
    journey = data.find_journey(journey_id)
    if journey is None:
        raise NotFound("Journey not found")
    return journey


def _require_driver(data: FleetData, driver_id: str) -> Driver:
    driver = data.find_driver(driver_id)
    if driver is None:
        raise NotFound("Driver not found")
    return driver


def _require_user(data: FleetData, user_id: str) -> User:
    user = data.find_user(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def _email_taken(data: FleetData, email: str, exclude_id: Optional[str] = None) -> bool:
    return any(
        account.email == email and account.id != exclude_id for account in [*data.users, *data.drivers]
    )


# Snapshot


def fleet_snapshot(store: FleetStore) -> Dict[str, Any]:
    data = refresh_system_stats(store.snapshot())
    return data.sanitized()


# Journey lifecycle


def request_journey(store: FleetStore, payload: JourneyRequestPayload) -> Journey:
    with store.transaction() as data:
        journey = lifecycle.create_journey(
            data,
            payload.user_id,
            payload.destination,
            payload.start_location,
            _now(),
            cooldown_seconds=settings.booking_cooldown_seconds,
        )
    logger.info("Journey %s requested by user %s to %s", journey.id, journey.user_id, payload.destination)
    return journey


def assign_journey(store: FleetStore, journey_id: str, car_id: str, driver_id: str) -> Journey:
    with store.transaction() as data:
        journey, car, driver = lifecycle.assign_journey(data, journey_id, car_id, driver_id, _now())
    logger.info("Journey %s assigned to car %s and driver %s", journey.id, car.id, driver.id)
    return journey


def cancel_journey(store: FleetStore, journey_id: str, reason: Optional[str] = None) -> Journey:
    with store.transaction() as data:
        journey = lifecycle.cancel_journey(_require_journey(data, journey_id), _now())
    logger.info("Journey %s cancelled%s", journey.id, f": {reason}" if reason else "")
    return journey


def request_dropoff(store: FleetStore, journey_id: str, reason: Optional[str] = None) -> Journey:
    with store.transaction() as data:
        journey = lifecycle.complete_journey(
            _require_journey(data, journey_id),
            _now(),
            detail="Drop-off can only be requested for journeys in progress",
        )
    logger.info("Journey %s completed by drop-off%s", journey.id, f": {reason}" if reason else "")
    return journey


def request_route_change(
    store: FleetStore,
    journey_id: str,
    new_waypoint: str,
    reason: Optional[str] = None,
) -> Journey:
    with store.transaction() as data:
        journey = lifecycle.add_waypoint(_require_journey(data, journey_id), new_waypoint, _now(), reason)
    logger.info("Waypoint %r added to journey %s", new_waypoint, journey.id)
    return journey


def update_driver_journey_status(
    store: FleetStore,
    driver_id: str,
    journey_id: str,
    status: JourneyStatus,
) -> Journey:
    with store.transaction() as data:
        journey = next(
            (item for item in data.journeys if item.id == journey_id and item.driver_id == driver_id),
            None,
        )
        if journey is None:
            raise NotFound("Journey not found or driver not authorized")
        lifecycle.driver_update_status(journey, status, _now())
    logger.info("Driver %s set journey %s to %s", driver_id, journey_id, status)
    return journey


# Direct status overwrites


def update_car_status(store: FleetStore, car_id: str, status: CarStatus) -> Car:
    with store.transaction() as data:
        car = data.find_car(car_id)
        if car is None:
            raise NotFound("Car not found")
        previous = car.status
        car.status = status
    logger.info("Car %s status %s -> %s", car_id, previous, status)
    return car


def update_driver_leave_status(store: FleetStore, driver_id: str, on_leave: bool) -> Driver:
    with store.transaction() as data:
        driver = _require_driver(data, driver_id)
        driver.on_leave = on_leave
    logger.info("Driver %s on_leave=%s", driver_id, on_leave)
    return driver


def update_user_status(store: FleetStore, user_id: str, is_active: bool) -> User:
    with store.transaction() as data:
        user = _require_user(data, user_id)
        user.is_active = is_active
    logger.info("User %s is_active=%s", user_id, is_active)
    return user


# Users


def list_users(store: FleetStore) -> List[Dict[str, Any]]:
    return [user.public() for user in store.snapshot().users]


def create_user(store: FleetStore, payload: UserCreateRequest) -> User:
    with store.transaction() as data:
        if _email_taken(data, payload.email):
            raise Conflict("User with this email already exists")
        user = User(
            id=f"user-{uuid.uuid4().hex[:12]}",
            email=payload.email,
            password=payload.password,
            name=payload.name,
            role=payload.role,
            designation=payload.designation,
            department=payload.department,
        )
        data.users.append(user)
    logger.info("User %s created (%s)", user.id, user.email)
    return user


def update_user_location(store: FleetStore, user_id: str, location: Location) -> User:
    with store.transaction() as data:
        user = _require_user(data, user_id)
        user.current_location = location
    return user


def get_profile(store: FleetStore, identifier: str) -> Account:
    account = store.snapshot().find_account(identifier)
    if account is None:
        raise NotFound("User not found")
    return account


def update_profile(store: FleetStore, payload: ProfileUpdateRequest) -> Account:
    identifier = payload.id or payload.email
    with store.transaction() as data:
        account = data.find_account(identifier)
        if account is None:
            raise NotFound("User not found")
        if payload.email != account.email and _email_taken(data, payload.email, exclude_id=account.id):
            raise Conflict("Email already exists")
        account.name = payload.name
        account.email = payload.email
        if isinstance(account, User):
            account.designation = payload.designation
            account.department = payload.department
    logger.info("Profile of %s updated", account.id)
    return account


def email_available(store: FleetStore, email: str) -> bool:
    return store.snapshot().find_account(email) is None


# Drivers


def create_driver(store: FleetStore, payload: DriverCreateRequest) -> Driver:
    with store.transaction() as data:
        if _email_taken(data, payload.email):
            raise Conflict("Driver with this email already exists")
        if any(driver.license_no == payload.license_no for driver in data.drivers):
            raise Conflict("Driver with this license number already exists")
        total_leave = payload.total_leave or 20
        driver = Driver(
            id=f"driver-{uuid.uuid4().hex[:12]}",
            email=payload.email,
            password=payload.password,
            name=payload.name,
            dob=payload.dob,
            license_no=payload.license_no,
            license_expiry=payload.license_expiry,
            salary=payload.salary or 0,
            total_leave=total_leave,
            remaining_leave=total_leave,
            current_location=HEAD_OFFICE.model_copy(),
        )
        data.drivers.append(driver)
    logger.info("Driver %s created (%s)", driver.id, driver.license_no)
    return driver


def update_driver(store: FleetStore, payload: DriverUpdateRequest) -> Driver:
    with store.transaction() as data:
        driver = _require_driver(data, payload.id)
        if payload.email != driver.email and _email_taken(data, payload.email, exclude_id=driver.id):
            raise Conflict("Driver with this email already exists")
        if payload.license_no != driver.license_no and any(
            other.license_no == payload.license_no and other.id != driver.id for other in data.drivers
        ):
            raise Conflict("Driver with this license number already exists")
        driver.name = payload.name
        driver.email = payload.email
        driver.dob = payload.dob
        driver.license_no = payload.license_no
        driver.license_expiry = payload.license_expiry
        driver.salary = payload.salary or driver.salary
        if payload.total_leave:
            driver.total_leave = payload.total_leave
            driver.remaining_leave = payload.total_leave
    logger.info("Driver %s updated", driver.id)
    return driver


def driver_dashboard(store: FleetStore, driver_id: str) -> Dict[str, Any]:
    data = store.snapshot()
    driver = _require_driver(data, driver_id)
    journeys: List[DriverJourneyView] = []
    for journey in data.journeys:
        if journey.driver_id != driver_id:
            continue
        view = DriverJourneyView.model_validate(journey.model_dump())
        account = data.find_account(journey.user_id)
        if account is not None:
            view.user_name = account.name or "Unknown User"
            view.user_designation = getattr(account, "designation", "")
        journeys.append(view)
    return {
        "driver": driver.public(),
        "journeys": [journey.to_wire() for journey in journeys],
        "cars": [car.to_wire() for car in data.cars if driver_id in car.drivers],
        "leaveRequests": [leave.to_wire() for leave in data.leave_requests if leave.driver_id == driver_id],
    }


def update_driver_location(store: FleetStore, driver_id: str, location: Location) -> Driver:
    with store.transaction() as data:
        driver = _require_driver(data, driver_id)
        driver.current_location = location
        for car in data.cars:
            if driver_id in car.drivers:
                car.current_location = location.model_copy()
    return driver


def update_driver_profile(store: FleetStore, driver_id: str, profile_data: Dict[str, Any]) -> Driver:
    protected = PROTECTED_PROFILE_FIELDS.intersection(profile_data)
    if protected:
        raise ValidationError(f"Fields cannot be changed here: {', '.join(sorted(protected))}")
    with store.transaction() as data:
        driver = _require_driver(data, driver_id)
        try:
            updated = Driver.model_validate({**driver.to_wire(), **profile_data})
        except SchemaError as exc:
            raise ValidationError(f"Invalid profile data: {exc.errors()[0]['msg']}") from exc
        if updated.email != driver.email and _email_taken(data, updated.email, exclude_id=driver.id):
            raise Conflict("Driver with this email already exists")
        if updated.license_no != driver.license_no and any(
            other.license_no == updated.license_no and other.id != driver.id for other in data.drivers
        ):
            raise Conflict("Driver with this license number already exists")
        _replace(data.drivers, driver, updated)
    logger.info("Driver %s profile updated (%s)", driver_id, ", ".join(sorted(profile_data)))
    return updated


def update_driver_distance(store: FleetStore, payload: DistanceMetricsUpdate) -> Driver:
    changes = payload.model_dump(include={"day", "month", "year"}, exclude_none=True)
    with store.transaction() as data:
        driver = _require_driver(data, payload.driver_id)
        driver.total_travelled_distance = driver.total_travelled_distance.model_copy(update=changes)
    return driver


# Leave requests


def submit_leave_request(store: FleetStore, payload: LeaveSubmitRequest) -> LeaveRequest:
    if payload.start_date >= payload.end_date:
        raise ValidationError("End date must be after start date")
    with store.transaction() as data:
        _require_driver(data, payload.driver_id)
        leave = LeaveRequest(
            id=f"leave-{uuid.uuid4().hex[:12]}",
            driver_id=payload.driver_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            reason=payload.reason,
            status="pending",
            submitted_at=_now(),
        )
        data.leave_requests.append(leave)
    logger.info("Leave request %s submitted by driver %s", leave.id, leave.driver_id)
    return leave


def review_leave_request(store: FleetStore, leave_request_id: str, status: str) -> LeaveRequest:
    with store.transaction() as data:
        leave = data.find_leave_request(leave_request_id)
        if leave is None:
            raise NotFound("Leave request not found")
        if leave.status != "pending":
            raise InvalidState(f"Leave request is already {leave.status}")
        leave.status = status
    logger.info("Leave request %s %s", leave_request_id, status)
    return leave


# Authentication


def _login_candidates(data: FleetData) -> Sequence[Account]:
    accounts: List[Account] = list(data.users)
    known = {account.id for account in accounts}
    accounts.extend(driver for driver in data.drivers if driver.id not in known)
    return accounts


def authenticate(store: FleetStore, email: str, password: str) -> Account:
    data = store.snapshot()
    for account in _login_candidates(data):
        if account.email == email and hmac.compare_digest(account.password.encode(), password.encode()):
            logger.info("User logged in: %s (%s)", account.name, getattr(account, "role", "user"))
            return account
    logger.warning("Failed login attempt for %s", email)
    raise AuthenticationFailed()


def auth_status(store: FleetStore) -> Dict[str, Any]:
    data = refresh_system_stats(store.snapshot())
    return {
        "message": "Auth service is running",
        "stats": {
            "totalUsers": len(_login_candidates(data)),
            "regularUsers": sum(1 for user in data.users if user.role == "user"),
            "admins": sum(1 for user in data.users if user.role == "admin"),
            "drivers": len(data.drivers),
            "availableRoles": ["admin", "user", "driver"],
        },
        "system": data.system_stats.to_wire(),
    }


# Dataset administration


def apply_data_action(store: FleetStore, action: str, payload: Optional[Dict[str, Any]] = None) -> FleetData:
    if action == "reset-data":
        logger.warning("Resetting fleet dataset to initial data")
        return store.reset()
    if action == "update-data":
        try:
            data = FleetData.model_validate(payload or {})
        except SchemaError as exc:
            raise ValidationError(f"Invalid fleet data: {exc.errors()[0]['msg']}") from exc
        logger.warning("Replacing fleet dataset (%d journeys)", len(data.journeys))
        return store.replace(data)
    raise ValidationError("Unknown action")
