from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from typing_extensions import Annotated, Literal

from fastapi.encoders import jsonable_encoder
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    StringConstraints,
    model_validator,
)
from pydantic.alias_generators import to_camel


UserRole = Literal["user", "admin"]
JourneyStatus = Literal["requested", "in-progress", "completed", "cancelled"]
CarStatus = Literal["available", "in-use", "servicing", "cleaning"]
LeaveStatus = Literal["pending", "approved", "rejected"]
RouteChangeType = Literal["waypoint_added", "waypoint_removed", "destination_changed"]


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _serialize_datetime(value: dt.datetime) -> str:
    return _as_utc(value).isoformat()


UtcDatetime = Annotated[
    dt.datetime,
    AfterValidator(_as_utc),
    PlainSerializer(_serialize_datetime, when_used="json"),
]
RequiredStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class FleetModel(BaseModel):
    """Base for everything stored in or exchanged with the fleet datastore.

    Attributes are snake_case in Python and camelCase on the wire and in
    ``demoData.json``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, **kwargs: Any) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class Location(FleetModel):
    lat: float = 0.0
    lng: float = 0.0
    address: str = ""


class DistanceMetrics(FleetModel):
    day: float = 0.0
    month: float = 0.0
    year: float = 0.0


class Account(FleetModel):
    id: str
    email: str
    password: str = ""
    name: str
    is_active: bool = True

    def public(self) -> Dict[str, Any]:
        """Wire representation without the password."""
        return self.to_wire(exclude={"password"})


class User(Account):
    role: UserRole = "user"
    designation: str = ""
    department: str = ""
    current_location: Optional[Location] = None
    cars_used: List[str] = Field(default_factory=list)
    total_distance: DistanceMetrics = Field(default_factory=DistanceMetrics)


class Driver(Account):
    role: Literal["driver"] = "driver"
    dob: str = ""
    license_no: str = ""
    license_expiry: str = ""
    on_leave: bool = False
    salary: float = 0
    total_leave: int = 20
    remaining_leave: int = 20
    current_location: Location = Field(default_factory=Location)
    total_travelled_distance: DistanceMetrics = Field(default_factory=DistanceMetrics)


class Car(FleetModel):
    id: str
    model: str
    reg_no: str = ""
    drivers: List[str] = Field(default_factory=list)
    users: List[str] = Field(default_factory=list)
    status: CarStatus = "available"
    is_clean: bool = True
    needs_servicing: bool = False
    total_distance_travelled: DistanceMetrics = Field(default_factory=DistanceMetrics)
    current_location: Location = Field(default_factory=Location)


class RouteChange(FleetModel):
    type: RouteChangeType
    timestamp: UtcDatetime
    waypoint: Optional[Location] = None
    reason: Optional[str] = None


class Journey(FleetModel):
    id: str
    car_id: str = ""
    driver_id: str = ""
    user_id: str
    user_name: str = ""
    driver_name: str = ""
    car_model: str = ""
    start_location: Location
    end_location: Location
    waypoints: List[Location] = Field(default_factory=list)
    status: JourneyStatus = "requested"
    start_time: UtcDatetime
    end_time: Optional[UtcDatetime] = None
    distance: float = 0
    rating: Optional[float] = None
    route_changes: List[RouteChange] = Field(default_factory=list)
    estimated_duration: float = 0


class LeaveRequest(FleetModel):
    id: str
    driver_id: str
    start_date: dt.date
    end_date: dt.date
    reason: str
    status: LeaveStatus = "pending"
    submitted_at: UtcDatetime


class SystemStats(FleetModel):
    total_users: int = 0
    total_drivers: int = 0
    total_cars: int = 0
    active_journeys: int = 0
    pending_requests: int = 0
    available_cars: int = 0
    drivers_on_leave: int = 0
    monthly_distance: float = 0


class FleetData(FleetModel):
    """The whole datastore: every fleet entity plus the derived stats."""

    users: List[User] = Field(default_factory=list)
    drivers: List[Driver] = Field(default_factory=list)
    cars: List[Car] = Field(default_factory=list)
    locations: List[Location] = Field(default_factory=list)
    journeys: List[Journey] = Field(default_factory=list)
    leave_requests: List[LeaveRequest] = Field(default_factory=list)
    system_stats: SystemStats = Field(default_factory=SystemStats)

    def find_user(self, user_id: str) -> Optional[User]:
        return next((user for user in self.users if user.id == user_id), None)

    def find_driver(self, driver_id: str) -> Optional[Driver]:
        return next((driver for driver in self.drivers if driver.id == driver_id), None)

    def find_car(self, car_id: str) -> Optional[Car]:
        return next((car for car in self.cars if car.id == car_id), None)

    def find_journey(self, journey_id: str) -> Optional[Journey]:
        return next((journey for journey in self.journeys if journey.id == journey_id), None)

    def find_leave_request(self, request_id: str) -> Optional[LeaveRequest]:
        return next((leave for leave in self.leave_requests if leave.id == request_id), None)

    def find_account(self, identifier: str) -> Optional[Account]:
        """Look up a user, then a driver, by id or email."""
        for account in [*self.users, *self.drivers]:
            if account.id == identifier or account.email == identifier:
                return account
        return None

    def sanitized(self) -> Dict[str, Any]:
        payload = self.to_wire(exclude={"users", "drivers"})
        payload["users"] = [user.public() for user in self.users]
        payload["drivers"] = [driver.public() for driver in self.drivers]
        return payload


class DriverJourneyView(Journey):
    user_designation: str = ""


# Request payloads


class JourneyRequestPayload(FleetModel):
    user_id: RequiredStr
    destination: RequiredStr
    start_location: Location
    notes: Optional[str] = None


class AssignJourneyRequest(FleetModel):
    journey_id: RequiredStr
    car_id: RequiredStr
    driver_id: RequiredStr


class JourneyActionRequest(FleetModel):
    journey_id: RequiredStr
    reason: Optional[str] = None


class RouteChangeRequest(FleetModel):
    journey_id: RequiredStr
    new_waypoint: RequiredStr
    reason: Optional[str] = None


class DriverJourneyStatusRequest(FleetModel):
    driver_id: RequiredStr
    journey_id: RequiredStr
    status: JourneyStatus


class CarStatusUpdate(FleetModel):
    car_id: RequiredStr
    status: CarStatus


class DriverStatusUpdate(FleetModel):
    driver_id: RequiredStr
    on_leave: bool


class UserStatusUpdate(FleetModel):
    user_id: RequiredStr
    is_active: bool


class UserCreateRequest(FleetModel):
    name: RequiredStr
    email: RequiredStr
    password: RequiredStr
    designation: RequiredStr
    department: RequiredStr
    role: UserRole = "user"


class DriverCreateRequest(FleetModel):
    name: RequiredStr
    email: RequiredStr
    password: RequiredStr
    dob: RequiredStr
    license_no: RequiredStr
    license_expiry: RequiredStr
    salary: Optional[float] = None
    total_leave: Optional[int] = None


class DriverUpdateRequest(FleetModel):
    id: RequiredStr
    name: RequiredStr
    email: RequiredStr
    dob: RequiredStr
    license_no: RequiredStr
    license_expiry: RequiredStr
    salary: Optional[float] = None
    total_leave: Optional[int] = None


class DriverLocationUpdate(FleetModel):
    driver_id: RequiredStr
    location: Location


class UserLocationUpdate(FleetModel):
    user_id: RequiredStr
    location: Location


class DriverProfileUpdate(FleetModel):
    driver_id: RequiredStr
    profile_data: Dict[str, Any]


class DistanceMetricsUpdate(FleetModel):
    driver_id: RequiredStr
    day: Optional[float] = None
    month: Optional[float] = None
    year: Optional[float] = None


class LeaveSubmitRequest(FleetModel):
    driver_id: RequiredStr
    start_date: dt.date
    end_date: dt.date
    reason: RequiredStr


class LeaveReviewRequest(FleetModel):
    leave_request_id: RequiredStr
    status: Literal["approved", "rejected"]


class ProfileUpdateRequest(FleetModel):
    id: Optional[str] = None
    email: RequiredStr
    name: RequiredStr
    designation: RequiredStr
    department: RequiredStr


class EmailCheckRequest(FleetModel):
    email: RequiredStr


class LoginRequest(FleetModel):
    email: RequiredStr
    password: RequiredStr


class DataActionRequest(FleetModel):
    action: RequiredStr
    data: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _require_data_for_update(self) -> "DataActionRequest":
        if self.action == "update-data" and not self.data:
            raise ValueError("No data provided for update")
        return self


def envelope(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Build the ``{data?, error?, message?}`` body every endpoint answers with."""
    body: Dict[str, Any] = {}
    if data is not None:
        body["data"] = jsonable_encoder(data, by_alias=True)
    if message is not None:
        body["message"] = message
    return body
