from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import services
from .config import settings
from .errors import ValidationError
from .logging_config import configure_logging
from .middleware import RequestLogMiddleware
from .schemas import (
    AssignJourneyRequest,
    CarStatusUpdate,
    DataActionRequest,
    DistanceMetricsUpdate,
    DriverCreateRequest,
    DriverJourneyStatusRequest,
    DriverLocationUpdate,
    DriverProfileUpdate,
    DriverStatusUpdate,
    DriverUpdateRequest,
    EmailCheckRequest,
    JourneyActionRequest,
    JourneyRequestPayload,
    LeaveReviewRequest,
    LeaveSubmitRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RouteChangeRequest,
    UserCreateRequest,
    UserLocationUpdate,
    UserStatusUpdate,
    envelope,
)
from .store import FleetStore, build_store, get_store

logger = logging.getLogger(__name__)

configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name)
app.state.store = build_store(settings)
app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _describe_validation_errors(errors: list[Dict[str, Any]]) -> str:
    if any(error.get("type") == "json_invalid" for error in errors):
        return "Invalid JSON in request body"
    fields: list[str] = []
    for error in errors:
        name = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        if name and name not in fields:
            fields.append(name)
    if not fields:
        first = errors[0] if errors else {}
        reason = first.get("ctx", {}).get("error")
        return str(reason or first.get("msg", "Invalid request body"))
    return f"Missing or invalid fields: {', '.join(fields)}"


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = _describe_validation_errors(exc.errors())
    logger.info("Rejected %s %s: %s", request.method, request.url.path, detail)
    return JSONResponse({"error": detail}, status_code=status.HTTP_400_BAD_REQUEST)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/data")
def get_data(store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    return envelope(services.fleet_snapshot(store))


@app.post("/api/data")
def post_data_action(payload: DataActionRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    services.apply_data_action(store, payload.action, payload.data)
    return envelope({"updated": True}, "Data updated successfully")


# Authentication


@app.post("/api/auth/login")
def login(payload: LoginRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    account = services.authenticate(store, payload.email, payload.password)
    return envelope(account.public(), "Login successful")


@app.get("/api/auth/login")
def login_status(store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    return services.auth_status(store)


# Journeys


@app.post("/api/journeys/request", status_code=status.HTTP_201_CREATED)
def journey_request(payload: JourneyRequestPayload, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    journey = services.request_journey(store, payload)
    return envelope(journey, "Journey request submitted successfully. Waiting for admin allocation.")


@app.post("/api/admin/journeys/assign")
@app.put("/api/journeys/assign")
def journey_assign(payload: AssignJourneyRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    journey = services.assign_journey(store, payload.journey_id, payload.car_id, payload.driver_id)
    return envelope(journey, "Car and driver assigned successfully")


@app.post("/api/journeys/cancel")
def journey_cancel(payload: JourneyActionRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    journey = services.cancel_journey(store, payload.journey_id, payload.reason)
    message = f"Journey cancelled: {payload.reason}" if payload.reason else "Journey cancelled successfully"
    return envelope(journey, message)


@app.post("/api/journeys/dropoff")
def journey_dropoff(payload: JourneyActionRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    journey = services.request_dropoff(store, payload.journey_id, payload.reason)
    message = (
        f"Drop-off requested: {payload.reason}"
        if payload.reason
        else "Drop-off request sent to driver successfully"
    )
    return envelope(journey, message)


@app.post("/api/journeys/route-change")
def journey_route_change(payload: RouteChangeRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    journey = services.request_route_change(store, payload.journey_id, payload.new_waypoint, payload.reason)
    return envelope(journey, "Route change request sent to driver successfully")


@app.post("/api/drivers/journey/status")
def driver_journey_status(
    payload: DriverJourneyStatusRequest,
    store: FleetStore = Depends(get_store),
) -> Dict[str, Any]:
    journey = services.update_driver_journey_status(store, payload.driver_id, payload.journey_id, payload.status)
    return envelope(journey, f"Journey {payload.status} successfully")


# Status overwrites


@app.put("/api/admin/cars/status")
@app.put("/api/cars/status")
def car_status(payload: CarStatusUpdate, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    car = services.update_car_status(store, payload.car_id, payload.status)
    return envelope(car, f"Car status updated to {payload.status}")


@app.put("/api/admin/drivers/status")
@app.put("/api/drivers/status")
def driver_status(payload: DriverStatusUpdate, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    driver = services.update_driver_leave_status(store, payload.driver_id, payload.on_leave)
    message = "Driver set on leave successfully" if payload.on_leave else "Driver activated successfully"
    return envelope(driver.public(), message)


@app.put("/api/admin/users/status")
@app.put("/api/users/status")
def user_status(payload: UserStatusUpdate, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    user = services.update_user_status(store, payload.user_id, payload.is_active)
    message = "User activated successfully" if payload.is_active else "User deactivated successfully"
    return envelope(user.public(), message)


# Users


@app.get("/api/users")
def users_list(store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    return envelope(services.list_users(store))


@app.post("/api/admin/users", status_code=status.HTTP_201_CREATED)
def users_create(payload: UserCreateRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    user = services.create_user(store, payload)
    return envelope(user.public(), "User created successfully")


@app.post("/api/user/location")
def user_location(payload: UserLocationUpdate, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    services.update_user_location(store, payload.user_id, payload.location)
    return envelope({"success": True}, "User location updated successfully")


@app.get("/api/user/profile")
def profile_get(
    user_id: Optional[str] = Query(default=None, alias="id"),
    email: Optional[str] = Query(default=None),
    store: FleetStore = Depends(get_store),
) -> Dict[str, Any]:
    identifier = user_id or email
    if not identifier:
        raise ValidationError("User ID or email is required")
    return envelope(services.get_profile(store, identifier).public())


@app.put("/api/user/profile")
def profile_update(payload: ProfileUpdateRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    account = services.update_profile(store, payload)
    return envelope(account.public(), "Profile updated successfully")


@app.post("/api/user/profile/validate-email")
def profile_validate_email(payload: EmailCheckRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    available = services.email_available(store, payload.email)
    return envelope({"exists": not available, "available": available})


# Drivers


@app.post("/api/admin/drivers", status_code=status.HTTP_201_CREATED)
def drivers_create(payload: DriverCreateRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    driver = services.create_driver(store, payload)
    return envelope(driver.public(), "Driver created successfully")


@app.put("/api/admin/drivers")
def drivers_update(payload: DriverUpdateRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    driver = services.update_driver(store, payload)
    return envelope(driver.public(), "Driver updated successfully")


@app.get("/api/drivers")
def drivers_dashboard(
    driver_id: str = Query(alias="driverId", min_length=1),
    store: FleetStore = Depends(get_store),
) -> Dict[str, Any]:
    return envelope(services.driver_dashboard(store, driver_id))


@app.post("/api/drivers/location")
def drivers_location(payload: DriverLocationUpdate, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    services.update_driver_location(store, payload.driver_id, payload.location)
    return envelope({"success": True}, "Location updated successfully")


@app.post("/api/drivers/profile")
def drivers_profile(payload: DriverProfileUpdate, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    driver = services.update_driver_profile(store, payload.driver_id, payload.profile_data)
    return envelope(driver.public(), "Profile updated successfully")


@app.post("/api/drivers/distance")
def drivers_distance(payload: DistanceMetricsUpdate, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    driver = services.update_driver_distance(store, payload)
    return envelope(driver.total_travelled_distance, "Distance metrics updated successfully")


# Leave requests


@app.post("/api/drivers/leave", status_code=status.HTTP_201_CREATED)
def leave_submit(payload: LeaveSubmitRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    leave = services.submit_leave_request(store, payload)
    return envelope({"success": True, "leaveRequest": leave}, "Leave request submitted successfully")


@app.put("/api/admin/leave-requests/status")
def leave_review(payload: LeaveReviewRequest, store: FleetStore = Depends(get_store)) -> Dict[str, Any]:
    leave = services.review_leave_request(store, payload.leave_request_id, payload.status)
    return envelope(leave, f"Leave request {payload.status}")
