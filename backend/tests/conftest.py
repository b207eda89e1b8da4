from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from fleetpro.config import settings
from fleetpro.main import app
from fleetpro.schemas import Car, DistanceMetrics, Driver, FleetData, Journey, Location, User
from fleetpro.store import JsonFileStore, get_store

OFFICE = Location(lat=23.81, lng=90.41, address="Head Office")


def build_fleet() -> FleetData:
    return FleetData(
        users=[
            User(
                id="admin1",
                email="admin@example.com",
                password="admin-pass",
                name="Ada Admin",
                role="admin",
                designation="Fleet Manager",
                department="Operations",
            ),
            User(
                id="u1",
                email="u1@example.com",
                password="u1-pass",
                name="Una User",
                designation="Engineer",
                department="R&D",
                total_distance=DistanceMetrics(day=2, month=120, year=900),
            ),
            User(
                id="u2",
                email="u2@example.com",
                password="u2-pass",
                name="Ulf User",
                designation="Analyst",
                department="Finance",
                total_distance=DistanceMetrics(month=30.5),
            ),
        ],
        drivers=[
            Driver(
                id="driver1",
                email="d1@example.com",
                password="d1-pass",
                name="Dana Driver",
                dob="1988-04-01",
                license_no="LIC-001",
                license_expiry="2030-01-01",
                salary=30000,
                current_location=OFFICE,
            ),
            Driver(
                id="driver2",
                email="d2@example.com",
                password="d2-pass",
                name="Dirk Driver",
                dob="1990-09-09",
                license_no="LIC-002",
                license_expiry="2029-05-05",
                on_leave=True,
                current_location=OFFICE,
            ),
        ],
        cars=[
            Car(id="car1", model="Toyota Axio", reg_no="DHA-1", drivers=["driver1"], current_location=OFFICE),
            Car(id="car2", model="Toyota Noah", reg_no="DHA-2", status="servicing", needs_servicing=True),
            Car(id="car3", model="Honda Vezel", reg_no="DHA-3", drivers=["driver1", "driver2"]),
        ],
        locations=[OFFICE],
        journeys=[
            Journey(
                id="j-done",
                car_id="car1",
                driver_id="driver1",
                user_id="u2",
                user_name="Ulf User",
                driver_name="Dana Driver",
                car_model="Toyota Axio",
                start_location=OFFICE,
                end_location=Location(address="Gulshan"),
                status="completed",
                start_time=dt.datetime(2024, 3, 1, 8, 0, tzinfo=dt.timezone.utc),
                end_time=dt.datetime(2024, 3, 1, 8, 40, tzinfo=dt.timezone.utc),
            ),
        ],
    )


@pytest.fixture()
def fleet() -> FleetData:
    return build_fleet()


@pytest.fixture()
def data_file(tmp_path: Path) -> Path:
    return tmp_path / "demoData.json"


@pytest.fixture()
def store(data_file: Path) -> JsonFileStore:
    return JsonFileStore(data_file, seed=build_fleet)


@pytest.fixture(autouse=True)
def no_booking_cooldown(monkeypatch) -> None:
    monkeypatch.setattr(settings, "booking_cooldown_seconds", 0)


@pytest.fixture()
def client(store: JsonFileStore) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def start_location() -> dict:
    return {"lat": 23.81, "lng": 90.41, "address": "Head Office"}
