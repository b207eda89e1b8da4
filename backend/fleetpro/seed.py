from __future__ import annotations

import datetime as dt

from .schemas import Car, DistanceMetrics, Driver, FleetData, Journey, LeaveRequest, Location, User

HEAD_OFFICE = Location(lat=23.8103, lng=90.4125, address="Paramount BD Head Office, Dhaka")

_LOCATIONS = [
    HEAD_OFFICE,
    Location(lat=23.8513, lng=90.4086, address="Hazrat Shahjalal International Airport, Dhaka"),
    Location(lat=23.7808, lng=90.4177, address="Gulshan 1, Dhaka"),
    Location(lat=23.7461, lng=90.3742, address="Dhanmondi 27, Dhaka"),
    Location(lat=23.7104, lng=90.4074, address="Motijheel Commercial Area, Dhaka"),
]


def demo_fleet() -> FleetData:
    """Demo dataset used when the datastore is empty."""
    office = HEAD_OFFICE.model_copy()
    users = [
        User(
            id="admin-1",
            email="admin@fleetpro.com",
            password="admin123",
            name="Farhana Rahman",
            role="admin",
            designation="Fleet Manager",
            department="Operations",
        ),
        User(
            id="user-1",
            email="user@fleetpro.com",
            password="user123",
            name="Tanvir Ahmed",
            designation="Senior Engineer",
            department="Engineering",
            current_location=office,
            cars_used=["car-1"],
            total_distance=DistanceMetrics(day=12, month=240, year=2150),
        ),
        User(
            id="user-2",
            email="nusrat@fleetpro.com",
            password="user123",
            name="Nusrat Jahan",
            designation="Finance Officer",
            department="Finance",
            total_distance=DistanceMetrics(day=0, month=85, year=910),
        ),
    ]
    drivers = [
        Driver(
            id="driver-1",
            email="driver@fleetpro.com",
            password="driver123",
            name="Karim Uddin",
            dob="1985-03-12",
            license_no="DHK-0458-2015",
            license_expiry="2027-03-11",
            salary=32000,
            total_leave=20,
            remaining_leave=16,
            current_location=office,
            total_travelled_distance=DistanceMetrics(day=40, month=820, year=9400),
        ),
        Driver(
            id="driver-2",
            email="rafiq@fleetpro.com",
            password="driver123",
            name="Rafiqul Islam",
            dob="1979-11-02",
            license_no="DHK-1120-2010",
            license_expiry="2026-12-31",
            salary=35000,
            total_leave=20,
            remaining_leave=20,
            current_location=office,
        ),
        Driver(
            id="driver-3",
            email="jamal@fleetpro.com",
            password="driver123",
            name="Jamal Hossain",
            dob="1990-06-21",
            license_no="DHK-2231-2018",
            license_expiry="2028-06-20",
            on_leave=True,
            salary=30000,
            total_leave=20,
            remaining_leave=12,
            current_location=office,
        ),
    ]
    cars = [
        Car(
            id="car-1",
            model="Toyota Axio",
            reg_no="DHA-GA-11-2345",
            drivers=["driver-1"],
            users=["user-1"],
            current_location=office,
            total_distance_travelled=DistanceMetrics(day=40, month=820, year=9400),
        ),
        Car(
            id="car-2",
            model="Toyota Noah",
            reg_no="DHA-CHA-15-7788",
            drivers=["driver-2"],
            current_location=office,
        ),
        Car(
            id="car-3",
            model="Mitsubishi Pajero",
            reg_no="DHA-GHA-13-1102",
            drivers=["driver-3"],
            status="servicing",
            needs_servicing=True,
            current_location=office,
        ),
        Car(
            id="car-4",
            model="Honda Vezel",
            reg_no="DHA-GA-17-5521",
            status="cleaning",
            is_clean=False,
            current_location=office,
        ),
    ]
    journeys = [
        Journey(
            id="journey-1",
            car_id="car-1",
            driver_id="driver-1",
            user_id="user-1",
            user_name="Tanvir Ahmed",
            driver_name="Karim Uddin",
            car_model="Toyota Axio",
            start_location=office,
            end_location=_LOCATIONS[1].model_copy(),
            status="completed",
            start_time=dt.datetime(2024, 1, 15, 9, 0, tzinfo=dt.timezone.utc),
            end_time=dt.datetime(2024, 1, 15, 9, 50, tzinfo=dt.timezone.utc),
            distance=18.5,
            rating=5,
            estimated_duration=45,
        ),
    ]
    leave_requests = [
        LeaveRequest(
            id="leave-1",
            driver_id="driver-3",
            start_date=dt.date(2024, 2, 1),
            end_date=dt.date(2024, 2, 8),
            reason="Family event",
            status="approved",
            submitted_at=dt.datetime(2024, 1, 20, 8, 30, tzinfo=dt.timezone.utc),
        ),
    ]
    return FleetData(
        users=users,
        drivers=drivers,
        cars=cars,
        locations=[location.model_copy() for location in _LOCATIONS],
        journeys=journeys,
        leave_requests=leave_requests,
    )
