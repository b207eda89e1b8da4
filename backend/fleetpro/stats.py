from __future__ import annotations

from .schemas import FleetData, SystemStats


def compute_system_stats(data: FleetData) -> SystemStats:
    """Derive the dashboard counters from a full scan of the entities."""
    return SystemStats(
        total_users=len(data.users),
        total_drivers=len(data.drivers),
        total_cars=len(data.cars),
        active_journeys=sum(1 for journey in data.journeys if journey.status == "in-progress"),
        pending_requests=sum(1 for journey in data.journeys if journey.status == "requested"),
        available_cars=sum(1 for car in data.cars if car.status == "available"),
        drivers_on_leave=sum(1 for driver in data.drivers if driver.on_leave),
        monthly_distance=sum(user.total_distance.month for user in data.users),
    )


def refresh_system_stats(data: FleetData) -> FleetData:
    data.system_stats = compute_system_stats(data)
    return data
