from __future__ import annotations

import datetime as dt
import threading
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from fleetpro.database import build_engine
from fleetpro.errors import InternalError
from fleetpro.schemas import Journey, Location
from fleetpro.store import JsonFileStore, SqliteStore


def test_missing_file_serves_initial_data(store: JsonFileStore, data_file: Path):
    assert not data_file.exists()
    data = store.snapshot()
    assert {car.id for car in data.cars} == {"car1", "car2", "car3"}
    assert data.system_stats.total_users == 3
    assert data.system_stats.monthly_distance == pytest.approx(150.5)


def test_missing_file_without_seed_is_empty(tmp_path: Path):
    data = JsonFileStore(tmp_path / "none.json").snapshot()
    assert data.users == []
    assert data.system_stats.total_cars == 0


def test_malformed_file_is_an_internal_error(store: JsonFileStore, data_file: Path):
    data_file.write_text("{not json", encoding="utf-8")
    with pytest.raises(InternalError) as excinfo:
        store.snapshot()
    assert excinfo.value.status_code == 500
    assert excinfo.value.detail == "Failed to load data"


def test_malformed_file_over_http(client: TestClient, data_file: Path):
    data_file.write_text('{"users": "nope"}', encoding="utf-8")
    resp = client.get("/api/data")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to load data"}


def test_transaction_persists_camel_case_document(store: JsonFileStore, data_file: Path):
    with store.transaction() as data:
        data.find_car("car2").status = "available"
    raw = data_file.read_text(encoding="utf-8")
    assert '"systemStats"' in raw
    assert '"regNo"' in raw
    reloaded = store.snapshot()
    assert reloaded.find_car("car2").status == "available"
    assert reloaded.system_stats.available_cars == 3


def test_failed_write_raises_and_keeps_previous_file(store: JsonFileStore, data_file: Path, monkeypatch):
    store.reset()
    before = data_file.read_text(encoding="utf-8")
    monkeypatch.setattr(store, "write", lambda data: False)
    with pytest.raises(InternalError):
        with store.transaction() as data:
            data.cars.clear()
    assert data_file.read_text(encoding="utf-8") == before


def test_error_inside_transaction_skips_write(store: JsonFileStore, data_file: Path):
    with pytest.raises(RuntimeError):
        with store.transaction() as data:
            data.cars.clear()
            raise RuntimeError("boom")
    assert not data_file.exists()
    assert len(store.snapshot().cars) == 3


def test_sqlite_store_round_trip(tmp_path: Path, fleet):
    engine = build_engine(tmp_path / "fleet.db")
    sqlite_store = SqliteStore(engine, seed=lambda: fleet)
    assert sqlite_store.snapshot().find_user("u1").name == "Una User"

    with sqlite_store.transaction() as data:
        data.find_driver("driver2").on_leave = False

    reopened = SqliteStore(engine)
    data = reopened.snapshot()
    assert data.find_driver("driver2").on_leave is False
    assert data.system_stats.drivers_on_leave == 0
    assert data.find_journey("j-done").status == "completed"


def test_update_data_replaces_dataset(client: TestClient):
    resp = client.post(
        "/api/data",
        json={
            "action": "update-data",
            "data": {"cars": [{"id": "solo", "model": "Mini", "status": "available"}]},
        },
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Data updated successfully"
    data = client.get("/api/data").json()["data"]
    assert [car["id"] for car in data["cars"]] == ["solo"]
    assert data["users"] == []
    assert data["systemStats"]["availableCars"] == 1


def test_update_data_requires_payload(client: TestClient):
    resp = client.post("/api/data", json={"action": "update-data"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "No data provided for update"


def test_update_data_rejects_invalid_dataset(client: TestClient):
    resp = client.post("/api/data", json={"action": "update-data", "data": {"cars": [{"id": "x"}]}})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid fleet data")


def test_reset_data_restores_initial_dataset(client: TestClient):
    client.put("/api/admin/cars/status", json={"carId": "car2", "status": "available"})
    resp = client.post("/api/data", json={"action": "reset-data"})
    assert resp.status_code == 200
    cars = {car["id"]: car for car in client.get("/api/data").json()["data"]["cars"]}
    assert cars["car2"]["status"] == "servicing"


def test_unknown_data_action(client: TestClient):
    resp = client.post("/api/data", json={"action": "explode"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Unknown action"


def test_concurrent_transactions_keep_every_update(store: JsonFileStore, data_file: Path, start_location: dict):
    workers = 12
    barrier = threading.Barrier(workers)
    errors: list[Exception] = []

    def add_journey(index: int) -> None:
        try:
            barrier.wait()
            with store.transaction() as data:
                data.journeys.append(
                    Journey(
                        id=f"j-{index}",
                        user_id="u1",
                        start_location=Location.model_validate(start_location),
                        end_location=Location(address=f"Stop {index}"),
                        start_time=dt.datetime(2024, 6, 1, tzinfo=dt.timezone.utc),
                    )
                )
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=add_journey, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    reloaded = JsonFileStore(data_file).snapshot()
    ids = {journey.id for journey in reloaded.journeys}
    assert {f"j-{index}" for index in range(workers)} <= ids
    assert len(reloaded.journeys) == workers + 1


def test_undecodable_file_is_an_internal_error(store: JsonFileStore, data_file: Path):
    data_file.write_bytes(b'\xff\xfe{"users": []}')
    with pytest.raises(InternalError) as excinfo:
        store.snapshot()
    assert excinfo.value.detail == "Failed to load data"
