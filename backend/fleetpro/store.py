"""Persistence for the fleet dataset.

Both stores hand out the whole ``FleetData`` aggregate. Mutations go through
``FleetStore.transaction()``, which holds a process-wide lock across the
load-mutate-save cycle so two requests in the same process cannot overwrite
each other's changes.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import Callable, Iterator, Optional

from fastapi import Request
from pydantic import ValidationError as SchemaError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .database import build_engine, build_sessionmaker, db_session
from .errors import InternalError
from .models import Base, FleetDocument, utcnow
from .schemas import FleetData
from .seed import demo_fleet
from .stats import refresh_system_stats

logger = logging.getLogger(__name__)

SeedFactory = Callable[[], FleetData]


class FleetStore:
    """Read/write contract shared by the JSON file and SQLite backends."""

    def __init__(self, seed: Optional[SeedFactory] = None):
        self._lock = RLock()
        self._seed = seed

    def read(self) -> FleetData:
        raise NotImplementedError

    def write(self, data: FleetData) -> bool:
        raise NotImplementedError

    def initial_data(self) -> FleetData:
        data = self._seed() if self._seed is not None else FleetData()
        return refresh_system_stats(data)

    def snapshot(self) -> FleetData:
        with self._lock:
            return self.read()

    @contextmanager
    def transaction(self) -> Iterator[FleetData]:
        with self._lock:
            data = self.read()
            yield data
            refresh_system_stats(data)
            if not self.write(data):
                raise InternalError("Failed to write data to file")

    def replace(self, data: FleetData) -> FleetData:
        with self._lock:
            refresh_system_stats(data)
            if not self.write(data):
                raise InternalError("Failed to write data to file")
            return data

    def reset(self) -> FleetData:
        return self.replace(self.initial_data())


class JsonFileStore(FleetStore):
    def __init__(self, path: Path, seed: Optional[SeedFactory] = None):
        super().__init__(seed)
        self.path = Path(path)

    def read(self) -> FleetData:
        if not self.path.exists():
            logger.info("Data file %s not found, using initial dataset", self.path)
            return self.initial_data()
        try:
            raw = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.exception("Error reading data file %s", self.path)
            raise InternalError("Failed to load data") from exc
        if not raw.strip():
            logger.warning("Data file %s is empty, using initial dataset", self.path)
            return self.initial_data()
        try:
            return FleetData.model_validate_json(raw)
        except SchemaError as exc:
            logger.exception("Data file %s has invalid structure", self.path)
            raise InternalError("Failed to load data") from exc

    def write(self, data: FleetData) -> bool:
        payload = json.dumps(data.to_wire(), indent=2)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError:
            logger.exception("Error writing data file %s", self.path)
            return False
        return True


class SqliteStore(FleetStore):
    """Keeps each top-level collection in its own ``fleet_documents`` row."""

    def __init__(self, engine: Engine, seed: Optional[SeedFactory] = None):
        super().__init__(seed)
        self.engine = engine
        self._sessions = build_sessionmaker(engine)
        Base.metadata.create_all(bind=engine)

    def read(self) -> FleetData:
        try:
            with db_session(self._sessions) as session:
                decoded = {record.key: json.loads(record.payload) for record in session.query(FleetDocument).all()}
        except (SQLAlchemyError, json.JSONDecodeError) as exc:
            logger.exception("Error reading fleet documents")
            raise InternalError("Failed to load data") from exc
        if not decoded:
            return self.initial_data()
        try:
            return FleetData.model_validate(decoded)
        except SchemaError as exc:
            logger.exception("Fleet documents have invalid structure")
            raise InternalError("Failed to load data") from exc

    def write(self, data: FleetData) -> bool:
        payload = data.to_wire()
        try:
            with db_session(self._sessions) as session:
                for key, value in payload.items():
                    encoded = json.dumps(value)
                    record = session.get(FleetDocument, key)
                    if record:
                        record.payload = encoded
                        record.updated_at = utcnow()
                    else:
                        session.add(FleetDocument(key=key, payload=encoded))
        except SQLAlchemyError:
            logger.exception("Error writing fleet documents")
            return False
        return True


def build_store(config: Settings) -> FleetStore:
    seed = demo_fleet if config.seed_demo_data else None
    backend = config.storage_backend.strip().lower()
    if backend == "json":
        return JsonFileStore(config.data_file, seed=seed)
    if backend == "sqlite":
        return SqliteStore(build_engine(config.sqlite_path), seed=seed)
    raise ValueError(f"Unsupported storage backend: {config.storage_backend}")


def get_store(request: Request) -> FleetStore:
    return request.app.state.store
