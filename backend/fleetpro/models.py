from __future__ import annotations

import datetime as dt

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class FleetDocument(Base):
    """One top-level collection of the fleet dataset, stored as JSON text."""

    __tablename__ = "fleet_documents"

    key = Column(String(50), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
