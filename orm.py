"""SQLAlchemy models for cached natal charts."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Float, MetaData, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    metadata = MetaData()


def _new_id() -> str:
    return uuid.uuid4().hex


class CachedNatalChartORM(Base):
    """One cached chart.

    Planets, houses and aspects are stored as separate JSON blobs; house
    rulers are not stored and are recomputed on read.
    """

    __tablename__ = "cached_natal_charts"

    id = Column(String(32), primary_key=True, default=_new_id)
    # date|time|location|timezone; coordinates are matched with tolerance
    lookup_key = Column(String(512), nullable=False, index=True)
    birth_data = Column(JSON, nullable=False)
    planets = Column(JSON, nullable=False)
    houses = Column(JSON, nullable=False)
    aspects = Column(JSON, nullable=False)
    ascendant = Column(Float, nullable=False)
    midheaven = Column(Float, nullable=False)
    house_system = Column(String(32), nullable=False, default="placidus")
    # naive UTC
    generated_at = Column(DateTime, nullable=False)
    image_reference = Column(String(255), nullable=True)
    image_format = Column(String(16), nullable=True)
