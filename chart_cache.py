"""
Persistent cache of assembled natal charts.

Entries are keyed by a fingerprint of the birth details: date to the day,
time to the second, location ignoring case, timezone identifier, and the
coordinate within COORDINATE_TOLERANCE degrees. The same fingerprint is used
to pick the row to overwrite on save and the row to return on find.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import structlog
from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import init_db, session_scope
from domain import Aspect, BirthDetails, House, NatalChart, Planet
from exceptions import ChartCacheError
from natal import resolve_house_rulers
from orm import CachedNatalChartORM

log = structlog.get_logger(__name__)

COORDINATE_TOLERANCE = 0.0001

_PLANETS = TypeAdapter(Tuple[Planet, ...])
_HOUSES = TypeAdapter(Tuple[House, ...])
_ASPECTS = TypeAdapter(Tuple[Aspect, ...])


@dataclass(frozen=True, eq=False)
class BirthFingerprint:
    """Tolerance-based identity of a set of birth details."""
    date: Tuple[int, int, int]
    time: Tuple[int, int, int]
    location: str
    timezone: str
    coordinate: Optional[Tuple[float, float]]

    @property
    def lookup_key(self) -> str:
        """Exact-match part of the fingerprint, suitable for an index."""
        y, m, d = self.date
        hh, mm, ss = self.time
        return f"{y:04d}-{m:02d}-{d:02d}|{hh:02d}:{mm:02d}:{ss:02d}|{self.location}|{self.timezone}"

    def matches(self, other: "BirthFingerprint") -> bool:
        if (self.date != other.date
                or self.time != other.time
                or self.location != other.location
                or self.timezone != other.timezone):
            return False

        if self.coordinate is None or other.coordinate is None:
            return self.coordinate is None and other.coordinate is None

        lat1, lon1 = self.coordinate
        lat2, lon2 = other.coordinate
        return (abs(lat1 - lat2) < COORDINATE_TOLERANCE
                and abs(lon1 - lon2) < COORDINATE_TOLERANCE)


def fingerprint(birth: BirthDetails) -> BirthFingerprint:
    d, t = birth.birth_date, birth.birth_time
    return BirthFingerprint(
        date=(d.year, d.month, d.day),
        time=(t.hour, t.minute, t.second),
        location=birth.location.strip().casefold(),
        timezone=birth.timezone,
        coordinate=birth.coordinate,
    )


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class ChartCache:
    """SQLAlchemy-backed chart cache. All methods block on database I/O."""

    def __init__(self,
                 engine: Engine,
                 house_system: str = "placidus",
                 max_cache_age: timedelta = timedelta(days=30)):
        self._engine = engine
        self.house_system = house_system
        self.max_cache_age = max_cache_age
        init_db(engine)

    # Persistence

    def save(self,
             chart: NatalChart,
             birth: BirthDetails,
             image_reference: Optional[str] = None,
             image_format: Optional[str] = None) -> str:
        """Store a chart for the birth details, replacing a matching entry. Returns the entry id."""
        fp = fingerprint(birth)
        try:
            with session_scope(self._engine) as session:
                row = self._find_row(session, fp)
                created = row is None
                if created:
                    row = CachedNatalChartORM()
                    session.add(row)

                row.lookup_key = fp.lookup_key
                row.birth_data = birth.model_dump(mode="json", by_alias=True)
                row.planets = _PLANETS.dump_python(chart.planets, mode="json", by_alias=True)
                row.houses = _HOUSES.dump_python(chart.houses, mode="json", by_alias=True)
                row.aspects = _ASPECTS.dump_python(chart.aspects, mode="json", by_alias=True)
                row.ascendant = chart.ascendant
                row.midheaven = chart.midheaven
                row.house_system = self.house_system
                row.generated_at = _to_naive_utc(chart.calculated_at)
                row.image_reference = image_reference or chart.image_reference
                row.image_format = image_format or chart.image_format
                session.flush()
                chart_id = row.id
        except SQLAlchemyError as e:
            raise ChartCacheError(f"Failed to save chart: {e}") from e

        log.info("chart_cache_saved", chart_id=chart_id, created=created, key=fp.lookup_key)
        return chart_id

    def find(self, birth: BirthDetails) -> Optional[NatalChart]:
        """Return the cached chart for matching birth details, or None."""
        entry = self.find_with_id(birth)
        return entry[1] if entry is not None else None

    def find_with_id(self, birth: BirthDetails) -> Optional[Tuple[str, NatalChart]]:
        """Return (entry id, chart) for matching birth details, or None."""
        fp = fingerprint(birth)
        try:
            with session_scope(self._engine) as session:
                row = self._find_row(session, fp)
                if row is None:
                    log.debug("chart_cache_miss", key=fp.lookup_key)
                    return None
                entry = row.id, self._to_chart(row)
        except SQLAlchemyError as e:
            raise ChartCacheError(f"Failed to read chart cache: {e}") from e

        log.debug("chart_cache_hit", key=fp.lookup_key)
        return entry

    def load(self, chart_id: str) -> Optional[NatalChart]:
        try:
            with session_scope(self._engine) as session:
                row = session.get(CachedNatalChartORM, chart_id)
                return self._to_chart(row) if row is not None else None
        except SQLAlchemyError as e:
            raise ChartCacheError(f"Failed to read chart cache: {e}") from e

    def find_id(self, birth: BirthDetails) -> Optional[str]:
        try:
            with session_scope(self._engine) as session:
                row = self._find_row(session, fingerprint(birth))
                return row.id if row is not None else None
        except SQLAlchemyError as e:
            raise ChartCacheError(f"Failed to read chart cache: {e}") from e

    # Expiry

    def is_stale(self, chart: NatalChart, reference: Optional[datetime] = None) -> bool:
        reference = reference or datetime.now(timezone.utc)
        return _to_naive_utc(reference) - _to_naive_utc(chart.calculated_at) > self.max_cache_age

    def clear_old_charts(self,
                         older_than_days: Optional[int] = None,
                         reference: Optional[datetime] = None) -> int:
        """Delete entries generated before the cutoff. Returns how many were removed."""
        age = timedelta(days=older_than_days) if older_than_days is not None else self.max_cache_age
        threshold = _to_naive_utc(reference or datetime.now(timezone.utc)) - age

        try:
            with session_scope(self._engine) as session:
                result = session.execute(
                    delete(CachedNatalChartORM).where(CachedNatalChartORM.generated_at < threshold)
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise ChartCacheError(f"Failed to clear chart cache: {e}") from e

        log.info("chart_cache_cleared", removed=removed, threshold=threshold.isoformat())
        return removed

    # Helpers

    def _find_row(self, session: Session, fp: BirthFingerprint) -> Optional[CachedNatalChartORM]:
        stmt = (
            select(CachedNatalChartORM)
            .where(CachedNatalChartORM.lookup_key == fp.lookup_key)
            .order_by(CachedNatalChartORM.generated_at.desc())
        )
        for row in session.execute(stmt).scalars():
            cached = self._snapshot(row)
            if cached is not None and fingerprint(cached).matches(fp):
                return row
        return None

    @staticmethod
    def _snapshot(row: CachedNatalChartORM) -> Optional[BirthDetails]:
        try:
            return BirthDetails.model_validate(row.birth_data)
        except ValidationError:
            log.warning("chart_cache_snapshot_unreadable", chart_id=row.id)
            return None

    def _to_chart(self, row: CachedNatalChartORM) -> NatalChart:
        birth = self._snapshot(row)
        if birth is None:
            raise ChartCacheError(f"Cached chart {row.id} has unreadable birth details")

        try:
            planets = _PLANETS.validate_python(row.planets)
            houses = _HOUSES.validate_python(row.houses)
            aspects = _ASPECTS.validate_python(row.aspects)
        except ValidationError as e:
            raise ChartCacheError(f"Cached chart {row.id} is corrupted: {e}") from e

        return NatalChart(
            birth_date=birth.birth_date,
            birth_time=birth.birth_time,
            latitude=birth.latitude,
            longitude=birth.longitude,
            location_name=birth.location,
            houses=houses,
            planets=planets,
            aspects=aspects,
            house_rulers=tuple(resolve_house_rulers(houses, planets)),
            ascendant=row.ascendant,
            midheaven=row.midheaven,
            calculated_at=row.generated_at.replace(tzinfo=timezone.utc),
            image_reference=row.image_reference,
            image_format=row.image_format,
        )
