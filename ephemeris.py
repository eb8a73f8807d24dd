"""
Swiss Ephemeris position provider and birth time normalisation.

The ephemeris data path is process-wide state in the Swiss Ephemeris
library, so it is configured once under a lock before any calculation.
"""

import os
import threading
from datetime import date, datetime, time
from enum import Enum
from typing import Optional

import pytz
import structlog
import swisseph as swe

from domain import PlanetName, normalize_degrees
from exceptions import (
    ChartCalculationError,
    DateCompositionError,
    InvalidCoordinatesError,
    UnknownTimezoneError,
)
from natal import RawChartData, RawHouseCusp, RawPlanetPosition

log = structlog.get_logger(__name__)

_init_lock = threading.Lock()
_ephemeris_initialised = False
_use_moshier = True


class NodeType(Enum):
    TRUE = "true"
    MEAN = "mean"


def ensure_ephemeris_initialised(ephemeris_path: Optional[str] = None) -> bool:
    """
    Point Swiss Ephemeris at its data files exactly once per process.

    Falls back to the built-in Moshier ephemeris when the directory holds no
    .se1 files. Returns True only for the call that did the work.
    """
    global _ephemeris_initialised, _use_moshier

    with _init_lock:
        if _ephemeris_initialised:
            return False

        use_moshier = True
        if ephemeris_path and os.path.isdir(ephemeris_path):
            try:
                files = os.listdir(ephemeris_path)
            except OSError as e:
                log.warning("ephemeris_path_unreadable", path=ephemeris_path, error=str(e))
                files = []
            if any(f.endswith('.se1') for f in files):
                swe.set_ephe_path(ephemeris_path)
                use_moshier = False

        _use_moshier = use_moshier
        _ephemeris_initialised = True

    log.info("ephemeris_initialised", path=ephemeris_path, moshier=use_moshier)
    return True


# Time normalisation

def resolve_timezone(identifier: str):
    try:
        return pytz.timezone(identifier)
    except pytz.exceptions.UnknownTimeZoneError:
        raise UnknownTimezoneError(identifier) from None


def birth_instant_utc(birth_date: date, birth_time: time, timezone_id: str) -> datetime:
    """
    Combine a local birth date and time into an aware UTC datetime.

    Seconds are the finest unit kept. Ambiguous local times (clocks going
    back) resolve to standard time; skipped local times (clocks going
    forward) are read with the daylight offset.
    """
    tz = resolve_timezone(timezone_id)

    try:
        naive = datetime(birth_date.year, birth_date.month, birth_date.day,
                         birth_time.hour, birth_time.minute, birth_time.second)
    except (TypeError, ValueError) as e:
        raise DateCompositionError(f"Cannot combine {birth_date} and {birth_time}: {e}") from e

    try:
        local_dt = tz.localize(naive, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        local_dt = tz.localize(naive, is_dst=False)
    except pytz.exceptions.NonExistentTimeError:
        local_dt = tz.localize(naive, is_dst=True)

    try:
        return local_dt.astimezone(pytz.UTC)
    except OverflowError as e:
        raise DateCompositionError(f"Birth instant out of range: {naive.isoformat()}") from e


def julian_day(dt: datetime) -> float:
    """Julian day (UT) of an aware or UTC-naive datetime."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(pytz.UTC)
    hour_decimal = dt.hour + dt.minute / 60.0 + dt.second / 3600.0 + dt.microsecond / 3600000000.0
    return swe.julday(dt.year, dt.month, dt.day, hour_decimal)


# Provider

class SwissEphemerisProvider:
    """Planet positions and house cusps from Swiss Ephemeris."""

    PLANETS = {
        PlanetName.SUN: swe.SUN,
        PlanetName.MOON: swe.MOON,
        PlanetName.MERCURY: swe.MERCURY,
        PlanetName.VENUS: swe.VENUS,
        PlanetName.MARS: swe.MARS,
        PlanetName.JUPITER: swe.JUPITER,
        PlanetName.SATURN: swe.SATURN,
        PlanetName.URANUS: swe.URANUS,
        PlanetName.NEPTUNE: swe.NEPTUNE,
        PlanetName.PLUTO: swe.PLUTO,
    }

    HOUSE_SYSTEMS = {
        'Placidus': b'P',
        'Koch': b'K',
        'Equal (ASC)': b'A',
        'Equal (MC)': b'E',
        'Whole Sign': b'W',
        'Campanus': b'C',
        'Regiomontanus': b'R',
        'Porphyry': b'O',
        'Morinus': b'M',
        'Alcabitius': b'B',
        'Topocentric': b'T',
    }

    def __init__(self,
                 house_system: str = 'Placidus',
                 node_type: NodeType = NodeType.TRUE,
                 include_points: bool = True,
                 ephemeris_path: Optional[str] = None):
        if house_system not in self.HOUSE_SYSTEMS:
            raise ValueError(f"Unknown house system: {house_system}")

        self.house_system = house_system
        self.house_system_code = self.HOUSE_SYSTEMS[house_system]
        self.node_type = node_type
        self.include_points = include_points

        ensure_ephemeris_initialised(ephemeris_path)

    def _get_calc_flags(self) -> int:
        flags = swe.FLG_MOSEPH if _use_moshier else swe.FLG_SWIEPH
        return flags | swe.FLG_SPEED

    def _calculate_body(self, jd: float, name: PlanetName, body_id: int, flags: int) -> RawPlanetPosition:
        result, _ = swe.calc_ut(jd, body_id, flags)
        return RawPlanetPosition(
            name=name,
            longitude=normalize_degrees(result[0]),
            latitude=result[1],
            speed=result[3],
            retrograde=result[3] < 0,
        )

    def _calculate_points(self, jd: float, flags: int) -> list:
        node_id = swe.TRUE_NODE if self.node_type == NodeType.TRUE else swe.MEAN_NODE
        north = self._calculate_body(jd, PlanetName.NORTH_NODE, node_id, flags)
        south = RawPlanetPosition(
            name=PlanetName.SOUTH_NODE,
            longitude=normalize_degrees(north.longitude + 180),
            latitude=-north.latitude,
            speed=north.speed,
            retrograde=north.retrograde,
        )
        lilith = self._calculate_body(jd, PlanetName.LILITH, swe.MEAN_APOG, flags)
        return [north, south, lilith]

    def calculate(self, utc: datetime, latitude: float, longitude: float) -> RawChartData:
        if not -90 <= latitude <= 90:
            raise InvalidCoordinatesError("Latitude must be between -90 and 90")
        if not -180 <= longitude <= 180:
            raise InvalidCoordinatesError("Longitude must be between -180 and 180")

        jd = julian_day(utc)
        flags = self._get_calc_flags()

        try:
            planets = [self._calculate_body(jd, name, body_id, flags)
                       for name, body_id in self.PLANETS.items()]
            if self.include_points:
                planets.extend(self._calculate_points(jd, flags))

            cusps_raw, ascmc = swe.houses_ex(jd, latitude, longitude, self.house_system_code)
        except swe.Error as e:
            raise ChartCalculationError(f"Swiss Ephemeris calculation failed: {e}") from e

        cusps = tuple(
            RawHouseCusp(number=i + 1, longitude=normalize_degrees(cusp))
            for i, cusp in enumerate(list(cusps_raw)[:12])
        )

        log.debug("ephemeris_calculated", julian_day=jd, bodies=len(planets))
        return RawChartData(
            planets=tuple(planets),
            cusps=cusps,
            ascendant=normalize_degrees(ascmc[0]),
            midheaven=normalize_degrees(ascmc[1]),
            metadata={'julian_day': jd, 'house_system': self.house_system},
        )
