"""
Natal chart calculation core.

Turns raw provider output (planet longitudes and speeds, twelve house cusps)
into a consistent NatalChart:
- house assignment by circular-interval containment
- major aspect detection with applying/separating status
- traditional house rulers
- chart assembly

Everything here is a pure function of its inputs: no I/O, no shared state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from domain import (
    Aspect,
    AspectType,
    BirthDetails,
    House,
    HouseRuler,
    NatalChart,
    Planet,
    PlanetName,
    ZodiacSign,
    normalize_degrees,
)
from exceptions import MalformedHouseDataError

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RawPlanetPosition:
    """Planet position as delivered by a position provider."""
    name: PlanetName
    longitude: float
    latitude: float = 0.0
    speed: float = 0.0
    retrograde: bool = False


@dataclass(frozen=True)
class RawHouseCusp:
    """House cusp as delivered by a position provider."""
    number: int
    longitude: float
    sign: Optional[ZodiacSign] = None


@dataclass(frozen=True)
class RawChartData:
    """Complete provider response for one instant and coordinate."""
    planets: Tuple[RawPlanetPosition, ...]
    cusps: Tuple[RawHouseCusp, ...]
    ascendant: Optional[float] = None
    midheaven: Optional[float] = None
    metadata: Dict = field(default_factory=dict, compare=False)


class ChartConfig:
    """Shared configuration for chart calculations."""

    HOUSE_COUNT = 12

    # Time step used to project positions forward for applying/separating.
    APPLYING_STEP_DAYS = 0.1

    # Traditional (pre-modern) rulerships
    TRADITIONAL_RULERS: Dict[ZodiacSign, PlanetName] = {
        ZodiacSign.ARIES: PlanetName.MARS,
        ZodiacSign.TAURUS: PlanetName.VENUS,
        ZodiacSign.GEMINI: PlanetName.MERCURY,
        ZodiacSign.CANCER: PlanetName.MOON,
        ZodiacSign.LEO: PlanetName.SUN,
        ZodiacSign.VIRGO: PlanetName.MERCURY,
        ZodiacSign.LIBRA: PlanetName.VENUS,
        ZodiacSign.SCORPIO: PlanetName.MARS,
        ZodiacSign.SAGITTARIUS: PlanetName.JUPITER,
        ZodiacSign.CAPRICORN: PlanetName.SATURN,
        ZodiacSign.AQUARIUS: PlanetName.SATURN,
        ZodiacSign.PISCES: PlanetName.JUPITER,
    }

    ASPECTS: Tuple[AspectType, ...] = tuple(sorted(AspectType, key=lambda a: a.angle))


def angular_distance(pos1: float, pos2: float) -> float:
    """
    Calculate the shortest angular distance between two positions.
    Always returns a positive value 0-180.
    """
    diff = abs(normalize_degrees(pos1) - normalize_degrees(pos2))
    return min(diff, 360 - diff)


def ruler_of(sign: ZodiacSign) -> PlanetName:
    return ChartConfig.TRADITIONAL_RULERS[sign]


# Houses

def validate_houses(houses: Sequence[House]) -> List[House]:
    """Return the houses sorted by number, or fail unless they are exactly 1..12."""
    if len(houses) != ChartConfig.HOUSE_COUNT:
        raise MalformedHouseDataError(
            f"Expected {ChartConfig.HOUSE_COUNT} houses, got {len(houses)}"
        )
    ordered = sorted(houses, key=lambda h: h.number)
    numbers = [h.number for h in ordered]
    if numbers != list(range(1, ChartConfig.HOUSE_COUNT + 1)):
        raise MalformedHouseDataError(f"House numbers must be 1..12, got {numbers}")
    return ordered


def assign_house(longitude: float, houses: Sequence[House]) -> int:
    """
    Return the number of the house containing a longitude.

    House i owns the half-open arc [cusp_i, cusp_i+1) walking forward around
    the circle; the arc after house 12 ends at house 1. When no arc matches
    (degenerate or duplicate cusps) the planet falls back to house 1.
    """
    ordered = validate_houses(houses)
    planet_long = normalize_degrees(longitude)

    for i in range(ChartConfig.HOUSE_COUNT):
        cusp_start = normalize_degrees(ordered[i].cusp)
        cusp_end = normalize_degrees(ordered[(i + 1) % ChartConfig.HOUSE_COUNT].cusp)

        if cusp_start < cusp_end:
            if cusp_start <= planet_long < cusp_end:
                return ordered[i].number
        elif cusp_start > cusp_end:  # House spans 0°
            if planet_long >= cusp_start or planet_long < cusp_end:
                return ordered[i].number
        # equal cusps: empty arc

    log.warning("house_assignment_fallback", longitude=planet_long)
    return 1


# Aspects

def effective_orbs(orbs: Optional[Mapping[AspectType, float]] = None) -> Dict[AspectType, float]:
    """
    Resolve the maximum orb per aspect type.

    A custom orb can only narrow the default for its type.
    """
    resolved = {aspect: aspect.max_orb for aspect in ChartConfig.ASPECTS}
    for aspect, orb in (orbs or {}).items():
        aspect = AspectType(aspect)
        if orb < 0:
            raise ValueError(f"Orb for {aspect.value} must not be negative")
        resolved[aspect] = min(resolved[aspect], float(orb))
    return resolved


def is_applying(pos1: float, pos2: float,
                speed1: float, speed2: float,
                aspect_angle: float,
                step_days: float = ChartConfig.APPLYING_STEP_DAYS) -> bool:
    """Determine if an aspect is applying or separating."""
    if speed1 == 0 and speed2 == 0:
        return False

    current_orb = abs(angular_distance(pos1, pos2) - aspect_angle)

    # Where both bodies will be after a small time step
    future_pos1 = normalize_degrees(pos1 + speed1 * step_days)
    future_pos2 = normalize_degrees(pos2 + speed2 * step_days)
    future_orb = abs(angular_distance(future_pos1, future_pos2) - aspect_angle)

    return future_orb < current_orb


def classify_separation(separation: float,
                        orbs: Mapping[AspectType, float]) -> Optional[Tuple[AspectType, float]]:
    """Return the first aspect type (by target angle) within orb and its deviation."""
    for aspect in ChartConfig.ASPECTS:
        deviation = abs(separation - aspect.angle)
        if deviation <= orbs[aspect]:
            return aspect, deviation
    return None


def detect_aspects(planets: Sequence[Planet],
                   orbs: Optional[Mapping[AspectType, float]] = None) -> List[Aspect]:
    """
    Find major aspects between every unordered pair of planets.

    Pairs that match no aspect type produce nothing. The result is ordered
    by orb, tightest first.
    """
    max_orbs = effective_orbs(orbs)
    aspects = []

    for i, p1 in enumerate(planets):
        for p2 in planets[i + 1:]:
            if p1.name == p2.name:
                continue
            sep = angular_distance(p1.longitude, p2.longitude)
            match = classify_separation(sep, max_orbs)
            if match is None:
                continue

            aspect_type, deviation = match
            aspects.append(Aspect(
                planet1=p1.name,
                planet2=p2.name,
                type=aspect_type,
                orb=min(deviation, aspect_type.max_orb),
                applying=is_applying(p1.longitude, p2.longitude,
                                     p1.speed, p2.speed, aspect_type.angle),
            ))

    aspects.sort(key=lambda a: a.orb)
    return aspects


# House rulers

def resolve_house_rulers(houses: Iterable[House], planets: Iterable[Planet]) -> List[HouseRuler]:
    """
    Map every house to the traditional ruler of its cusp sign and report
    where that ruler sits. Houses whose ruler is not among the planets are
    left out.
    """
    by_name = {}
    for planet in planets:
        by_name.setdefault(planet.name, planet)

    rulers = []
    for house in sorted(houses, key=lambda h: h.number):
        ruling_planet = ruler_of(house.sign)
        ruler = by_name.get(ruling_planet)
        if ruler is None:
            log.debug("house_ruler_missing", house=house.number, ruler=ruling_planet.value)
            continue
        rulers.append(HouseRuler(
            house_number=house.number,
            ruling_planet=ruling_planet,
            ruler_sign=ruler.sign,
            ruler_house=ruler.house,
            ruler_longitude=ruler.longitude,
        ))
    return rulers


# Assembly

def build_houses(cusps: Iterable[RawHouseCusp]) -> List[House]:
    houses = []
    for cusp in cusps:
        cusp_long = normalize_degrees(cusp.longitude)
        houses.append(House(
            number=cusp.number,
            cusp=cusp_long,
            sign=ZodiacSign.from_longitude(cusp_long),
        ))
    return validate_houses(houses)


def build_planets(positions: Iterable[RawPlanetPosition], houses: Sequence[House]) -> List[Planet]:
    planets = []
    seen = set()
    for raw in positions:
        if raw.name in seen:
            log.warning("duplicate_planet_dropped", planet=raw.name.value)
            continue
        seen.add(raw.name)

        longitude = normalize_degrees(raw.longitude)
        planets.append(Planet(
            name=raw.name,
            longitude=longitude,
            latitude=raw.latitude,
            sign=ZodiacSign.from_longitude(longitude),
            house=assign_house(longitude, houses),
            retrograde=raw.retrograde or raw.speed < 0,
            speed=raw.speed,
        ))
    return planets


def assemble_chart(birth: BirthDetails,
                   raw: RawChartData,
                   *,
                   orbs: Optional[Mapping[AspectType, float]] = None,
                   calculated_at: Optional[datetime] = None,
                   image_reference: Optional[str] = None,
                   image_format: Optional[str] = None) -> NatalChart:
    """Combine raw provider data and birth details into one NatalChart."""
    houses = build_houses(raw.cusps)
    planets = build_planets(raw.planets, houses)
    aspects = detect_aspects(planets, orbs)
    rulers = resolve_house_rulers(houses, planets)

    ascendant = raw.ascendant if raw.ascendant is not None else houses[0].cusp
    midheaven = raw.midheaven if raw.midheaven is not None else houses[9].cusp

    return NatalChart(
        birth_date=birth.birth_date,
        birth_time=birth.birth_time,
        latitude=birth.latitude,
        longitude=birth.longitude,
        location_name=birth.location,
        houses=tuple(houses),
        planets=tuple(planets),
        aspects=tuple(aspects),
        house_rulers=tuple(rulers),
        ascendant=normalize_degrees(ascendant),
        midheaven=normalize_degrees(midheaven),
        calculated_at=calculated_at or datetime.now(timezone.utc),
        image_reference=image_reference,
        image_format=image_format,
    )
