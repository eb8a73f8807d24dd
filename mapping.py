"""
Name mapping at the position-provider boundary.

Third-party astrology APIs spell planets, signs and aspects in many ways
("SUN", "true_node", "Ari", 1). These helpers turn those spellings into the
domain enums. Under the strict policy an unknown name is an error; under the
lenient policy it maps to None and the caller skips the entry.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import structlog

from domain import AspectType, PlanetName, ZodiacSign
from exceptions import ChartMappingError, UnmappedNameError
from natal import RawChartData, RawHouseCusp, RawPlanetPosition

log = structlog.get_logger(__name__)


class MappingPolicy(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"


PLANET_ALIASES = {
    PlanetName.SUN: ("sun",),
    PlanetName.MOON: ("moon",),
    PlanetName.MERCURY: ("mercury",),
    PlanetName.VENUS: ("venus",),
    PlanetName.MARS: ("mars",),
    PlanetName.JUPITER: ("jupiter",),
    PlanetName.SATURN: ("saturn",),
    PlanetName.URANUS: ("uranus",),
    PlanetName.NEPTUNE: ("neptune",),
    PlanetName.PLUTO: ("pluto",),
    PlanetName.NORTH_NODE: ("north node", "true node", "mean node", "node", "rahu"),
    PlanetName.SOUTH_NODE: ("south node", "ketu"),
    PlanetName.LILITH: ("lilith", "mean lilith", "black moon", "black moon lilith"),
}

SIGN_ALIASES = {
    ZodiacSign.ARIES: ("ari", "aries"),
    ZodiacSign.TAURUS: ("tau", "taurus"),
    ZodiacSign.GEMINI: ("gem", "gemini"),
    ZodiacSign.CANCER: ("can", "cancer"),
    ZodiacSign.LEO: ("leo",),
    ZodiacSign.VIRGO: ("vir", "virgo"),
    ZodiacSign.LIBRA: ("lib", "libra"),
    ZodiacSign.SCORPIO: ("sco", "scorpio"),
    ZodiacSign.SAGITTARIUS: ("sag", "sagittarius"),
    ZodiacSign.CAPRICORN: ("cap", "capricorn"),
    ZodiacSign.AQUARIUS: ("aqu", "aquarius"),
    ZodiacSign.PISCES: ("pis", "pisces"),
}

ASPECT_ALIASES = {
    AspectType.CONJUNCTION: ("conjunction", "conj"),
    AspectType.SEXTILE: ("sextile", "sext"),
    AspectType.SQUARE: ("square", "sqr", "quadrature"),
    AspectType.TRINE: ("trine", "tri"),
    AspectType.OPPOSITION: ("opposition", "opp"),
}


def _build_lookup(aliases: Mapping[Enum, tuple]) -> Dict[str, Enum]:
    return {alias: member for member, names in aliases.items() for alias in names}


_PLANETS = _build_lookup(PLANET_ALIASES)
_SIGNS = _build_lookup(SIGN_ALIASES)
_ASPECTS = _build_lookup(ASPECT_ALIASES)


def _canonical(name: str) -> str:
    """'True_Node' / 'true-node' / ' TRUE NODE ' -> 'true node'"""
    return " ".join(name.replace("_", " ").replace("-", " ").lower().split())


def _resolve(kind: str, name: Any, lookup: Mapping[str, Enum], policy: MappingPolicy):
    member = lookup.get(_canonical(name)) if isinstance(name, str) else None
    if member is None:
        if policy == MappingPolicy.STRICT:
            raise UnmappedNameError(kind, str(name))
        log.debug("provider_name_skipped", kind=kind, name=name)
    return member


def parse_planet_name(name: str, policy: MappingPolicy = MappingPolicy.STRICT) -> Optional[PlanetName]:
    return _resolve("planet", name, _PLANETS, policy)


def parse_aspect_name(name: str, policy: MappingPolicy = MappingPolicy.STRICT) -> Optional[AspectType]:
    return _resolve("aspect", name, _ASPECTS, policy)


def parse_sign_name(name: Union[str, int],
                    policy: MappingPolicy = MappingPolicy.STRICT) -> Optional[ZodiacSign]:
    """Accepts sign names, three-letter abbreviations and sign numbers 1-12."""
    if isinstance(name, int) and not isinstance(name, bool):
        if 1 <= name <= 12:
            return list(ZodiacSign)[name - 1]
        name = str(name)
    return _resolve("sign", name, _SIGNS, policy)


# Payload conversion

def _first(entry: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if entry.get(key) is not None:
            return entry[key]
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "r")
    return bool(value)


def _as_float(value: Any, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ChartMappingError(f"Invalid {what}: {value!r}") from None


def _map_planet(entry: Mapping[str, Any], policy: MappingPolicy) -> Optional[RawPlanetPosition]:
    name = parse_planet_name(_first(entry, "name", "planet", "id"), policy)
    if name is None:
        return None

    longitude = _first(entry, "longitude", "full_degree", "fullDegree", "abs_pos", "absolute_longitude")
    if longitude is None:
        if policy == MappingPolicy.STRICT:
            raise ChartMappingError(f"Planet {name.value} has no longitude")
        log.debug("provider_planet_without_longitude", planet=name.value)
        return None

    speed = _as_float(_first(entry, "speed", "speed_longitude") or 0.0, "speed")
    retrograde = _first(entry, "retrograde", "is_retrograde", "isRetro", "is_retro")
    return RawPlanetPosition(
        name=name,
        longitude=_as_float(longitude, f"{name.value} longitude"),
        latitude=_as_float(_first(entry, "latitude") or 0.0, f"{name.value} latitude"),
        speed=speed,
        retrograde=_as_bool(retrograde) if retrograde is not None else speed < 0,
    )


def _map_house(entry: Mapping[str, Any], policy: MappingPolicy) -> Optional[RawHouseCusp]:
    number = _first(entry, "house", "number")
    cusp = _first(entry, "degree", "longitude", "cusp")
    if number is None or cusp is None:
        if policy == MappingPolicy.STRICT:
            raise ChartMappingError(f"Incomplete house entry: {dict(entry)}")
        log.debug("provider_house_skipped", entry=dict(entry))
        return None

    house_number = _as_float(number, "house number")
    if not house_number.is_integer():
        if policy == MappingPolicy.STRICT:
            raise ChartMappingError(f"House number must be a whole number: {number!r}")
        log.debug("provider_house_skipped", entry=dict(entry))
        return None

    sign = _first(entry, "sign")
    return RawHouseCusp(
        number=int(house_number),
        longitude=_as_float(cusp, f"house {number} cusp"),
        sign=parse_sign_name(sign, policy) if sign is not None else None,
    )


def _entries(payload: Mapping[str, Any], key: str, policy: MappingPolicy) -> List[Mapping[str, Any]]:
    """Object entries of payload[key]; anything else is skipped or rejected per policy."""
    items = payload.get(key) or []
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
        if policy == MappingPolicy.STRICT:
            raise ChartMappingError(f"'{key}' must be a list, got {type(items).__name__}")
        log.debug("provider_section_skipped", section=key)
        return []

    entries = []
    for item in items:
        if isinstance(item, Mapping):
            entries.append(item)
        elif policy == MappingPolicy.STRICT:
            raise ChartMappingError(f"Invalid {key} entry: {item!r}")
        else:
            log.debug("provider_entry_skipped", section=key, entry=repr(item))
    return entries


def raw_chart_from_payload(payload: Mapping[str, Any],
                           policy: MappingPolicy = MappingPolicy.LENIENT) -> RawChartData:
    """
    Convert a third-party chart payload into RawChartData.

    Expected shape: {"planets": [...], "houses": [...], "ascendant": x,
    "midheaven": y}. House count is checked later by the assembler.
    """
    planets: List[RawPlanetPosition] = []
    for entry in _entries(payload, "planets", policy):
        planet = _map_planet(entry, policy)
        if planet is not None:
            planets.append(planet)

    cusps: List[RawHouseCusp] = []
    for entry in _entries(payload, "houses", policy):
        cusp = _map_house(entry, policy)
        if cusp is not None:
            cusps.append(cusp)

    ascendant = _first(payload, "ascendant", "asc")
    midheaven = _first(payload, "midheaven", "mc", "medium_coeli")

    return RawChartData(
        planets=tuple(planets),
        cusps=tuple(cusps),
        ascendant=_as_float(ascendant, "ascendant") if ascendant is not None else None,
        midheaven=_as_float(midheaven, "midheaven") if midheaven is not None else None,
        metadata={"source": "payload", "policy": policy.value},
    )
