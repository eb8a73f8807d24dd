"""Domain value objects for natal charts.

Planet identities, zodiac signs and aspect types are closed enums; the chart
aggregate and its parts are frozen pydantic models that serialise with
camelCase field names.
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def normalize_degrees(deg: float) -> float:
    """Normalize degrees to 0-360 range."""
    result = deg % 360.0
    # -1e-20 % 360 rounds up to exactly 360.0
    return 0.0 if result >= 360.0 else result


class PlanetName(str, Enum):
    SUN = "Sun"
    MOON = "Moon"
    MERCURY = "Mercury"
    VENUS = "Venus"
    MARS = "Mars"
    JUPITER = "Jupiter"
    SATURN = "Saturn"
    URANUS = "Uranus"
    NEPTUNE = "Neptune"
    PLUTO = "Pluto"
    NORTH_NODE = "North Node"
    SOUTH_NODE = "South Node"
    LILITH = "Lilith"


CLASSICAL_PLANETS = (
    PlanetName.SUN,
    PlanetName.MOON,
    PlanetName.MERCURY,
    PlanetName.VENUS,
    PlanetName.MARS,
    PlanetName.JUPITER,
    PlanetName.SATURN,
    PlanetName.URANUS,
    PlanetName.NEPTUNE,
    PlanetName.PLUTO,
)


class ZodiacSign(str, Enum):
    ARIES = "Aries"
    TAURUS = "Taurus"
    GEMINI = "Gemini"
    CANCER = "Cancer"
    LEO = "Leo"
    VIRGO = "Virgo"
    LIBRA = "Libra"
    SCORPIO = "Scorpio"
    SAGITTARIUS = "Sagittarius"
    CAPRICORN = "Capricorn"
    AQUARIUS = "Aquarius"
    PISCES = "Pisces"

    @classmethod
    def from_longitude(cls, longitude: float) -> "ZodiacSign":
        """Sign containing the longitude, 30 degrees per sign from 0° Aries."""
        index = int(normalize_degrees(longitude) // 30) % 12
        return list(cls)[index]


class AspectType(str, Enum):
    """Major aspects, declared in ascending target-angle order."""
    CONJUNCTION = "Conjunction"
    SEXTILE = "Sextile"
    SQUARE = "Square"
    TRINE = "Trine"
    OPPOSITION = "Opposition"

    @property
    def angle(self) -> float:
        return ASPECT_ANGLES[self]

    @property
    def max_orb(self) -> float:
        return ASPECT_MAX_ORBS[self]


ASPECT_ANGLES = {
    AspectType.CONJUNCTION: 0.0,
    AspectType.SEXTILE: 60.0,
    AspectType.SQUARE: 90.0,
    AspectType.TRINE: 120.0,
    AspectType.OPPOSITION: 180.0,
}

ASPECT_MAX_ORBS = {
    AspectType.CONJUNCTION: 8.0,
    AspectType.SEXTILE: 6.0,
    AspectType.SQUARE: 7.0,
    AspectType.TRINE: 7.0,
    AspectType.OPPOSITION: 8.0,
}


class DomainModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class BirthDetails(DomainModel):
    """Birth data supplied by the caller. Never mutated by the engine."""

    name: str = ""
    birth_date: date
    birth_time: time
    location: str = ""
    timezone: str = Field(..., min_length=1, description="IANA timezone identifier")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("name", "location")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def validate_coordinate_pair(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        return self

    @property
    def coordinate(self) -> Optional[tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


class Planet(DomainModel):
    name: PlanetName = Field(alias="id")
    longitude: float
    latitude: float = 0.0
    sign: ZodiacSign
    house: int = Field(..., ge=1, le=12)
    retrograde: bool = False
    speed: float = 0.0


class House(DomainModel):
    number: int = Field(..., ge=1, le=12)
    cusp: float
    sign: ZodiacSign


class Aspect(DomainModel):
    planet1: PlanetName
    planet2: PlanetName
    type: AspectType
    orb: float
    applying: bool

    @model_validator(mode="after")
    def validate_distinct_planets(self):
        if self.planet1 == self.planet2:
            raise ValueError("an aspect needs two distinct planets")
        return self


class HouseRuler(DomainModel):
    house_number: int = Field(..., ge=1, le=12)
    ruling_planet: PlanetName
    ruler_sign: ZodiacSign
    ruler_house: int
    ruler_longitude: float


class NatalChart(DomainModel):
    """A fully assembled natal chart."""

    birth_date: date
    birth_time: time
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: str = ""
    houses: tuple[House, ...]
    planets: tuple[Planet, ...]
    aspects: tuple[Aspect, ...] = ()
    house_rulers: tuple[HouseRuler, ...] = ()
    ascendant: float
    midheaven: float
    calculated_at: datetime
    image_reference: Optional[str] = None
    image_format: Optional[str] = None

    def planet(self, name: PlanetName) -> Optional[Planet]:
        for p in self.planets:
            if p.name == name:
                return p
        return None

    def house(self, number: int) -> Optional[House]:
        for h in self.houses:
            if h.number == number:
                return h
        return None
