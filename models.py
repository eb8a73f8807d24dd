"""Pydantic models for API request/response validation."""

from datetime import date, time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from domain import AspectType, BirthDetails, NatalChart, PlanetName, ZodiacSign
from exceptions import UnmappedNameError
from mapping import MappingPolicy, parse_aspect_name


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request Models
class BirthDetailsRequest(ApiModel):
    """Birth data identifying a chart."""

    name: str = Field("", description="Person name")
    birth_date: date = Field(..., description="Birth date (YYYY-MM-DD)")
    birth_time: time = Field(..., description="Local birth time (HH:MM[:SS])")
    location: str = Field("", description="Free-text birth place")
    timezone: str = Field(..., description="IANA timezone name (e.g., 'Europe/Kyiv')")
    latitude: Optional[float] = Field(
        None,
        ge=-90,
        le=90,
        description="Latitude in decimal degrees (-90 to 90)"
    )
    longitude: Optional[float] = Field(
        None,
        ge=-180,
        le=180,
        description="Longitude in decimal degrees (-180 to 180)"
    )

    @model_validator(mode='after')
    def validate_coordinate_pair(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        return self

    def to_birth_details(self) -> BirthDetails:
        return BirthDetails(
            name=self.name,
            birth_date=self.birth_date,
            birth_time=self.birth_time,
            location=self.location,
            timezone=self.timezone,
            latitude=self.latitude,
            longitude=self.longitude,
        )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [{
                "name": "Olena",
                "birthDate": "1990-06-15",
                "birthTime": "14:30:00",
                "location": "Kyiv, Ukraine",
                "timezone": "Europe/Kyiv",
                "latitude": 50.45,
                "longitude": 30.52
            }]
        }
    )


class NatalChartRequest(BirthDetailsRequest):
    """Request model for natal chart calculation."""

    force_refresh: bool = Field(
        default=False,
        description="Recalculate even when a cached chart exists"
    )
    orbs: Optional[dict[str, float]] = Field(
        None,
        description="Narrower maximum orbs per aspect type, e.g. {'trine': 5}"
    )

    @field_validator('orbs')
    @classmethod
    def validate_orbs(cls, v: Optional[dict[str, float]]) -> Optional[dict[str, float]]:
        if v is None:
            return v
        for name, orb in v.items():
            try:
                parse_aspect_name(name)
            except UnmappedNameError as e:
                raise ValueError(str(e)) from e
            if orb < 0:
                raise ValueError(f"Orb for {name} must not be negative")
        return v

    def aspect_orbs(self) -> Optional[dict[AspectType, float]]:
        if self.orbs is None:
            return None
        return {parse_aspect_name(name): orb for name, orb in self.orbs.items()}


class ProviderChartRequest(NatalChartRequest):
    """Chart assembled from a third-party provider payload."""

    payload: dict[str, Any] = Field(
        ...,
        description="Provider body with 'planets', 'houses' and optional 'ascendant'/'midheaven'"
    )
    policy: Optional[MappingPolicy] = Field(
        default=None,
        description="How unrecognised planet/sign names are handled; defaults to PROVIDER_MAPPING_POLICY"
    )


# Response Models
class NatalChartResponse(ApiModel):
    """Natal chart with cache information."""
    chart: NatalChart
    cached: bool
    chart_id: Optional[str] = None


class CacheClearResponse(ApiModel):
    removed: int


class AspectDefinitionResponse(ApiModel):
    """Aspect definition with its default maximum orb."""
    name: AspectType
    angle: float
    max_orb: float


class ConfigAspectsResponse(ApiModel):
    aspects: list[AspectDefinitionResponse]


class RulershipResponse(ApiModel):
    sign: ZodiacSign
    ruler: PlanetName


class ConfigRulershipsResponse(ApiModel):
    rulerships: list[RulershipResponse]


class ErrorDetail(BaseModel):
    """Error body returned by the exception handlers."""
    error: str
    message: str
    detail: Optional[Any] = None
