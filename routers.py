"""API routers for the natal chart service.

Handlers that touch the chart cache are plain functions so FastAPI runs them
in its threadpool instead of blocking the event loop.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from domain import ZodiacSign
from models import (
    AspectDefinitionResponse,
    BirthDetailsRequest,
    CacheClearResponse,
    ConfigAspectsResponse,
    ConfigRulershipsResponse,
    NatalChartRequest,
    NatalChartResponse,
    ProviderChartRequest,
    RulershipResponse,
)
from deps import get_chart_service
from mapping import MappingPolicy
from natal import ChartConfig
from service import ChartResult, NatalChartService
from settings import get_settings

router = APIRouter()


def _chart_response(result: ChartResult) -> NatalChartResponse:
    return NatalChartResponse(
        chart=result.chart,
        cached=result.cached,
        chart_id=result.chart_id,
    )


# Configuration Endpoints
@router.get(
    "/config/aspects",
    response_model=ConfigAspectsResponse,
    summary="List Aspect Definitions",
    description="Major aspects with their target angle and default maximum orb."
)
async def get_aspects():
    """List all aspect definitions with orb information."""
    return ConfigAspectsResponse(
        aspects=[
            AspectDefinitionResponse(name=asp, angle=asp.angle, max_orb=asp.max_orb)
            for asp in ChartConfig.ASPECTS
        ]
    )


@router.get(
    "/config/rulerships",
    response_model=ConfigRulershipsResponse,
    summary="List Traditional Rulerships",
    description="Sign to ruling planet table used for house rulers."
)
async def get_rulerships():
    return ConfigRulershipsResponse(
        rulerships=[
            RulershipResponse(sign=sign, ruler=ChartConfig.TRADITIONAL_RULERS[sign])
            for sign in ZodiacSign
        ]
    )


# Natal Chart Endpoints
@router.post(
    "/natal/calculate",
    response_model=NatalChartResponse,
    summary="Calculate Natal Chart",
    description="""
    Calculate a natal chart including:
    - Planetary positions in signs and houses
    - House cusps, ascendant and midheaven
    - Major aspects with applying/separating status
    - Traditional house rulers

    A previously calculated chart for the same birth details is served from
    the cache unless `forceRefresh` is set.
    """,
    responses={
        200: {"description": "Successful calculation or cache hit"},
        422: {"description": "Validation error - invalid birth data"},
        500: {"description": "Calculation error - Swiss Ephemeris internal error"}
    }
)
def calculate_natal_chart(request: NatalChartRequest,
                          service: NatalChartService = Depends(get_chart_service)):
    """Calculate a single natal chart."""
    result = service.calculate_chart(
        request.to_birth_details(),
        force_refresh=request.force_refresh,
        orbs=request.aspect_orbs(),
    )
    return _chart_response(result)


@router.post(
    "/natal/from-provider",
    response_model=NatalChartResponse,
    summary="Assemble Chart From Provider Data",
    description="""
    Build a chart from a third-party provider payload instead of Swiss Ephemeris.
    With the lenient policy unrecognised planets are skipped; with the strict
    policy they fail the request.
    """,
    responses={
        200: {"description": "Chart assembled"},
        422: {"description": "Payload could not be mapped"}
    }
)
def chart_from_provider(request: ProviderChartRequest,
                        service: NatalChartService = Depends(get_chart_service)):
    birth = request.to_birth_details()
    policy = request.policy or MappingPolicy(get_settings().PROVIDER_MAPPING_POLICY.lower())
    result = service.chart_from_payload(
        birth, request.payload, policy=policy, orbs=request.aspect_orbs()
    )
    return _chart_response(result)


@router.post(
    "/natal/cached",
    response_model=NatalChartResponse,
    summary="Find Cached Chart",
    responses={404: {"description": "No cached chart for these birth details"}}
)
def find_cached_chart(request: BirthDetailsRequest,
                      service: NatalChartService = Depends(get_chart_service)):
    result = service.find_cached(request.to_birth_details())
    if result is None:
        raise HTTPException(status_code=404, detail="No cached chart for these birth details")
    return _chart_response(result)


@router.get(
    "/natal/{chart_id}",
    response_model=NatalChartResponse,
    summary="Load Cached Chart By Id",
    responses={404: {"description": "Unknown chart id"}}
)
def get_chart(chart_id: str, service: NatalChartService = Depends(get_chart_service)):
    chart = service.get_chart(chart_id)
    if chart is None:
        raise HTTPException(status_code=404, detail=f"Chart {chart_id} not found")
    return NatalChartResponse(chart=chart, cached=True, chart_id=chart_id)


@router.delete(
    "/cache",
    response_model=CacheClearResponse,
    summary="Purge Old Cached Charts"
)
def clear_cache(older_than_days: Optional[int] = Query(None, ge=0),
                service: NatalChartService = Depends(get_chart_service)):
    return CacheClearResponse(removed=service.clear_old_charts(older_than_days))
