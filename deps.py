"""FastAPI dependencies."""

from datetime import timedelta
from functools import lru_cache

from chart_cache import ChartCache
from db import get_engine
from ephemeris import NodeType, SwissEphemerisProvider
from service import NatalChartService
from settings import get_settings


@lru_cache
def get_chart_service() -> NatalChartService:
    """Build the process-wide chart service from settings."""
    settings = get_settings()
    provider = SwissEphemerisProvider(
        house_system=settings.HOUSE_SYSTEM,
        node_type=NodeType(settings.NODE_TYPE),
        include_points=settings.INCLUDE_POINTS,
        ephemeris_path=settings.EPHEMERIS_PATH,
    )
    cache = ChartCache(
        get_engine(settings.DATABASE_URL),
        house_system=settings.HOUSE_SYSTEM.lower(),
        max_cache_age=timedelta(days=settings.CACHE_MAX_AGE_DAYS),
    )
    return NatalChartService(provider, cache)
