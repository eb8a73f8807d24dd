"""Natal chart generation with cache lookup and write-through.

Only charts built with the default orbs are cached. Custom orbs are applied
to the returned chart after the cache lookup or calculation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol

import structlog

from chart_cache import ChartCache
from domain import AspectType, BirthDetails, NatalChart
from ephemeris import birth_instant_utc
from exceptions import ChartCacheError, InvalidCoordinatesError
from mapping import MappingPolicy, raw_chart_from_payload
from natal import RawChartData, assemble_chart, detect_aspects

log = structlog.get_logger(__name__)


class PositionProvider(Protocol):
    def calculate(self, utc: datetime, latitude: float, longitude: float) -> RawChartData:
        ...


@dataclass(frozen=True)
class ChartResult:
    """A chart plus where it came from. chart_id is None when it could not be cached."""
    chart: NatalChart
    cached: bool
    chart_id: Optional[str] = None


def with_orbs(chart: NatalChart, orbs: Optional[Mapping[AspectType, float]]) -> NatalChart:
    """Re-detect aspects with custom orbs; the chart is returned unchanged without them."""
    if not orbs:
        return chart
    return chart.model_copy(update={"aspects": tuple(detect_aspects(chart.planets, orbs))})


class NatalChartService:
    """Serves charts from the cache when possible and computes them otherwise."""

    def __init__(self, provider: PositionProvider, cache: ChartCache):
        self.provider = provider
        self.cache = cache

    def calculate_chart(self,
                        birth: BirthDetails,
                        force_refresh: bool = False,
                        orbs: Optional[Mapping[AspectType, float]] = None) -> ChartResult:
        result = None if force_refresh else self.find_cached(birth)
        if result is None:
            if birth.coordinate is None:
                raise InvalidCoordinatesError("Birth coordinates are required to calculate a chart")

            utc = birth_instant_utc(birth.birth_date, birth.birth_time, birth.timezone)
            raw = self.provider.calculate(utc, birth.latitude, birth.longitude)
            chart = assemble_chart(birth, raw)
            log.info("chart_calculated", utc=utc.isoformat(), planets=len(chart.planets),
                     aspects=len(chart.aspects))
            result = ChartResult(chart, cached=False, chart_id=self._store(chart, birth))

        return ChartResult(with_orbs(result.chart, orbs), result.cached, result.chart_id)

    def generate_chart(self,
                       birth: BirthDetails,
                       force_refresh: bool = False,
                       orbs: Optional[Mapping[AspectType, float]] = None) -> NatalChart:
        return self.calculate_chart(birth, force_refresh, orbs).chart

    def chart_from_payload(self,
                           birth: BirthDetails,
                           payload: Mapping[str, Any],
                           policy: MappingPolicy = MappingPolicy.LENIENT,
                           orbs: Optional[Mapping[AspectType, float]] = None) -> ChartResult:
        """Assemble a chart from a third-party provider payload and cache it."""
        raw = raw_chart_from_payload(payload, policy)
        chart = assemble_chart(birth, raw)
        log.info("chart_assembled_from_payload", policy=policy.value, planets=len(chart.planets))

        chart_id = self._store(chart, birth)
        return ChartResult(with_orbs(chart, orbs), cached=False, chart_id=chart_id)

    def generate_from_payload(self,
                              birth: BirthDetails,
                              payload: Mapping[str, Any],
                              policy: MappingPolicy = MappingPolicy.LENIENT,
                              orbs: Optional[Mapping[AspectType, float]] = None) -> NatalChart:
        return self.chart_from_payload(birth, payload, policy, orbs).chart

    def find_cached(self, birth: BirthDetails) -> Optional[ChartResult]:
        try:
            entry = self.cache.find_with_id(birth)
        except ChartCacheError as e:
            log.warning("chart_cache_read_failed", error=str(e))
            return None
        if entry is None:
            return None
        chart_id, chart = entry
        return ChartResult(chart, cached=True, chart_id=chart_id)

    def get_cached_chart(self, birth: BirthDetails) -> Optional[NatalChart]:
        result = self.find_cached(birth)
        return result.chart if result is not None else None

    def get_chart(self, chart_id: str) -> Optional[NatalChart]:
        return self.cache.load(chart_id)

    def clear_old_charts(self, older_than_days: Optional[int] = None) -> int:
        return self.cache.clear_old_charts(older_than_days)

    def _store(self, chart: NatalChart, birth: BirthDetails) -> Optional[str]:
        # The chart is still returned when it cannot be cached
        try:
            return self.cache.save(chart, birth)
        except ChartCacheError as e:
            log.warning("chart_cache_write_failed", error=str(e))
            return None
