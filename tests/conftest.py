import os
import sys
from datetime import date, time

import pytest

# Ensure the project root is on sys.path so that top-level imports like
# `from natal import ...` resolve when running tests from anywhere.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from chart_cache import ChartCache  # noqa: E402
from db import get_engine  # noqa: E402
from domain import BirthDetails, House, Planet, PlanetName, ZodiacSign  # noqa: E402
from natal import RawChartData, RawHouseCusp, RawPlanetPosition  # noqa: E402
from service import NatalChartService  # noqa: E402

EQUAL_CUSPS = [30.0 * i for i in range(12)]


def make_houses(cusps):
    return [
        House(number=i + 1, cusp=c % 360, sign=ZodiacSign.from_longitude(c))
        for i, c in enumerate(cusps)
    ]


def make_planet(name, longitude, speed=0.0, house=1):
    return Planet(
        name=name,
        longitude=longitude,
        sign=ZodiacSign.from_longitude(longitude),
        house=house,
        speed=speed,
        retrograde=speed < 0,
    )


class FakeProvider:
    """Position provider returning canned data and recording its calls."""

    def __init__(self, raw):
        self.raw = raw
        self.calls = []

    def calculate(self, utc, latitude, longitude):
        self.calls.append((utc, latitude, longitude))
        return self.raw


@pytest.fixture
def sample_birth():
    return BirthDetails(
        name="Test",
        birth_date=date(2025, 1, 1),
        birth_time=time(12, 0, 0),
        location="Kyiv",
        timezone="UTC",
        latitude=50.45,
        longitude=30.52,
    )


@pytest.fixture
def raw_chart():
    planets = (
        RawPlanetPosition(PlanetName.SUN, 10.0, speed=1.0),
        RawPlanetPosition(PlanetName.MOON, 130.0, speed=13.0),
        RawPlanetPosition(PlanetName.MERCURY, 45.0, speed=1.2),
        RawPlanetPosition(PlanetName.VENUS, 200.0, speed=-0.5),
        RawPlanetPosition(PlanetName.MARS, 100.0, speed=0.5),
        RawPlanetPosition(PlanetName.JUPITER, 250.0, speed=0.1),
        RawPlanetPosition(PlanetName.SATURN, 300.0, speed=0.05),
    )
    cusps = tuple(RawHouseCusp(i + 1, c) for i, c in enumerate(EQUAL_CUSPS))
    return RawChartData(planets=planets, cusps=cusps, ascendant=0.0, midheaven=270.0)


@pytest.fixture
def provider(raw_chart):
    return FakeProvider(raw_chart)


@pytest.fixture
def cache():
    return ChartCache(get_engine())


@pytest.fixture
def service(provider, cache):
    return NatalChartService(provider, cache)


@pytest.fixture
def client(service):
    from fastapi.testclient import TestClient

    from deps import get_chart_service
    from main import app

    app.dependency_overrides[get_chart_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
