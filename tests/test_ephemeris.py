import threading
from datetime import datetime

import pytest
import pytz

import ephemeris
from domain import PlanetName, ZodiacSign
from ephemeris import NodeType, SwissEphemerisProvider, ensure_ephemeris_initialised
from exceptions import InvalidCoordinatesError

NEW_YEAR_2025 = datetime(2025, 1, 1, 12, 0, tzinfo=pytz.UTC)


@pytest.fixture
def fresh_ephemeris(monkeypatch):
    monkeypatch.setattr(ephemeris, "_ephemeris_initialised", False)
    monkeypatch.setattr(ephemeris, "_use_moshier", True)


def test_concurrent_initialisation_runs_once(fresh_ephemeris, monkeypatch, tmp_path):
    (tmp_path / "sepl_18.se1").write_bytes(b"")
    calls = []
    monkeypatch.setattr(ephemeris.swe, "set_ephe_path", lambda path: calls.append(path))

    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(ensure_ephemeris_initialised(str(tmp_path)))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert calls == [str(tmp_path)]
    assert results.count(True) == 1
    assert ephemeris._use_moshier is False


def test_directory_without_data_files_uses_moshier(fresh_ephemeris, monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(ephemeris.swe, "set_ephe_path", lambda path: calls.append(path))

    assert ensure_ephemeris_initialised(str(tmp_path)) is True
    assert ensure_ephemeris_initialised(str(tmp_path)) is False
    assert calls == []
    assert ephemeris._use_moshier is True


def test_sun_position_on_new_year_2025(fresh_ephemeris):
    provider = SwissEphemerisProvider()
    raw = provider.calculate(NEW_YEAR_2025, 50.45, 30.52)

    sun = next(p for p in raw.planets if p.name == PlanetName.SUN)
    assert 279.0 < sun.longitude < 283.0
    assert ZodiacSign.from_longitude(sun.longitude) == ZodiacSign.CAPRICORN
    assert sun.speed > 0

    assert [c.number for c in raw.cusps] == list(range(1, 13))
    assert 0.0 <= raw.ascendant < 360.0
    assert raw.metadata["house_system"] == "Placidus"


def test_points_included(fresh_ephemeris):
    raw = SwissEphemerisProvider(node_type=NodeType.MEAN).calculate(NEW_YEAR_2025, 50.45, 30.52)
    by_name = {p.name: p for p in raw.planets}

    assert len(by_name) == 13
    north = by_name[PlanetName.NORTH_NODE]
    south = by_name[PlanetName.SOUTH_NODE]
    assert (south.longitude - north.longitude) % 360 == pytest.approx(180.0)
    assert north.retrograde is True


def test_points_can_be_excluded(fresh_ephemeris):
    raw = SwissEphemerisProvider(include_points=False).calculate(NEW_YEAR_2025, 50.45, 30.52)
    assert len(raw.planets) == 10


def test_unknown_house_system(fresh_ephemeris):
    with pytest.raises(ValueError):
        SwissEphemerisProvider(house_system="Vehlow-ish")


def test_out_of_range_coordinates(fresh_ephemeris):
    provider = SwissEphemerisProvider()
    with pytest.raises(InvalidCoordinatesError):
        provider.calculate(NEW_YEAR_2025, 91.0, 0.0)
    with pytest.raises(InvalidCoordinatesError):
        provider.calculate(NEW_YEAR_2025, 0.0, 181.0)
