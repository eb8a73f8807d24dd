from datetime import datetime, timedelta, timezone

import pytest

from chart_cache import ChartCache, fingerprint
from db import get_engine
from exceptions import ChartCacheError
from natal import assemble_chart
from orm import Base

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def chart(sample_birth, raw_chart):
    return assemble_chart(sample_birth, raw_chart, calculated_at=NOW)


def test_round_trip(cache, sample_birth, chart):
    cache.save(chart, sample_birth)
    found = cache.find(sample_birth)

    assert found is not None
    assert [p.name for p in found.planets] == [p.name for p in chart.planets]
    for restored, original in zip(found.planets, chart.planets):
        assert restored.longitude == pytest.approx(original.longitude, abs=1e-6)
        assert restored.house == original.house
        assert restored.retrograde == original.retrograde
    assert found.houses == chart.houses
    assert found.aspects == chart.aspects
    assert found.house_rulers == chart.house_rulers
    assert found.ascendant == pytest.approx(chart.ascendant, abs=1e-6)
    assert found.calculated_at == NOW


def test_miss_on_empty_cache(cache, sample_birth):
    assert cache.find(sample_birth) is None


def test_coordinates_matched_within_tolerance(cache, sample_birth, chart):
    cache.save(chart, sample_birth)

    near = sample_birth.model_copy(update={"latitude": 50.45005, "longitude": 30.52005})
    far = sample_birth.model_copy(update={"latitude": 50.4502})
    assert cache.find(near) is not None
    assert cache.find(far) is None


def test_location_compared_without_case(cache, sample_birth, chart):
    cache.save(chart, sample_birth)
    assert cache.find(sample_birth.model_copy(update={"location": "KYIV"})) is not None
    assert cache.find(sample_birth.model_copy(update={"location": "Lviv"})) is None


def test_timezone_and_time_are_part_of_identity(cache, sample_birth, chart):
    cache.save(chart, sample_birth)
    other_tz = sample_birth.model_copy(update={"timezone": "Europe/Kyiv"})
    other_second = sample_birth.model_copy(
        update={"birth_time": sample_birth.birth_time.replace(second=1)}
    )
    assert cache.find(other_tz) is None
    assert cache.find(other_second) is None


def test_sub_second_difference_still_matches(cache, sample_birth, chart):
    cache.save(chart, sample_birth)
    later = sample_birth.model_copy(
        update={"birth_time": sample_birth.birth_time.replace(microsecond=500)}
    )
    assert cache.find(later) is not None


def test_missing_coordinates_match_only_missing(cache, sample_birth, raw_chart):
    no_coords = sample_birth.model_copy(update={"latitude": None, "longitude": None})
    cache.save(assemble_chart(no_coords, raw_chart, calculated_at=NOW), no_coords)

    assert cache.find(no_coords) is not None
    assert cache.find(sample_birth) is None


def test_save_overwrites_matching_entry(cache, sample_birth, raw_chart, chart):
    first_id = cache.save(chart, sample_birth)

    updated = assemble_chart(sample_birth, raw_chart, calculated_at=NOW + timedelta(hours=1),
                             image_reference="charts/new.png", image_format="png")
    second_id = cache.save(updated, sample_birth)

    assert first_id == second_id
    found = cache.find(sample_birth)
    assert found.calculated_at == NOW + timedelta(hours=1)
    assert found.image_reference == "charts/new.png"


def test_load_by_id(cache, sample_birth, chart):
    chart_id = cache.save(chart, sample_birth)
    assert cache.find_id(sample_birth) == chart_id
    assert cache.load(chart_id).location_name == "Kyiv"
    assert cache.load("does-not-exist") is None


def test_image_metadata_saved(cache, sample_birth, chart):
    cache.save(chart, sample_birth, image_reference="s3://charts/1.svg", image_format="svg")
    found = cache.find(sample_birth)
    assert (found.image_reference, found.image_format) == ("s3://charts/1.svg", "svg")


def test_is_stale(sample_birth, chart):
    cache = ChartCache(get_engine(), max_cache_age=timedelta(days=30))
    assert not cache.is_stale(chart, reference=NOW + timedelta(days=29))
    assert cache.is_stale(chart, reference=NOW + timedelta(days=31))


def test_clear_old_charts(cache, sample_birth, raw_chart, chart):
    old_birth = sample_birth.model_copy(update={"location": "Odesa"})
    old_chart = assemble_chart(old_birth, raw_chart, calculated_at=NOW - timedelta(days=40))
    cache.save(old_chart, old_birth)
    cache.save(chart, sample_birth)

    removed = cache.clear_old_charts(reference=NOW)

    assert removed == 1
    assert cache.find(old_birth) is None
    assert cache.find(sample_birth) is not None


def test_clear_with_explicit_age(cache, sample_birth, chart):
    cache.save(chart, sample_birth)
    assert cache.clear_old_charts(older_than_days=1, reference=NOW + timedelta(hours=12)) == 0
    assert cache.clear_old_charts(older_than_days=1, reference=NOW + timedelta(days=2)) == 1


def test_fingerprint_lookup_key(sample_birth):
    key = fingerprint(sample_birth.model_copy(update={"location": "  Kyiv "})).lookup_key
    assert key == "2025-01-01|12:00:00|kyiv|UTC"


def test_find_with_id(cache, sample_birth, chart):
    assert cache.find_with_id(sample_birth) is None
    chart_id = cache.save(chart, sample_birth)
    found_id, found = cache.find_with_id(sample_birth)
    assert found_id == chart_id
    assert found.location_name == "Kyiv"


def test_store_errors_are_cache_errors(cache, sample_birth, chart):
    Base.metadata.drop_all(cache._engine)
    with pytest.raises(ChartCacheError):
        cache.find_id(sample_birth)
    with pytest.raises(ChartCacheError):
        cache.clear_old_charts(reference=NOW)
    with pytest.raises(ChartCacheError):
        cache.save(chart, sample_birth)
