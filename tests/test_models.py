import pytest
from pydantic import ValidationError

from domain import AspectType
from models import BirthDetailsRequest, NatalChartRequest


def test_birth_request_accepts_camel_case_and_field_names():
    camel = BirthDetailsRequest.model_validate(
        {"birthDate": "2025-01-01", "birthTime": "12:00", "timezone": "UTC"}
    )
    snake = BirthDetailsRequest(birth_date="2025-01-01", birth_time="12:00", timezone="UTC")
    assert camel == snake
    assert "birthDate" in camel.model_dump(by_alias=True)


def test_birth_request_schema_example():
    schema = BirthDetailsRequest.model_json_schema(by_alias=True)
    assert schema["examples"][0]["timezone"] == "Europe/Kyiv"
    assert "birthDate" in schema["properties"]


def test_orbs_parsed_to_aspect_types():
    request = NatalChartRequest(birth_date="2025-01-01", birth_time="12:00", timezone="UTC",
                                orbs={"trine": 5, "OPP": 3})
    assert request.aspect_orbs() == {AspectType.TRINE: 5, AspectType.OPPOSITION: 3}


def test_negative_orb_rejected():
    with pytest.raises(ValidationError):
        NatalChartRequest(birth_date="2025-01-01", birth_time="12:00", timezone="UTC",
                          orbs={"square": -1})
