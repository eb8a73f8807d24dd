from settings import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("HOUSE_SYSTEM", raising=False)
    settings = Settings(_env_file=None)
    assert settings.HOUSE_SYSTEM == "Placidus"
    assert settings.CACHE_MAX_AGE_DAYS == 30
    assert settings.DATABASE_URL.startswith("sqlite")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CACHE_MAX_AGE_DAYS", "7")
    monkeypatch.setenv("log_json", "true")
    settings = Settings(_env_file=None)
    assert settings.CACHE_MAX_AGE_DAYS == 7
    assert settings.LOG_JSON is True
