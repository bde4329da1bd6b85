import json

import pytest

from ingestion.sections import get_section
from ingestion.settings import get_settings, reset_settings_cache
from ranking.profiles import DEFAULT_PROFILES


def _set_env(monkeypatch, **overrides):
    defaults = {
        "REDIS_URL": "redis://localhost:6379/0",
        "NEWS_API_KEY": "secret-key",
        "REFRESH_SCHEDULES": json.dumps(
            [
                {"section": "world", "interval_minutes": 5, "enabled": True},
                {"section": "kr", "interval_minutes": 10, "enabled": False},
            ]
        ),
    }
    defaults.update(overrides)
    for key, value in defaults.items():
        monkeypatch.setenv(key, value)


def test_get_settings_reads_environment(monkeypatch):
    _set_env(monkeypatch)

    settings = get_settings()

    assert settings.redis_url == "redis://localhost:6379/0"
    assert settings.news_api_key and settings.news_api_key.get_secret_value() == "secret-key"
    assert settings.refresh_schedules[0].section == "world"
    # alias resolved to the canonical section name
    assert settings.refresh_schedules[1].section == "korea"
    assert settings.fast_phase1_deadline_ms == 600
    assert settings.full_max == 100


def test_reset_settings_cache_reloads(monkeypatch):
    _set_env(monkeypatch, NEWS_API_KEY="first-key")
    first = get_settings()
    assert first.news_api_key.get_secret_value() == "first-key"

    monkeypatch.setenv("NEWS_API_KEY", "next-key")
    assert get_settings().news_api_key.get_secret_value() == "first-key"

    reset_settings_cache()
    assert get_settings().news_api_key.get_secret_value() == "next-key"


def test_duplicate_schedule_raises(monkeypatch):
    duplicate = json.dumps(
        [
            {"section": "tech", "interval_minutes": 5},
            {"section": "tech", "interval_minutes": 10},
        ]
    )
    _set_env(monkeypatch, REFRESH_SCHEDULES=duplicate)

    with pytest.raises(RuntimeError) as exc:
        get_settings()

    assert "중복된 스케줄 항목" in str(exc.value)


def test_unknown_schedule_section_raises(monkeypatch):
    _set_env(monkeypatch, REFRESH_SCHEDULES=json.dumps([{"section": "sports", "interval_minutes": 5}]))

    with pytest.raises(RuntimeError) as exc:
        get_settings()

    assert "sports" in str(exc.value)


def test_empty_redis_url_means_memory_only(monkeypatch):
    _set_env(monkeypatch, REDIS_URL="")

    assert get_settings().redis_url is None


def test_section_weight_override_accepts_compact_and_object_forms(monkeypatch):
    _set_env(
        monkeypatch,
        SECTION_WEIGHTS=json.dumps(
            {
                "world": "1,0,0,0,0,0",
                "tech": {"freshness": 0.5, "velocity": 0.5, "engagement": 0, "source_trust": 0, "diversity": 0, "locale": 0},
            }
        ),
    )

    settings = get_settings()

    assert settings.weight_profile("world").as_compact() == "1,0,0,0,0,0"
    assert settings.weight_profile("tech").velocity == 0.5
    assert settings.weight_profile("business") == DEFAULT_PROFILES["business"]


def test_section_weight_override_rejects_wrong_arity(monkeypatch):
    _set_env(monkeypatch, SECTION_WEIGHTS=json.dumps({"world": "1,0,0"}))

    with pytest.raises(RuntimeError):
        get_settings()


def test_ranking_strategy_override(monkeypatch):
    _set_env(monkeypatch, RANKING_STRATEGIES=json.dumps({"world": "hot"}))

    settings = get_settings()

    assert settings.ranking_strategy(get_section("world")) == "hot"
    assert settings.ranking_strategy(get_section("japan")) == "hot"
    assert settings.ranking_strategy(get_section("tech")) == "composite"


def test_section_ttl_scales_by_volatility(monkeypatch):
    _set_env(monkeypatch)
    settings = get_settings()

    assert settings.section_ttl(600, get_section("buzz")) == 300
    assert settings.section_ttl(600, get_section("business")) == 900
    assert settings.section_ttl(600, get_section("world")) == 600


def test_page_size_limit(monkeypatch):
    _set_env(monkeypatch, NEWS_API_PAGE_SIZE="150")

    with pytest.raises(RuntimeError) as exc:
        get_settings()

    assert "NEWS_API_PAGE_SIZE" in str(exc.value)
