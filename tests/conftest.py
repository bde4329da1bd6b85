from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Upstream credentials in the developer's shell must not leak into tests.
_ENV_KEYS = (
    "REDIS_URL",
    "NEWS_API_KEY",
    "NAVER_CLIENT_ID",
    "NAVER_CLIENT_SECRET",
    "X_BEARER_TOKEN",
    "REDDIT_TOKEN",
    "YOUTUBE_API_KEY",
    "OPENAI_API_KEY",
    "SECTION_WEIGHTS",
    "RANKING_STRATEGIES",
    "REFRESH_SCHEDULES",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    from ingestion.settings import reset_settings_cache
    from llm.settings import reset_llm_settings_cache

    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_settings_cache()
    reset_llm_settings_cache()
    yield
    reset_settings_cache()
    reset_llm_settings_cache()
