"""
Configuration tests.
"""

import pytest

from app.config import Settings, get_settings


def test_get_settings_returns_settings() -> None:
    """get_settings returns a Settings instance."""
    settings = get_settings()
    assert isinstance(settings, Settings)


def test_settings_defaults() -> None:
    settings = get_settings()
    assert settings.app_name == "Cadence"
    assert settings.coordination_event_lookback_hours == 72
    assert settings.coordination_sweep_batch_limit == 500
    assert settings.nudge_activity_window_minutes == 30
    assert settings.nudge_dismissal_cooldown_hours == 24
    assert settings.nudge_quality_window_days == 14
    assert settings.nudge_quality_min_samples == 10
    assert settings.nudge_dismissal_rate_threshold == 0.45


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COORDINATION_EVENT_LOOKBACK_HOURS", "24")
    monkeypatch.setenv("NUDGE_DISMISSAL_RATE_THRESHOLD", "0.3")
    get_settings.cache_clear()
    settings = get_settings()
    assert settings.coordination_event_lookback_hours == 24
    assert settings.nudge_dismissal_rate_threshold == 0.3


def test_generic_postgres_url_gets_psycopg_driver(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/cadence")
    get_settings.cache_clear()
    assert get_settings().database_url == "postgresql+psycopg://u:p@db:5432/cadence"


def test_sqlite_url_is_kept(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    get_settings.cache_clear()
    assert get_settings().database_url == "sqlite+pysqlite:///:memory:"
