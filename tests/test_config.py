from __future__ import annotations

import pytest

from samvaad.config import AppConfig


def make_config(**overrides) -> AppConfig:
    return AppConfig(_env_file=None, **overrides)


def test_lifecycle_defaults():
    config = make_config()

    assert config.CONFIRMATION_WINDOW_S == 600
    assert config.POLL_INTERVAL_S == 15.0
    assert config.TICK_INTERVAL_S == 1.0
    assert config.MANUAL_CONFIRM_DEBOUNCE_S == 2.0
    assert config.MISSING_SENT_AT_GRACE_S == 300
    config.validate_lifecycle_timings()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CONFIRMATION_WINDOW_S", "120")
    monkeypatch.setenv("PROFILES_TABLE", "profiles")

    config = make_config()

    assert config.CONFIRMATION_WINDOW_S == 120
    assert config.PROFILES_TABLE == "profiles"


@pytest.mark.parametrize("overrides", [
    {"CONFIRMATION_WINDOW_S": 0},
    {"TICK_INTERVAL_S": 0},
    {"POLL_INTERVAL_S": -1},
    {"POLL_INTERVAL_S": 600},
])
def test_incoherent_timings_are_rejected(overrides):
    with pytest.raises(ValueError):
        make_config(**overrides).validate_lifecycle_timings()


def test_secrets_are_masked():
    config = make_config(SUPABASE_SERVICE_ROLE_KEY="service-secret")

    assert "service-secret" not in repr(config)
    assert config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value() == "service-secret"
