import importlib
import sys

import pytest


def reload_config_module():
    config_module = sys.modules.get("app.config")
    if config_module:
        config_module.get_settings.cache_clear()
        sys.modules.pop("app.config", None)
    return importlib.import_module("app.config")


def test_missing_cron_secret_fails_closed(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="cron_secret|CRON_SECRET"):
        config_module.get_settings()


def test_short_cron_secret_fails_closed(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "too-short")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="at least 24 characters"):
        config_module.get_settings()


def test_placeholder_cron_secret_fails_closed(monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "changeme-in-production-please")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="placeholder"):
        config_module.get_settings()


def test_strong_cron_secret_passes(monkeypatch):
    monkeypatch.setenv(
        "CRON_SECRET",
        "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef",
    )

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()
    settings = config_module.get_settings()

    assert settings.cron_secret
    assert settings.challenge_default_goal == 20
    assert settings.challenge_milestones == [5, 10, 15, 20]


def test_non_positive_challenge_goal_rejected(monkeypatch):
    monkeypatch.setenv("CHALLENGE_DEFAULT_GOAL", "0")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="positive integer"):
        config_module.get_settings()
