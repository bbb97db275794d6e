import importlib
import sys

import pytest


def reload_config_module():
    config_module = sys.modules.get("bloodconnect.config")
    if config_module:
        config_module.get_settings.cache_clear()
    return importlib.import_module("bloodconnect.config")


def test_missing_secret_key_fails_closed(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="secret_key|SECRET_KEY"):
        config_module.get_settings()
    config_module.get_settings.cache_clear()


def test_weak_secret_key_fails_closed(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "changeme-in-production")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="secret_key|SECRET_KEY"):
        config_module.get_settings()
    config_module.get_settings.cache_clear()


def test_policy_windows_from_environment(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
    monkeypatch.setenv("DONATION_COOLDOWN_MONTHS", "4")
    monkeypatch.setenv("REASSIGNMENT_CUTOFF_HOURS", "6")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()
    settings = config_module.get_settings()

    assert settings.donation_cooldown_months == 4
    assert settings.reassignment_cutoff_hours == 6
    config_module.get_settings.cache_clear()


def test_non_positive_policy_window_fails(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
    monkeypatch.setenv("REASSIGNMENT_CUTOFF_HOURS", "0")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="at least 1"):
        config_module.get_settings()
    config_module.get_settings.cache_clear()
