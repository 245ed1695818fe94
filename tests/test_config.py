"""
Tests for environment settings.
"""

import dataclasses

import pytest

from travel_enrichment import config

ENV_VARS = [
    "GOOGLE_MAPS_API_KEY",
    "PEXELS_API_KEY",
    "FIREBASE_PROJECT_ID",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "BIGQUERY_PROJECT_ID",
    "BULK_WRITE_GROUP_SIZE",
    "LOG_LEVEL",
]


def setup_function(function):
    config.get_settings.cache_clear()


def teardown_function(function):
    config.get_settings.cache_clear()


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_get_settings_reads_env(clean_env):
    clean_env.setenv("GOOGLE_MAPS_API_KEY", "maps-key")
    clean_env.setenv("PEXELS_API_KEY", "pexels-key")
    clean_env.setenv("FIREBASE_PROJECT_ID", "nomad-prod")
    clean_env.setenv("BULK_WRITE_GROUP_SIZE", "250")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = config.get_settings()

    assert settings.google_maps_api_key == "maps-key"
    assert settings.pexels_api_key == "pexels-key"
    assert settings.firebase_project_id == "nomad-prod"
    assert settings.bulk_write_group_size == 250
    assert settings.log_level == "DEBUG"


def test_bigquery_project_defaults_to_firebase(clean_env):
    clean_env.setenv("FIREBASE_PROJECT_ID", "nomad-prod")
    assert config.get_settings().bigquery_project_id == "nomad-prod"

    config.get_settings.cache_clear()
    clean_env.setenv("BIGQUERY_PROJECT_ID", "speed-data")
    assert config.get_settings().bigquery_project_id == "speed-data"


def test_get_settings_warns_when_missing(clean_env, caplog):
    with caplog.at_level("WARNING"):
        settings = config.get_settings()

    messages = " ".join(caplog.messages)
    assert "GOOGLE_MAPS_API_KEY is not configured" in messages
    assert "PEXELS_API_KEY is not configured" in messages
    assert settings.google_maps_api_key == ""
    assert settings.google_application_credentials is None
    assert settings.bulk_write_group_size == 500
    assert settings.bulk_write_max_attempts == 3


def test_settings_cached_and_frozen(clean_env):
    first = config.get_settings()
    assert config.get_settings() is first
    with pytest.raises(dataclasses.FrozenInstanceError):
        first.pexels_api_key = "changed"


def test_default_ranking_config():
    ranking = config.DEFAULT_RANKING_CONFIG
    assert ranking.is_excluded("russia")
    assert not ranking.is_excluded("portugal")
    assert ranking.cap_for("india") == 10
    assert ranking.cap_for("portugal") == ranking.default_cap
