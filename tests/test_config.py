import importlib

import pytest

import config as config_module


@pytest.fixture(autouse=True)
def _restore_config(monkeypatch):
    yield
    monkeypatch.undo()
    importlib.reload(config_module)


def test_cors_allow_origins_parses_comma_separated(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.com, https://b.com")
    monkeypatch.setenv("CORS_SUPPORTS_CREDENTIALS", "0")

    config = importlib.reload(config_module)

    assert config.CORS_ALLOW_ORIGINS == ["https://a.com", "https://b.com"]
    assert config.CORS_SUPPORTS_CREDENTIALS is False


def test_cors_allow_origins_parses_json_array(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", '["https://a.com", "https://b.com"]')
    monkeypatch.setenv("CORS_SUPPORTS_CREDENTIALS", "1")

    config = importlib.reload(config_module)

    assert config.CORS_ALLOW_ORIGINS == ["https://a.com", "https://b.com"]
    assert config.CORS_SUPPORTS_CREDENTIALS is True


def test_cors_allow_origins_empty(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "   ")

    config = importlib.reload(config_module)

    assert config.CORS_ALLOW_ORIGINS is None


def test_fuzzy_threshold_from_env(monkeypatch):
    monkeypatch.setenv("FUZZY_MATCH_THRESHOLD", "0.45")

    config = importlib.reload(config_module)

    assert config.FUZZY_MATCH_THRESHOLD == 0.45


@pytest.mark.parametrize("raw", ["bad", "1.5", "-0.2", ""])
def test_fuzzy_threshold_invalid_env_falls_back(monkeypatch, raw):
    monkeypatch.setenv("FUZZY_MATCH_THRESHOLD", raw)

    config = importlib.reload(config_module)

    assert config.FUZZY_MATCH_THRESHOLD == 0.3


def test_search_limits_from_env(monkeypatch):
    monkeypatch.setenv("SEARCH_MAX_RESULTS", "25")
    monkeypatch.setenv("SEARCH_MAX_TAKE", "0")
    monkeypatch.setenv("BACKFILL_BATCH_SIZE", "many")

    config = importlib.reload(config_module)

    assert config.SEARCH_MAX_RESULTS == 25
    assert config.SEARCH_MAX_TAKE == 100
    assert config.BACKFILL_BATCH_SIZE == 500
