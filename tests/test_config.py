# tests/test_config.py

import pytest

from lms.config import Settings, load_settings
from lms.core import ConfigurationError

ENV_VARS = [
    "LMS_STORE", "LMS_DATABASE_PATH", "LMS_SEED_FIXTURES", "LMS_LOG_LEVEL", "LMS_LOCK_TIMEOUT",
    "LMS_DEFAULT_TASK_DAYS", "LMS_DEFAULT_MAX_ATTEMPTS", "LMS_ENFORCE_DEADLINES",
    "LMS_REST_HOST", "LMS_REST_PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    assert load_settings(dotenv=False) == Settings()


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("LMS_STORE", "SQLite")
    monkeypatch.setenv("LMS_SEED_FIXTURES", "no")
    monkeypatch.setenv("LMS_DEFAULT_MAX_ATTEMPTS", "4")
    monkeypatch.setenv("LMS_ENFORCE_DEADLINES", "true")
    monkeypatch.setenv("LMS_LOCK_TIMEOUT", "0.5")
    monkeypatch.setenv("LMS_LOG_LEVEL", "debug")

    settings = load_settings(dotenv=False)
    assert settings.store_type == "sqlite"
    assert settings.seed_fixtures is False
    assert settings.default_max_attempts == 4
    assert settings.enforce_deadlines is True
    assert settings.lock_timeout == 0.5
    assert settings.log_level == "DEBUG"


def test_malformed_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("LMS_REST_PORT", "eighty")
    assert load_settings(dotenv=False).rest_port == 8000


def test_overrides_win_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("LMS_REST_PORT", "9000")
    settings = load_settings({'rest_port': 9100, 'rest_host': None}, dotenv=False)
    assert settings.rest_port == 9100
    assert settings.rest_host == "0.0.0.0"


def test_unknown_override():
    with pytest.raises(ConfigurationError):
        load_settings({'colour': 'blue'}, dotenv=False)


@pytest.mark.parametrize("overrides", [
    {'store_type': 'postgres'},
    {'default_max_attempts': 0},
    {'default_task_days': 0},
    {'default_task_days': -3},
    {'lock_timeout': 0},
])
def test_invalid_settings(overrides):
    with pytest.raises(ConfigurationError):
        load_settings(overrides, dotenv=False)


def test_dotenv_file(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("LMS_DEFAULT_TASK_DAYS=14\n")
    monkeypatch.chdir(tmp_path)
    try:
        assert load_settings().default_task_days == 14
    finally:
        monkeypatch.delenv("LMS_DEFAULT_TASK_DAYS", raising=False)
