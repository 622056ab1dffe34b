import logging
from pathlib import Path

import pytest

from terminuscli.infrastructure.config import settings
from terminuscli.infrastructure.config.settings import (
    get_base_url,
    get_config,
    get_float,
    get_int,
    get_session_file,
    get_tokens_dir,
    load_configuration,
    normalize_key,
    set_config_for_testing,
)


@pytest.fixture
def no_test_overrides():
    settings.clear_test_config()


@pytest.mark.parametrize("key", ["host", "HOST", "terminus.host", "TERMINUS_HOST", "terminus-host"])
def test_normalize_key(key):
    assert normalize_key(key) == "TERMINUS_HOST"


def test_defaults(no_test_overrides):
    assert get_base_url() == "https://terminus.pantheon.io:443/api"
    assert get_int("retry_count") == 5
    assert get_float("poll_interval") == 3.0
    assert get_config("unknown_key", "fallback") == "fallback"


def test_yaml_values_are_flattened(tmp_path: Path, no_test_overrides):
    config_file = tmp_path / "config.yml"
    config_file.write_text("host: api.example.test\nport: 8443\nlogging:\n  file: /tmp/terminus.log\n")

    load_configuration(config_file=config_file, force=True)

    assert get_base_url() == "https://api.example.test:8443/api"
    assert get_config("logging.file") == "/tmp/terminus.log"


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch, no_test_overrides):
    config_file = tmp_path / "config.yml"
    config_file.write_text("retry_count: 2\n")
    monkeypatch.setenv("TERMINUS_RETRY_COUNT", "7")

    load_configuration(config_file=config_file, force=True)

    assert get_int("retry_count") == 7


def test_dotenv_never_overrides_environment(tmp_path: Path, monkeypatch):
    env_file = tmp_path / "custom.env"
    env_file.write_text("TERMINUS_HOST=from-dotenv.example.test\nTERMINUS_PROTOCOL=http\n")
    monkeypatch.setenv("TERMINUS_HOST", "from-env.example.test")
    # registered with monkeypatch so the value load_dotenv sets is removed afterwards
    monkeypatch.setenv("TERMINUS_PROTOCOL", "placeholder")
    monkeypatch.delenv("TERMINUS_PROTOCOL")

    load_configuration(env_file=env_file, force=True)

    assert get_config("host") == "from-env.example.test"
    assert get_config("protocol") == "http"


def test_environment_values_are_coerced(monkeypatch):
    monkeypatch.setenv("TERMINUS_SOME_FLAG", "true")
    monkeypatch.setenv("TERMINUS_SOME_RATIO", "0.5")
    assert get_config("some_flag") is True
    assert get_config("some_ratio") == 0.5


def test_invalid_number_falls_back_to_default(caplog):
    caplog.set_level(logging.WARNING)
    set_config_for_testing({"retry_count": "many"})
    assert get_int("retry_count", 5) == 5
    assert "not an integer" in caplog.text


def test_session_and_token_paths_follow_cache_dir(tmp_path: Path):
    set_config_for_testing({"cache_dir": "[[TERMINUS_USER_HOME]]/.terminus/cache", "user_home": str(tmp_path)})
    assert get_session_file() == tmp_path / ".terminus" / "cache" / "session"
    assert get_tokens_dir() == tmp_path / ".terminus" / "cache" / "tokens"


def test_test_overrides_win_over_environment(monkeypatch):
    monkeypatch.setenv("TERMINUS_HOST", "from-env.example.test")
    set_config_for_testing({"host": "override.example.test"})
    assert get_config("host") == "override.example.test"
