"""Provides functions for loading and accessing configuration settings.

Supports loading from the user's YAML file (~/.terminus/config.yml), a .env
file and TERMINUS_* environment variables. Keys are normalized to upper case
with a TERMINUS_ prefix, so ``host``, ``TERMINUS_HOST`` and ``terminus.host``
all name the same setting.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
KEY_PREFIX = "TERMINUS_"
USER_HOME_PLACEHOLDER = "[[TERMINUS_USER_HOME]]"
DEFAULT_CONFIG_DIR = Path.home() / ".terminus"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yml"
ENV_FILE_NAME = ".env"

DEFAULTS: Dict[str, Any] = {
    "TERMINUS_HOST": "terminus.pantheon.io",
    "TERMINUS_PORT": 443,
    "TERMINUS_PROTOCOL": "https",
    "TERMINUS_TIMEOUT": 86400,
    "TERMINUS_CACHE_DIR": str(DEFAULT_CONFIG_DIR / "cache"),
    "TERMINUS_RETRY_COUNT": 5,
    "TERMINUS_INITIAL_BACKOFF": 1.0,
    "TERMINUS_POLL_INTERVAL": 3.0,
    "TERMINUS_WAIT_TIMEOUT": 1800.0,
    "TERMINUS_DATE_FORMAT": "%Y-%m-%d %H:%M:%S",
}

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def normalize_key(key: str) -> str:
    """Normalizes a key to the TERMINUS_UPPER_CASE form."""
    normalized = key.strip().upper().replace(".", "_").replace("-", "_")
    if not normalized.startswith(KEY_PREFIX):
        normalized = KEY_PREFIX + normalized
    return normalized


def _flatten(values: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in values.items():
        name = f"{prefix}_{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, name))
        else:
            flat[normalize_key(name)] = value
    return flat


def load_configuration(
    config_file: Optional[Path] = None,
    env_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Loads configuration from the YAML file and the .env file.

    Priority order (highest to lowest):
    1. Test overrides (set_config_for_testing)
    2. Environment Variables
    3. .env file (never overrides variables already set)
    4. YAML configuration file
    5. DEFAULTS

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}
    config_file = config_file or DEFAULT_CONFIG_FILE

    if config_file.is_file():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    _loaded = True
    logger.debug("Configuration loading process completed.")


def reset_configuration() -> None:
    """Forgets everything loaded so far. Used by tests."""
    global _config, _loaded
    _config = {}
    _loaded = False


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by key.

    Args:
        key: The configuration key, in any of the accepted spellings.
        default: Returned if the key is set nowhere (including DEFAULTS).

    Returns:
        The configuration value. Values from the environment are coerced to
        bool/int/float when they look like one.
    """
    name = normalize_key(key)

    if name in _test_config:
        return _test_config[name]

    if name in os.environ:
        return _coerce(os.environ[name])

    if name in _config:
        return _config[name]

    if name in DEFAULTS:
        return DEFAULTS[name]

    logger.debug(f"Config key '{name}' not set. Returning default: {default}")
    return default


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the rest of this process."""
    name = normalize_key(key)
    logger.debug(f"Setting config: {name} = {value!r}")
    _config[name] = value


def get_int(key: str, default: int = 0) -> int:
    value = get_config(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Config key '{normalize_key(key)}' is not an integer: {value!r}. Using {default}.")
        return default


def get_float(key: str, default: float = 0.0) -> float:
    value = get_config(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Config key '{normalize_key(key)}' is not a number: {value!r}. Using {default}.")
        return default


def expand_path(path: str) -> Path:
    """Expands ``~`` and the [[TERMINUS_USER_HOME]] placeholder."""
    home = str(get_config("user_home") or Path.home())
    return Path(os.path.expanduser(str(path).replace(USER_HOME_PLACEHOLDER, home)))


# --- Convenience Functions ---

def get_base_url() -> str:
    """Builds the API base URL, e.g. https://terminus.pantheon.io:443/api."""
    protocol = get_config("protocol")
    host = get_config("host")
    port = get_int("port", DEFAULTS["TERMINUS_PORT"])
    return f"{protocol}://{host}:{port}/api"


def get_cache_dir() -> Path:
    return expand_path(get_config("cache_dir"))


def get_tokens_dir() -> Path:
    tokens_dir = get_config("tokens_dir")
    if tokens_dir:
        return expand_path(tokens_dir)
    return get_cache_dir() / "tokens"


def get_session_file() -> Path:
    session_file = get_config("session_file")
    if session_file:
        return expand_path(session_file)
    return get_cache_dir() / "session"


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values for testing purposes.

    These values override every other source until clear_test_config().

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update({normalize_key(k): v for k, v in config_dict.items()})
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
