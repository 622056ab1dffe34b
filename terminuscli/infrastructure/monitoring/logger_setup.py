"""Centralized logging configuration for the terminuscli application.

Sets up standard Python logging with verbosity-driven levels, a stderr
handler and an optional log file, and provides the HTTP trace logger used at
the highest verbosity. Secrets are redacted from every traced body.
"""

import logging
import re
import sys
from typing import Any, Mapping, Optional

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

DEFAULT_LOG_LEVEL = logging.ERROR
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = None

# -v INFO, -vv DEBUG, -vvv TRACE
VERBOSITY_LEVELS = {0: DEFAULT_LOG_LEVEL, 1: logging.INFO, 2: logging.DEBUG, 3: TRACE}

_TOKEN_VALUE = r'"((?:[^"\\]|\\.){20,})"'
_UUID_VALUE = r'"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}"'
_EMAIL_VALUE = r'"[^"]+@[^"]+\.[^"]+"'

# (field name, value pattern, replacement value)
_SENSITIVE_FIELDS = [
    ("machine_token", _TOKEN_VALUE, "REDACTED"),
    ("MachineToken", _TOKEN_VALUE, "REDACTED"),
    ("session", _TOKEN_VALUE, "REDACTED"),
    ("Session", _TOKEN_VALUE, "REDACTED"),
    ("session_token", _TOKEN_VALUE, "REDACTED"),
    ("SessionToken", _TOKEN_VALUE, "REDACTED"),
    ("user_id", _UUID_VALUE, "REDACTED-USER-ID"),
    ("UserID", _UUID_VALUE, "REDACTED-USER-ID"),
    ("id", _UUID_VALUE, "REDACTED-ID"),
    ("email", _EMAIL_VALUE, "redacted@example.com"),
    ("Email", _EMAIL_VALUE, "redacted@example.com"),
]

SENSITIVE_PATTERNS = [
    (re.compile(rf'"{name}"\s*:\s*{value}'), f'"{name}": "{replacement}"')
    for name, value, replacement in _SENSITIVE_FIELDS
]

REDACTED_HEADERS = frozenset({"authorization"})


def redact_sensitive_data(text: str) -> str:
    """Redacts tokens, user ids and e-mail addresses from a (JSON) string."""
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def level_for_verbosity(verbosity: int) -> int:
    """Maps the -v count to a logging level; anything above 3 is TRACE."""
    return VERBOSITY_LEVELS[max(0, min(verbosity, 3))]


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = DEFAULT_LOG_FILE
) -> None:
    """Configures the root logger for the application.

    Args:
        log_level: The minimum logging level (e.g., logging.DEBUG, TRACE).
        log_format: The format string for log messages.
        log_file: Optional path to a file for logging output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)

    # stderr keeps stdout clean for --format json/yaml output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}")

    logging.info(f"Logging configured. Level={logging.getLevelName(log_level)}")


class ApiTraceLogger(logging.LoggerAdapter):
    """Logger adapter that can dump HTTP exchanges at TRACE level."""

    def __init__(self, logger: logging.Logger, extra: Optional[Mapping[str, Any]] = None):
        super().__init__(logger, extra or {})

    def trace(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(TRACE, msg, *args, **kwargs)

    def is_trace_enabled(self) -> bool:
        return self.isEnabledFor(TRACE)

    def log_http_request(
        self, method: str, url: str, headers: Mapping[str, str], body: Optional[bytes]
    ) -> None:
        if not self.is_trace_enabled():
            return
        self.trace("HTTP Request:")
        self.trace(f"  Method: {method}")
        self.trace(f"  URL: {url}")
        self.trace("  Headers:")
        for key, value in headers.items():
            shown = "REDACTED" if key.lower() in REDACTED_HEADERS else value
            self.trace(f"    {key}: {shown}")
        if body:
            self.trace(f"  Body: {redact_sensitive_data(_as_text(body))}")

    def log_http_response(
        self, status_code: int, headers: Mapping[str, str], body: bytes
    ) -> None:
        if not self.is_trace_enabled():
            return
        self.trace("HTTP Response:")
        self.trace(f"  Status: {status_code}")
        self.trace("  Headers:")
        for key, value in headers.items():
            self.trace(f"    {key}: {value}")
        if body:
            self.trace(f"  Body: {redact_sensitive_data(_as_text(body))}")


def _as_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")
