"""Optional HTTP trace capability for loggers.

The request executor only requires a plain ``logging.Logger``. A logger that
additionally implements :class:`HttpTraceLogger` gets full request/response
dumps at TRACE verbosity; anything else is silently skipped.
"""

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class HttpTraceLogger(Protocol):
    """Logger that can dump HTTP exchanges."""

    def is_trace_enabled(self) -> bool:
        ...

    def log_http_request(
        self, method: str, url: str, headers: Mapping[str, str], body: Optional[bytes]
    ) -> None:
        ...

    def log_http_response(
        self, status_code: int, headers: Mapping[str, str], body: bytes
    ) -> None:
        ...


def as_http_trace_logger(logger: Any) -> Optional[HttpTraceLogger]:
    """Returns the logger if it supports HTTP tracing, else None."""
    if isinstance(logger, HttpTraceLogger):
        return logger
    return None
