"""Service for executing API requests with automatic retries.

Implements exponential backoff for handling transient errors like rate limits
(429), temporary server issues (5xx) and transport failures. Request bodies
are encoded once and replayed byte-for-byte on every attempt; the bearer
token is re-read from the shared credential cell before each attempt.
"""

import enum
import json
import logging
import platform
import sys
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

from terminuscli import __version__
from terminuscli.domain.errors import (
    DecodeError,
    RetryExhausted,
    TransportError,
    status_error_for,
)
from terminuscli.domain.events.api_events import (
    EventSink,
    RequestAttempted,
    RequestFailed,
    RetryScheduled,
    log_event,
)
from terminuscli.domain.interfaces.api_logger import as_http_trace_logger
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.credentials import CredentialCell

logger = logging.getLogger(__name__)

# --- Defaults ---
DEFAULT_BASE_URL = "https://terminus.pantheon.io:443/api"
DEFAULT_TIMEOUT_S = 86400.0
MAX_RETRIES = 5
INITIAL_BACKOFF_S = 1.0
PAGE_SIZE = 100
TRACE_HEADER = "X-Pantheon-Trace-Id"

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class Outcome(enum.Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


def classify_status(status_code: int) -> Outcome:
    """2xx succeed; 429 and 5xx are retried; every other status is terminal."""
    if 200 <= status_code < 300:
        return Outcome.SUCCESS
    if status_code == 429 or status_code >= 500:
        return Outcome.RETRYABLE_FAILURE
    return Outcome.TERMINAL_FAILURE


@dataclass(frozen=True)
class RequestDescriptor:
    """One logical request. The trace id is shared by all of its attempts."""
    method: str
    path: str
    body: Optional[bytes]
    trace_id: str


def encode_body(body: Any) -> Optional[bytes]:
    """Encodes a request body exactly once.

    bytes are used as-is, readable objects are drained once, anything else is
    serialized as JSON.
    """
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if hasattr(body, "read"):
        data = body.read()
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)
    return json.dumps(body).encode("utf-8")


def default_user_agent() -> str:
    return (
        f"Terminus-Python/{__version__} "
        f"(python_version={platform.python_version()}; os={sys.platform}; arch={platform.machine()})"
    )


class RequestExecutor:
    """Sends API requests with bearer auth, tracing and bounded retries."""

    def __init__(
        self,
        credentials: Optional[CredentialCell] = None,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        user_agent: Optional[str] = None,
        max_retries: int = MAX_RETRIES,
        initial_backoff_s: float = INITIAL_BACKOFF_S,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        logger: Optional[LoggerLike] = None,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the RequestExecutor.

        Args:
            credentials: Shared cell holding the bearer token. Read on every attempt.
            base_url: API root; request paths are appended to it.
            http_client: Optional client to send through (e.g. with a MockTransport).
                A client created here is closed by aclose().
            user_agent: User-Agent header value.
            max_retries: Retries after the first attempt (total attempts = max_retries + 1).
            initial_backoff_s: Delay before the first retry; doubled for each one after.
            timeout_s: Per-attempt HTTP timeout, clipped to the scope's deadline.
            logger: Base logger. If it also supports HTTP tracing, exchanges are dumped.
            event_sink: Receives request domain events. Defaults to a DEBUG log line.
        """
        self.credentials = credentials if credentials is not None else CredentialCell()
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self.user_agent = user_agent or default_user_agent()
        self.max_retries = max_retries
        self.initial_backoff_s = initial_backoff_s
        self.timeout_s = timeout_s
        self.logger: LoggerLike = logger or logging.getLogger(__name__)
        self._trace_logger = as_http_trace_logger(self.logger)
        self._dispatch = event_sink or log_event

        self.logger.debug(
            f"RequestExecutor initialized: base_url={self.base_url}, max_retries={max_retries}, "
            f"initial_backoff={initial_backoff_s}s"
        )

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    # --- Core request path ---

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        scope: Optional[CallScope] = None,
    ) -> httpx.Response:
        """Sends one logical request, retrying transient failures.

        Returns:
            The first response that is not retryable, successful or not.

        Raises:
            RetryExhausted: Every attempt failed with a retryable outcome.
            Canceled: The scope was cancelled or its deadline passed, either
                before an attempt or during a backoff sleep.
        """
        scope = scope or CallScope()
        descriptor = self._describe(method, path, body)
        attempts = self.max_retries + 1
        last_failure: Optional[TransportError] = None
        last_response: Optional[httpx.Response] = None

        self.logger.debug(f"API Request: {descriptor.method} {path} (trace: {descriptor.trace_id})")

        for attempt in range(attempts):
            scope.raise_if_done()
            try:
                response = await self._attempt(descriptor, scope, attempt + 1)
            except TransportError as e:
                last_failure, last_response = e, None
                reason = str(e)
                self.logger.warning(f"Request failed (attempt {attempt + 1}/{attempts}): {e}")
            else:
                if classify_status(response.status_code) is not Outcome.RETRYABLE_FAILURE:
                    return response
                last_failure, last_response = None, response
                reason = f"status {response.status_code}"
                self.logger.warning(
                    f"Request returned {response.status_code} (attempt {attempt + 1}/{attempts})"
                )

            # no sleep after the final attempt
            if attempt < self.max_retries:
                delay = self.initial_backoff_s * 2 ** attempt
                self.logger.debug(f"Retrying after {delay:g}s")
                self._dispatch(RetryScheduled(
                    method=descriptor.method, path=path, attempt_number=attempt + 1,
                    delay_seconds=delay, trace_id=descriptor.trace_id, reason=reason,
                ))
                await scope.sleep(delay)

        if last_response is not None:
            error = RetryExhausted(
                status_error_for(last_response.status_code, last_response.text),
                attempts,
                status_code=last_response.status_code,
                body=last_response.text,
            )
        else:
            error = RetryExhausted(last_failure, attempts)
        self._dispatch(RequestFailed(
            method=descriptor.method, path=path, attempts=attempts,
            error_type=type(error.last_failure).__name__, error_message=str(error),
            trace_id=descriptor.trace_id,
        ))
        if last_failure is not None:
            raise error from last_failure
        raise error

    async def request_once(
        self,
        method: str,
        path: str,
        body: Any = None,
        scope: Optional[CallScope] = None,
    ) -> httpx.Response:
        """Sends exactly one attempt: no retry, no backoff.

        Used for the machine-token exchange so that a rejected login cannot
        recurse into another refresh.

        Raises:
            TransportError: The exchange failed below the HTTP status level.
        """
        scope = scope or CallScope()
        scope.raise_if_done()
        return await self._attempt(self._describe(method, path, body), scope, 1)

    def _describe(self, method: str, path: str, body: Any) -> RequestDescriptor:
        return RequestDescriptor(
            method=method.upper(),
            path=path,
            body=encode_body(body),
            trace_id=str(uuid.uuid4()),
        )

    def _headers(self, descriptor: RequestDescriptor) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
            TRACE_HEADER: descriptor.trace_id,
        }
        token = self.credentials.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if descriptor.body is not None:
            headers["Content-Type"] = "application/json"
        return headers

    async def _attempt(
        self, descriptor: RequestDescriptor, scope: CallScope, attempt_number: int
    ) -> httpx.Response:
        url = self.base_url + descriptor.path
        headers = self._headers(descriptor)
        timeout = self.timeout_s
        remaining = scope.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        # fresh request per attempt, same cached body bytes
        request = self.http_client.build_request(
            descriptor.method,
            url,
            content=descriptor.body,
            headers=headers,
            timeout=httpx.Timeout(timeout),
        )
        if self._trace_logger is not None and self._trace_logger.is_trace_enabled():
            self._trace_logger.log_http_request(descriptor.method, url, headers, descriptor.body)

        start_time = time.perf_counter()
        try:
            response = await self.http_client.send(request)
        except httpx.RequestError as e:
            self._dispatch(RequestAttempted(
                method=descriptor.method, path=descriptor.path,
                attempt_number=attempt_number, trace_id=descriptor.trace_id,
            ))
            raise TransportError(f"{type(e).__name__}: {e}", original_exception=e) from e
        latency_ms = (time.perf_counter() - start_time) * 1000

        if self._trace_logger is not None and self._trace_logger.is_trace_enabled():
            self._trace_logger.log_http_response(
                response.status_code, dict(response.headers), response.content
            )
        self._dispatch(RequestAttempted(
            method=descriptor.method, path=descriptor.path, attempt_number=attempt_number,
            trace_id=descriptor.trace_id, status_code=response.status_code, latency_ms=latency_ms,
        ))
        return response

    # --- Verb shortcuts ---

    async def get(self, path: str, scope: Optional[CallScope] = None) -> httpx.Response:
        return await self.request("GET", path, scope=scope)

    async def post(self, path: str, body: Any = None, scope: Optional[CallScope] = None) -> httpx.Response:
        return await self.request("POST", path, body, scope)

    async def put(self, path: str, body: Any = None, scope: Optional[CallScope] = None) -> httpx.Response:
        return await self.request("PUT", path, body, scope)

    async def patch(self, path: str, body: Any = None, scope: Optional[CallScope] = None) -> httpx.Response:
        return await self.request("PATCH", path, body, scope)

    async def delete(self, path: str, scope: Optional[CallScope] = None) -> httpx.Response:
        return await self.request("DELETE", path, scope=scope)

    # --- Decoding helpers ---

    @staticmethod
    def decode_response(response: httpx.Response) -> Any:
        """Returns the parsed JSON body of a 2xx response (None if empty).

        Raises:
            NotFoundError: 404.
            ConflictError: 409.
            HTTPStatusError: Any other non-2xx status.
            DecodeError: The body is not valid JSON.
        """
        if not 200 <= response.status_code < 300:
            raise status_error_for(response.status_code, response.text)
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"failed to decode response: {e}") from e

    async def call(
        self,
        method: str,
        path: str,
        body: Any = None,
        scope: Optional[CallScope] = None,
    ) -> Any:
        """request() followed by decode_response()."""
        response = await self.request(method, path, body, scope)
        return self.decode_response(response)

    async def get_paged(
        self,
        path: str,
        scope: Optional[CallScope] = None,
        page_size: int = PAGE_SIZE,
    ) -> List[Any]:
        """Collects every item of a paged list endpoint.

        Requests ``?limit=<page_size>&page=<n>`` from page 1 and stops at the
        first page holding fewer than page_size items. Each page goes through
        the retrying request path.

        Raises:
            ValueError: page_size is smaller than 1.
        """
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        separator = "&" if "?" in path else "?"
        items: List[Any] = []
        page = 1
        while True:
            data = await self.call(
                "GET", f"{path}{separator}limit={page_size}&page={page}", scope=scope
            )
            if not isinstance(data, list):
                raise DecodeError(f"expected a list from {path} page {page}, got {type(data).__name__}")
            items.extend(data)
            if len(data) < page_size:
                break
            page += 1
        self.logger.debug(f"Fetched {len(items)} items from {path} in {page} page(s)")
        return items
