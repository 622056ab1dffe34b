"""Bearer token storage and machine-token refresh.

The request executor reads the bearer token from a shared CredentialCell on
every attempt. The CredentialProvider is the only writer: it exchanges a
machine token for a new session through a single-attempt exchange callable,
so a rejected exchange (e.g. 401) can never loop back into a retry or
another refresh.
"""

import json
import logging
import threading
from typing import Any, Awaitable, Callable, Optional

import httpx

from terminuscli.domain.errors import (
    CredentialMissing,
    CredentialRefreshFailed,
    CredentialSourceError,
    TransportError,
)
from terminuscli.domain.events.api_events import EventSink, TokenRefreshed, log_event
from terminuscli.domain.models.common import LoginRequest, SessionData
from terminuscli.infrastructure.resilience.call_scope import CallScope

logger = logging.getLogger(__name__)

LOGIN_PATH = "/authorize/machine-token"
CLIENT_NAME = "terminus-python"

MachineTokenSource = Callable[[], Optional[str]]
ExchangeFunc = Callable[..., Awaitable[httpx.Response]]
RefreshCallback = Callable[[SessionData], None]


class CredentialCell:
    """Thread-safe holder of the current bearer token ("" when unauthenticated)."""

    def __init__(self, token: str = ""):
        self._lock = threading.Lock()
        self._token = token

    def get(self) -> str:
        with self._lock:
            return self._token

    def set(self, token: str) -> None:
        with self._lock:
            self._token = token or ""

    def clear(self) -> None:
        self.set("")

    def __bool__(self) -> bool:
        return bool(self.get())

    def __repr__(self) -> str:
        # never print the token itself
        return f"CredentialCell(set={bool(self)})"


class CredentialProvider:
    """Exchanges a machine token for a session token and publishes it."""

    def __init__(
        self,
        machine_token_source: MachineTokenSource,
        exchange: ExchangeFunc,
        credentials: CredentialCell,
        on_token_refreshed: Optional[RefreshCallback] = None,
        client_name: str = CLIENT_NAME,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the CredentialProvider.

        Args:
            machine_token_source: Returns the stored machine token, or None/"".
            exchange: Single-attempt request callable with the signature of
                ``RequestExecutor.request_once(method, path, body, scope)``.
            credentials: Cell receiving the new session token.
            on_token_refreshed: Optional callback persisting the new session.
                Its failures are logged and ignored.
            client_name: Client identifier sent with the exchange.
            event_sink: Receives a TokenRefreshed event on success.
        """
        self.machine_token_source = machine_token_source
        self._exchange = exchange
        self.credentials = credentials
        self.on_token_refreshed = on_token_refreshed
        self.client_name = client_name
        self._dispatch = event_sink or log_event

    async def refresh_token(self, scope: Optional[CallScope] = None) -> str:
        """Obtains a new session token using the stored machine token.

        Returns:
            The new bearer token, also written to the credential cell.

        Raises:
            CredentialSourceError: The machine token source raised.
            CredentialMissing: No machine token is available.
            CredentialRefreshFailed: The exchange was rejected or failed.
        """
        try:
            machine_token = self.machine_token_source()
        except Exception as e:
            raise CredentialSourceError(f"failed to get machine token: {e}") from e

        if not machine_token:
            raise CredentialMissing("no machine token available for token refresh")

        logger.debug("Refreshing session token using machine token")
        session = await self.exchange(machine_token, scope=scope)
        logger.debug("Session token refreshed successfully")
        return session.session

    async def exchange(self, machine_token: str, scope: Optional[CallScope] = None) -> SessionData:
        """Performs one machine-token exchange and publishes the new session.

        Raises:
            CredentialRefreshFailed: Non-200 status, transport failure, or an
                undecodable response. Never retried.
        """
        body: LoginRequest = {"machine_token": machine_token, "client": self.client_name}
        try:
            response = await self._exchange("POST", LOGIN_PATH, body, scope)
        except TransportError as e:
            raise CredentialRefreshFailed(f"login request failed: {e}") from e

        if response.status_code != 200:
            raise CredentialRefreshFailed(
                f"login failed with status {response.status_code}",
                status_code=response.status_code,
            )

        session = _decode_session(response)
        session.machine_token = machine_token

        if self.on_token_refreshed is not None:
            try:
                self.on_token_refreshed(session)
            except Exception as e:
                logger.warning(f"Failed to save refreshed session: {e}")

        self.credentials.set(session.session)
        self._dispatch(TokenRefreshed(user_id=session.user_id, expires_at=session.expires_at))
        return session


def _decode_session(response: httpx.Response) -> SessionData:
    try:
        data: Any = response.json()
    except (json.JSONDecodeError, ValueError) as e:
        raise CredentialRefreshFailed(
            f"failed to decode session response: {e}", status_code=response.status_code
        ) from e
    if not isinstance(data, dict) or not data.get("session"):
        raise CredentialRefreshFailed(
            "session response did not contain a session token",
            status_code=response.status_code,
        )
    return SessionData.from_dict(data)
