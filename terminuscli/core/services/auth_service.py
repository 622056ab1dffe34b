"""Core service for authentication: machine-token login, whoami and logout.

Login goes through the CredentialProvider so the exchange uses the same
single-attempt path as an automatic refresh.
"""

import logging
from typing import Optional

from terminuscli.domain.errors import CredentialMissing, DecodeError
from terminuscli.domain.interfaces.session_store import SessionStore
from terminuscli.domain.models.common import SessionData
from terminuscli.domain.models.resources import User
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.credentials import CredentialProvider
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor

logger = logging.getLogger(__name__)


class AuthService:
    """Manages the authenticated session."""

    def __init__(
        self,
        executor: RequestExecutor,
        credential_provider: CredentialProvider,
        session_store: SessionStore,
    ):
        self.executor = executor
        self.credential_provider = credential_provider
        self.session_store = session_store

    def _stored_machine_token(self, email: Optional[str]) -> str:
        """Finds a saved machine token, by e-mail or the only one stored."""
        if email:
            token = self.session_store.load_machine_token(email)
            if not token:
                raise CredentialMissing(f"No saved machine token for {email}.")
            return token
        saved = self.session_store.list_machine_tokens()
        if len(saved) == 1:
            token = self.session_store.load_machine_token(saved[0])
            if token:
                return token
        if len(saved) > 1:
            raise CredentialMissing(
                f"Several machine tokens are saved ({', '.join(saved)}). Pass --email to choose one."
            )
        raise CredentialMissing("No machine token given and none saved. Pass --machine-token.")

    async def login(
        self,
        machine_token: Optional[str] = None,
        email: Optional[str] = None,
        scope: Optional[CallScope] = None,
    ) -> SessionData:
        """Exchanges a machine token for a session and persists both.

        Args:
            machine_token: Token to log in with; a saved token is used if omitted.
            email: Account e-mail used to pick or store the machine token.
        """
        token = machine_token or self._stored_machine_token(email)
        session = await self.credential_provider.exchange(token, scope)

        user = await self.whoami(session.user_id, scope)
        session.email = email or user.email
        if session.email:
            self.session_store.save_machine_token(session.email, token)
        self.session_store.save_session(session)
        logger.info(f"Logged in as {session.email or session.user_id}")
        return session

    async def whoami(self, user_id: Optional[str] = None, scope: Optional[CallScope] = None) -> User:
        if not user_id:
            session = self.session_store.load_session()
            if session is None or not session.user_id:
                raise CredentialMissing("You are not logged in. Run auth:login first.")
            user_id = session.user_id
        data = await self.executor.call("GET", f"/users/{user_id}", scope=scope)
        if not isinstance(data, dict):
            raise DecodeError("unexpected user payload")
        return User.from_dict(data)

    def logout(self) -> Optional[str]:
        """Forgets the session and the machine token saved for its account.

        Returns:
            The e-mail of the account that was logged out, if known.
        """
        session = self.session_store.load_session()
        email = session.email if session else None
        if email:
            self.session_store.delete_machine_token(email)
        self.session_store.delete_session()
        self.executor.credentials.clear()
        logger.info("Logged out")
        return email
