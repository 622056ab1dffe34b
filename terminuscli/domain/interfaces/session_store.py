"""Interface for persisting sessions and machine tokens between invocations."""

import abc
from typing import List, Optional

from terminuscli.domain.models.common import SessionData


class SessionStore(abc.ABC):
    """Abstract Base Class for session and machine token storage."""

    @abc.abstractmethod
    def save_session(self, session: SessionData) -> None:
        """Persists the current session, replacing any previous one."""
        pass

    @abc.abstractmethod
    def load_session(self) -> Optional[SessionData]:
        """Returns the stored session, or None if there is none.

        Expired sessions are returned as well; callers decide whether to
        renew them.
        """
        pass

    @abc.abstractmethod
    def delete_session(self) -> None:
        pass

    @abc.abstractmethod
    def save_machine_token(self, email: str, token: str) -> None:
        """Stores a machine token under the account e-mail."""
        pass

    @abc.abstractmethod
    def load_machine_token(self, email: str) -> Optional[str]:
        pass

    @abc.abstractmethod
    def delete_machine_token(self, email: str) -> None:
        pass

    @abc.abstractmethod
    def list_machine_tokens(self) -> List[str]:
        """Returns the e-mails with a stored machine token."""
        pass
