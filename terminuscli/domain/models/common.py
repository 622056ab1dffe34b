"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like identifiers, tokens
and retry settings, ensuring consistency and type safety.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, NewType, Optional, Tuple, TypedDict

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
SiteID = NewType("SiteID", str)                # Site UUID
SiteName = NewType("SiteName", str)            # Human-readable site name
EnvironmentID = NewType("EnvironmentID", str)  # e.g. 'dev', 'test', 'live'
WorkflowID = NewType("WorkflowID", str)        # Opaque job identifier
UserID = NewType("UserID", str)                # User UUID
TraceID = NewType("TraceID", str)              # Correlation id for one logical request

# === Authentication Context ===
BearerToken = NewType("BearerToken", str)      # Short-lived session token
MachineToken = NewType("MachineToken", str)    # Long-lived secret exchanged for a session

# === Output Context ===
OutputField = Tuple[str, Any]                  # (label, value) pair in display order

# Five minutes before expiry a session is considered due for renewal.
TOKEN_RENEWAL_BUFFER_S = 5 * 60


# --- Structured Data ---

class BackoffPolicy(TypedDict):
    """Value Object representing retry backoff configuration."""
    max_retries: int
    initial_delay: float
    factor: float


class LoginRequest(TypedDict):
    """Body of the machine-token exchange."""
    machine_token: str
    client: str


@dataclass
class SessionData:
    """An authenticated session as returned by the API and stored on disk."""

    session: str
    user_id: str = ""
    expires_at: int = 0
    email: str = ""
    machine_token: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionData":
        return cls(
            session=str(data.get("session") or ""),
            user_id=str(data.get("user_id") or ""),
            expires_at=int(data.get("expires_at") or 0),
            email=str(data.get("email") or ""),
            machine_token=str(data.get("machine_token") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "session": self.session,
            "user_id": self.user_id,
            "expires_at": self.expires_at,
        }
        if self.email:
            data["email"] = self.email
        if self.machine_token:
            data["machine_token"] = self.machine_token
        return data

    def is_expired(self, now: Optional[float] = None) -> bool:
        """True once expires_at has passed. A zero expiry never expires."""
        if not self.expires_at:
            return False
        current = time.time() if now is None else now
        return current > self.expires_at

    def needs_renewal(self, now: Optional[float] = None) -> bool:
        """True when the session expires within the renewal buffer (or already has)."""
        if not self.expires_at:
            return False
        current = time.time() if now is None else now
        return current + TOKEN_RENEWAL_BUFFER_S > self.expires_at

