"""Domain Events related to API calls, credentials and workflows.

Examples include events for when a request attempt is made, a retry is
scheduled, a request fails definitively, or a workflow is polled.
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


EventSink = Callable[[DomainEvent], None]


def log_event(event: DomainEvent) -> None:
    """Default event sink: a DEBUG log line."""
    logger.debug(f"EVENT: {event}")


# --- Request Events ---

@dataclass
class RequestAttempted(DomainEvent):
    """Event triggered when one attempt of a logical request completes."""
    method: str
    path: str
    attempt_number: int
    trace_id: str
    status_code: Optional[int] = None
    latency_ms: Optional[float] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed attempt."""
    method: str
    path: str
    attempt_number: int
    delay_seconds: float
    trace_id: str
    reason: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class RequestFailed(DomainEvent):
    """Event triggered when a request fails definitively (after retries)."""
    method: str
    path: str
    attempts: int
    error_type: str
    error_message: str
    trace_id: str
    timestamp: float = field(default_factory=time.time)


# --- Credential Events ---

@dataclass
class TokenRefreshed(DomainEvent):
    """Event triggered when a machine token was exchanged for a new session."""
    user_id: str
    expires_at: int
    timestamp: float = field(default_factory=time.time)


# --- Workflow Events ---

@dataclass
class WorkflowPolled(DomainEvent):
    """Event triggered on each workflow status poll."""
    workflow_id: str
    result: str
    current_operation: str
    step: int
    finished: bool
    summary: Optional[Any] = None
    timestamp: float = field(default_factory=time.time)
