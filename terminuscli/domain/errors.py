"""Error taxonomy shared by the request, credential and workflow layers.

Every error raised on purpose by terminuscli derives from TerminusError, so
the CLI can catch one base class and still let callers special-case the
recognizable kinds (NotFoundError, ConflictError, WaitTimeout, ...).
"""

from typing import Optional


class TerminusError(Exception):
    """Base class for all terminuscli errors."""


# --- Request layer ---

class TransportError(TerminusError):
    """The HTTP exchange failed below the status-code level (DNS, connect, read, timeout)."""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        self.original_exception = original_exception
        super().__init__(message)


class HTTPStatusError(TerminusError):
    """A terminal non-2xx response."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API error {status_code}: {body}" if body else f"API error {status_code}")


class NotFoundError(HTTPStatusError):
    """404: the resource is already absent."""


class ConflictError(HTTPStatusError):
    """409: the resource is already in the requested state."""


class RetryExhausted(TerminusError):
    """Raised when every attempt of one logical request failed with a retryable outcome."""

    def __init__(
        self,
        last_failure: Optional[BaseException],
        attempts: int,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        self.last_failure = last_failure
        self.attempts = attempts
        self.status_code = status_code
        self.body = body
        if status_code is not None:
            message = f"Request failed with status {status_code} after {attempts} attempts"
        else:
            message = f"Request failed after {attempts} attempts. Last error: {last_failure}"
        super().__init__(message)


class DecodeError(TerminusError):
    """The response body could not be decoded into the expected shape."""


# --- Credential layer ---

class CredentialMissing(TerminusError):
    """No machine token is available to exchange for a session."""


class CredentialSourceError(CredentialMissing):
    """The machine token source itself failed (e.g. storage unavailable)."""


class CredentialRefreshFailed(TerminusError):
    """The machine token exchange was rejected or could not be completed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


# --- Session storage ---

class SessionStoreError(TerminusError):
    """Reading or writing the stored session or machine tokens failed."""


# --- Workflow layer ---

class WaitTimeout(TerminusError):
    """The workflow did not reach a terminal state before the wait timeout."""

    def __init__(self, timeout_s: float, workflow_id: Optional[str] = None):
        self.timeout_s = timeout_s
        self.workflow_id = workflow_id
        target = f"Workflow {workflow_id}" if workflow_id else "Workflow"
        super().__init__(f"{target} did not complete within {timeout_s:g}s")


class StatusCheckFailed(TerminusError):
    """Polling a workflow's status failed; the cause is chained."""


class Canceled(TerminusError):
    """A suspension point was interrupted by cancellation or by its deadline."""

    def __init__(self, message: str = "operation canceled", deadline_exceeded: bool = False):
        self.deadline_exceeded = deadline_exceeded
        super().__init__(message)


# --- Helpers ---

def status_error_for(status_code: int, body: str = "") -> HTTPStatusError:
    """Builds the most specific HTTPStatusError for a terminal status code."""
    if status_code == 404:
        return NotFoundError(status_code, body)
    if status_code == 409:
        return ConflictError(status_code, body)
    return HTTPStatusError(status_code, body)


def is_not_found(error: BaseException) -> bool:
    return isinstance(error, NotFoundError)


def is_conflict(error: BaseException) -> bool:
    return isinstance(error, ConflictError)


def deepest_message(error: BaseException) -> str:
    """Returns the message of the innermost chained exception.

    Follows ``__cause__`` links (``raise ... from ...``) with cycle protection,
    so the CLI can show the root failure instead of the outermost wrapper.
    """
    seen = set()
    current = error
    while current.__cause__ is not None and id(current) not in seen:
        seen.add(id(current))
        current = current.__cause__
    return str(current) or type(current).__name__
