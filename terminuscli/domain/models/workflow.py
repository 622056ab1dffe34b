"""Workflow (server-side job) snapshots.

A workflow is created when the API accepts a mutating request and is then
polled until it reaches a terminal state. The API is not consistent about
which terminal signal it sets, so either a finish timestamp or a non-empty
result counts.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from terminuscli.domain.models.common import OutputField

SUCCEEDED = "succeeded"
FAILED_RESULTS = frozenset({"failed", "aborted"})

# (result, current operation, step)
StatusSignature = Tuple[str, str, int]


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class Workflow:
    """Last observed status of a server-side workflow."""

    id: str
    type: str = ""
    description: str = ""
    site_id: str = ""
    environment_id: str = ""
    user_id: str = ""
    result: str = ""
    current_operation: str = ""
    step: int = 0
    created_at: float = 0.0
    started_at: float = 0.0
    finished_at: float = 0.0
    total_time: float = 0.0
    active: bool = False
    final_task: Optional[Dict[str, Any]] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        final_task = data.get("final_task")
        return cls(
            id=str(data.get("id") or ""),
            type=str(data.get("type") or ""),
            description=str(data.get("description") or ""),
            site_id=str(data.get("site_id") or ""),
            environment_id=str(data.get("environment") or ""),
            user_id=str(data.get("user_id") or ""),
            result=str(data.get("result") or ""),
            current_operation=str(data.get("current_operation") or ""),
            step=_as_int(data.get("step")),
            created_at=_as_float(data.get("created_at")),
            started_at=_as_float(data.get("started_at")),
            finished_at=_as_float(data.get("finished_at")),
            total_time=_as_float(data.get("total_time")),
            active=bool(data.get("active")),
            final_task=final_task if isinstance(final_task, dict) else None,
            params=dict(data.get("params") or {}),
        )

    @property
    def is_finished(self) -> bool:
        """Terminal iff finished_at is set OR result is non-empty."""
        return self.finished_at > 0 or self.result != ""

    @property
    def is_successful(self) -> bool:
        return self.result == SUCCEEDED

    @property
    def is_failed(self) -> bool:
        return self.result in FAILED_RESULTS

    @property
    def status(self) -> str:
        if not self.is_finished:
            return "running"
        return SUCCEEDED if self.is_successful else "failed"

    @property
    def message(self) -> str:
        """First message of the final task if present, else the description."""
        if self.final_task:
            messages = self.final_task.get("messages")
            if isinstance(messages, list) and messages:
                first = messages[0]
                if isinstance(first, dict) and isinstance(first.get("message"), str):
                    return first["message"]
        return self.description

    def status_signature(self) -> StatusSignature:
        return (self.result, self.current_operation, self.step)

    def output_fields(self) -> List[OutputField]:
        return [
            ("ID", self.id),
            ("Type", self.type),
            ("Description", self.description),
            ("Status", self.status),
            ("Current Operation", self.current_operation),
            ("Step", self.step),
            ("Total Time", f"{self.total_time:.1f}s" if self.total_time else ""),
        ]
