"""Tracks server-side workflows until they reach a terminal state.

``wait`` blocks (cooperatively) until the workflow finishes or a timeout
elapses; ``watch`` reports each distinct status change through a callback.
Both sleep one poll interval before every poll and hand every sleep to the
caller's CallScope, so cancellation interrupts them immediately.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from terminuscli.domain.errors import Canceled, StatusCheckFailed, WaitTimeout
from terminuscli.domain.events.api_events import EventSink, WorkflowPolled, log_event
from terminuscli.domain.models.workflow import StatusSignature, Workflow
from terminuscli.infrastructure.resilience.call_scope import CallScope

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 3.0
DEFAULT_WAIT_TIMEOUT_S = 30 * 60.0

FetchStatus = Callable[[CallScope], Awaitable[Workflow]]
WorkflowCallback = Callable[[Workflow], None]


@dataclass
class WaitOptions:
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    timeout_s: float = DEFAULT_WAIT_TIMEOUT_S
    on_progress: Optional[WorkflowCallback] = None


@dataclass
class WatchOptions:
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    on_update: Optional[WorkflowCallback] = None


class WorkflowTracker:
    """Polls a workflow through an injected status fetcher."""

    def __init__(self, event_sink: Optional[EventSink] = None):
        self._dispatch = event_sink or log_event

    async def _poll(self, fetch_status: FetchStatus, scope: CallScope) -> Workflow:
        try:
            workflow = await fetch_status(scope)
        except Canceled:
            raise
        except Exception as e:
            # a poll cut short by the deadline is a timeout, not a failed check
            if scope.expired():
                raise Canceled("deadline exceeded", deadline_exceeded=True) from e
            raise StatusCheckFailed(f"failed to check workflow status: {e}") from e
        self._dispatch(WorkflowPolled(
            workflow_id=workflow.id,
            result=workflow.result,
            current_operation=workflow.current_operation,
            step=workflow.step,
            finished=workflow.is_finished,
        ))
        return workflow

    async def wait(
        self,
        fetch_status: FetchStatus,
        options: Optional[WaitOptions] = None,
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        """Polls until the workflow is terminal and returns that snapshot.

        A workflow that finished with a failed result is still returned; only
        the caller decides whether that is an error.

        Raises:
            WaitTimeout: options.timeout_s elapsed first.
            Canceled: The caller cancelled, or the caller's own deadline passed.
            StatusCheckFailed: A status poll raised; the cause is chained.
        """
        options = options or WaitOptions()
        scope = scope or CallScope()
        wait_scope = scope.child(options.timeout_s)
        workflow_id: Optional[str] = None

        while True:
            try:
                await wait_scope.sleep(options.poll_interval_s)
                workflow = await self._poll(fetch_status, wait_scope)
            except Canceled as e:
                # only our own timeout becomes WaitTimeout
                if e.deadline_exceeded and not scope.expired() and not scope.cancelled:
                    logger.info(f"Gave up waiting for workflow {workflow_id or ''} after {options.timeout_s:g}s")
                    raise WaitTimeout(options.timeout_s, workflow_id) from None
                raise

            workflow_id = workflow.id or workflow_id
            if options.on_progress is not None:
                options.on_progress(workflow)
            if workflow.is_finished:
                logger.debug(f"Workflow {workflow.id} finished with result '{workflow.result}'")
                return workflow

    async def watch(
        self,
        fetch_status: FetchStatus,
        options: WatchOptions,
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        """Polls until terminal, calling on_update for every distinct status.

        on_update fires only when (result, current_operation, step) changed
        since the previous poll, including for the terminal snapshot.

        Raises:
            ValueError: on_update is missing.
            Canceled: The caller cancelled between polls.
            StatusCheckFailed: A status poll raised; the cause is chained.
        """
        if options.on_update is None:
            raise ValueError("watch requires an on_update callback")
        scope = scope or CallScope()
        previous: Optional[StatusSignature] = None

        while True:
            await scope.sleep(options.poll_interval_s)
            workflow = await self._poll(fetch_status, scope)
            signature = workflow.status_signature()
            if signature != previous:
                previous = signature
                options.on_update(workflow)
            if workflow.is_finished:
                return workflow
