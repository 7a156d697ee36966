"""
Generation session state

One ``GenerationSession`` tracks a single request from the moment the
user presses Generate until a video (or an error) is shown. State changes
go through ``transition()`` so the allowed flow is written down in one
table rather than spread over UI callbacks.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from .errors import GenerationCancelledError, InvalidTransitionError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    POLLING = "polling"
    RENDERING_LOCAL = "rendering_local"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


ALLOWED_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.IDLE: frozenset({
        SessionState.DISPATCHING, SessionState.RENDERING_LOCAL, SessionState.FAILED,
    }),
    SessionState.DISPATCHING: frozenset({
        SessionState.POLLING, SessionState.SUCCEEDED, SessionState.FAILED,
    }),
    SessionState.POLLING: frozenset({SessionState.SUCCEEDED, SessionState.FAILED}),
    SessionState.RENDERING_LOCAL: frozenset({SessionState.SUCCEEDED, SessionState.FAILED}),
    SessionState.SUCCEEDED: frozenset({SessionState.IDLE}),
    SessionState.FAILED: frozenset({SessionState.IDLE}),
}

TERMINAL_STATES = frozenset({SessionState.SUCCEEDED, SessionState.FAILED})


def transition(current: SessionState, target: SessionState) -> SessionState:
    """
    Validate a state change.

    Raises:
        InvalidTransitionError: if ``target`` is not reachable from ``current``
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Invalid session transition {current.value} -> {target.value}"
        )
    return target


class CancellationToken:
    """
    Cooperative cancellation flag passed into every suspending call.

    Setting it never interrupts an in-flight await; loops check it at the
    top of each iteration and stop starting new work.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise GenerationCancelledError()


@dataclass
class GenerationSession:
    """User-visible state of one generation"""
    state: SessionState = SessionState.IDLE
    status: str = ""
    error: Optional[str] = None
    job_id: Optional[str] = None
    video_reference: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def move_to(self, target: SessionState):
        previous = self.state
        self.state = transition(self.state, target)
        logger.debug(f"Session {previous.value} -> {target.value}")

    def begin(self, target: SessionState, status: str = ""):
        """Leave IDLE for a working state, clearing the previous outcome"""
        if self.state in TERMINAL_STATES:
            self.reset()
        self.error = None
        self.job_id = None
        self.video_reference = None
        self.started_at = time.time()
        self.finished_at = None
        self.move_to(target)
        self.status = status

    def set_status(self, status: str):
        self.status = status
        logger.info(status)

    def succeed(self, video_reference: str, status: str = "Done"):
        self.move_to(SessionState.SUCCEEDED)
        self.video_reference = video_reference
        self.status = status
        self.finished_at = time.time()

    def fail(self, error: str):
        self.move_to(SessionState.FAILED)
        self.error = error
        self.status = ""
        self.job_id = None
        self.video_reference = None
        self.finished_at = time.time()

    def reset(self):
        if self.state is not SessionState.IDLE:
            self.move_to(SessionState.IDLE)

    @property
    def is_running(self) -> bool:
        return self.state in (
            SessionState.DISPATCHING, SessionState.POLLING, SessionState.RENDERING_LOCAL,
        )

    @property
    def elapsed_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return self.finished_at - self.started_at
        return None
