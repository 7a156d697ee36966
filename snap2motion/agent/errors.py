"""
Error taxonomy for the generation agent.

Every failure a generation can end in is one of these exceptions. The
planner catches them at its boundary and turns them into the
user-visible status / error pair, so each carries a message that is
fit to show to the user as-is.
"""

from typing import Optional


class Snap2MotionError(Exception):
    """Base class for all agent errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(Snap2MotionError):
    """User input failed a form constraint; generation never starts."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConfigurationError(Snap2MotionError):
    """A required setting (API token, model id) is missing."""


class SchemaIncompleteError(Snap2MotionError):
    """The remote input schema exposes no image-capable field."""


class SubmissionError(Snap2MotionError):
    """The remote job queue rejected or failed a submission."""


class PollError(Snap2MotionError):
    """A status poll against the remote job queue failed."""


class JobFailedError(Snap2MotionError):
    """The remote job reached the failed or canceled state."""

    def __init__(self, message: str, status: str = "failed"):
        super().__init__(message)
        self.status = status


class PolledSuccessWithoutOutputError(Snap2MotionError):
    """The remote job succeeded but no output reference could be extracted."""


class JobStateError(Snap2MotionError):
    """A status update was applied to a job that is already terminal."""


class TransientOverloadError(Snap2MotionError):
    """A remote failure classified as overload / quota / timeout."""


class AllCandidatesExhaustedError(Snap2MotionError):
    """Every (candidate, profile) combination failed."""

    def __init__(self, message: str, last_error: Optional[str] = None):
        super().__init__(message)
        self.last_error = last_error


class CapabilityUnavailableError(Snap2MotionError):
    """No local video encoder is usable."""


class GenerationCancelledError(Snap2MotionError):
    """The session's cancellation token was set."""

    def __init__(self, message: str = "Generation cancelled."):
        super().__init__(message)


class InvalidTransitionError(Snap2MotionError):
    """The session state machine was asked for a disallowed transition."""
