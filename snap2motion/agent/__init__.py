"""
Snap2Motion Agent Package
Turns an image and a prompt into a short video on one of three backends
"""

from .errors import Snap2MotionError
from .models import Backend, GenerationRequest, OutputArtifact
from .session import CancellationToken, GenerationSession, SessionState

__all__ = [
    'Snap2MotionError',
    'Backend',
    'GenerationRequest',
    'OutputArtifact',
    'GenerationPlanner',
    'GenerationForm',
    'validate_request',
    'DegradationController',
    'CancellationToken',
    'GenerationSession',
    'SessionState',
]


def __getattr__(name):
    # planner pulls in the runtime and video packages, which import back
    # into this package; load it on first use
    if name in ('GenerationPlanner', 'GenerationForm', 'validate_request'):
        from . import planner
        return getattr(planner, name)
    if name == 'DegradationController':
        from .retry_logic import DegradationController
        return DegradationController
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
