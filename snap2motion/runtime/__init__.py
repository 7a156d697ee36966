"""
Snap2Motion Runtime Package
Network clients for the remote backends (Replicate queue, Gradio Spaces).
"""

from .replicate_client import ReplicateClient, ReplicateConfig

__all__ = [
    'ReplicateClient',
    'ReplicateConfig',
    'GradioSpaceConnector',
]


def __getattr__(name):
    # gradio_client is heavy; only import it when a Space is actually used
    if name in ('GradioSpaceConnector', 'GradioSpaceConnection'):
        from . import space_client
        return getattr(space_client, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
