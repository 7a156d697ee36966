"""
Snap2Motion Main Package
Image to short video agent with remote and local backends
"""

__version__ = "0.1.0"
__author__ = "Snap2Motion Project"


# ── Lazy imports ---------------------------------------------------------
# gradio and fastapi are NOT imported at package level; they load on
# first use.

def launch_ui(**kwargs):
    """
    Launch the web-based user interface.

    Args:
        port: Server port (default: 7860)
        share: Create public link (default: False)
        output_dir: Output directory for local renders
        debug: Enable debug logging
    """
    from .ui import launch_ui as _launch
    _launch(**kwargs)


__all__ = [
    'launch_ui',
    'GenerationPlanner',
    'validate_request',
]


def __getattr__(name):
    """Lazy attribute access for sub-module symbols."""
    _agent_names = {
        'GenerationPlanner', 'GenerationRequest', 'GenerationSession',
        'CancellationToken', 'validate_request', 'Backend',
    }
    if name in _agent_names:
        from . import agent as _agent
        return getattr(_agent, name)

    if name == 'run_server':
        from .api import run_server
        return run_server

    if name in {'WebUI', 'UILogHandler'}:
        from . import ui as _ui
        return getattr(_ui, name)

    raise AttributeError(f"module 'snap2motion' has no attribute {name!r}")
