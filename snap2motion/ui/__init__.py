"""
Snap2Motion UI Module
Gradio web interface and its log panel handler.
"""

from .web_ui import WebUI, launch_ui
from .log_handler import UILogHandler

__all__ = ['WebUI', 'launch_ui', 'UILogHandler']
