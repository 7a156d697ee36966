"""
Snap2Motion Video Package
Image helpers and the local camera-move renderer
"""

from .imaging import resize_image, to_data_uri
from .local_renderer import LocalRenderer, LocalRenderConfig

__all__ = [
    'resize_image',
    'to_data_uri',
    'LocalRenderer',
    'LocalRenderConfig',
]
