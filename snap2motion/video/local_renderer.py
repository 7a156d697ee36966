"""
Local Renderer - Ken Burns style camera animation over a still image

This module handles:
- The eased camera path (zoom, pan/tilt/orbit offsets, breathing wiggle)
- Compositing each frame onto a fixed canvas with PIL
- Streaming frames into an OpenCV VideoWriter, trying codecs in order

No network and no model: this backend always produces a video as long as
one of the encoders is available.
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from ..agent.errors import CapabilityUnavailableError
from ..agent.models import Backend, OutputArtifact
from ..agent.prompt_engine import CameraMove, MotionIntensity, clamp_duration
from ..agent.session import CancellationToken
from .imaging import open_image

logger = logging.getLogger(__name__)

DEFAULT_FPS = 24
MIN_FRAMES = 12
PAN_FRACTION = 0.06
WIGGLE_FRACTION = 0.008

INTENSITY_MULTIPLIERS: Dict[MotionIntensity, float] = {
    MotionIntensity.SUBTLE: 0.6,
    MotionIntensity.MEDIUM: 1.0,
    MotionIntensity.STRONG: 1.6,
}

ZOOM_END: Dict[CameraMove, float] = {
    CameraMove.PUSH_IN: 1.10,
    CameraMove.PULL_OUT: 0.92,
}
DEFAULT_ZOOM_END = 1.04

# (fourcc, container extension), best first
CODEC_CHAIN: List[Tuple[str, str]] = [
    ("VP90", ".webm"),
    ("VP80", ".webm"),
    ("mp4v", ".mp4"),
]


def ease_in_out(t: float) -> float:
    """Quadratic ease-in-out on [0, 1]"""
    if t < 0.5:
        return 2 * t * t
    return 1 - ((-2 * t + 2) ** 2) / 2


def frame_count(duration_seconds: float, fps: int = DEFAULT_FPS) -> int:
    return max(MIN_FRAMES, round(duration_seconds * fps))


def canvas_size(width: int, height: int, max_side: int = 720, min_side: int = 320) -> Tuple[int, int]:
    """Longest side scaled down to ``max_side``, each side at least ``min_side``"""
    scale = min(1.0, max_side / max(width, height))
    return max(min_side, round(width * scale)), max(min_side, round(height * scale))


def camera_transform(
    move: Union[CameraMove, str],
    t: float,
    frame_index: int,
    intensity: float,
    width: int,
    height: int,
) -> Tuple[float, float, float]:
    """
    Camera state for one frame.

    Args:
        move: Camera move
        t: Eased time in [0, 1]
        frame_index: Frame number, drives the breathing wiggle
        intensity: Motion multiplier (0.6 / 1.0 / 1.6)
        width, height: Canvas size in pixels

    Returns:
        (dx, dy, zoom) with offsets in canvas pixels
    """
    move = CameraMove(move)
    zoom_end = ZOOM_END.get(move, DEFAULT_ZOOM_END)
    zoom = 1 + (zoom_end - 1) * t

    pan = PAN_FRACTION * intensity
    dx = dy = 0.0
    if move is CameraMove.PAN_LEFT:
        dx = -width * pan * t
    elif move is CameraMove.PAN_RIGHT:
        dx = width * pan * t
    elif move is CameraMove.TILT_UP:
        dy = -height * pan * t
    elif move is CameraMove.TILT_DOWN:
        dy = height * pan * t
    elif move is CameraMove.ORBIT_LEFT:
        dx = -width * pan * math.sin(t * math.pi)
    elif move is CameraMove.ORBIT_RIGHT:
        dx = width * pan * math.sin(t * math.pi)

    wiggle = WIGGLE_FRACTION * intensity
    dx += width * wiggle * math.sin(frame_index * 0.35)
    dy += height * wiggle * math.cos(frame_index * 0.31)

    return dx, dy, zoom


def compose_frame(
    image: Image.Image,
    canvas: Tuple[int, int],
    dx: float,
    dy: float,
    zoom: float,
) -> np.ndarray:
    """Draw ``image`` covering the canvas, scaled by zoom and offset; returns RGB"""
    canvas_w, canvas_h = canvas
    cover = max(canvas_w / image.width, canvas_h / image.height)
    scale = cover * zoom
    draw_w = max(1, round(image.width * scale))
    draw_h = max(1, round(image.height * scale))

    x = round((canvas_w - draw_w) / 2 + dx)
    y = round((canvas_h - draw_h) / 2 + dy)

    frame = Image.new("RGB", (canvas_w, canvas_h), (0, 0, 0))
    frame.paste(image.resize((draw_w, draw_h), Image.BILINEAR), (x, y))
    return np.array(frame)


def _opencv_writer(path: Path, fourcc: str, fps: int, size: Tuple[int, int]) -> Any:
    return cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*fourcc), fps, size)


@dataclass
class LocalRenderConfig:
    fps: int = DEFAULT_FPS
    max_side: int = 720
    min_side: int = 320
    realtime: bool = True
    output_dir: Path = field(default_factory=lambda: Path("outputs"))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], output_dir: Optional[Union[str, Path]] = None) -> 'LocalRenderConfig':
        """Build from the ``local`` config section"""
        data = data or {}
        return cls(
            fps=int(data.get('fps', DEFAULT_FPS)),
            max_side=int(data.get('max_side', 720)),
            min_side=int(data.get('min_side', 320)),
            realtime=bool(data.get('realtime', True)),
            output_dir=Path(output_dir) if output_dir else Path("outputs"),
        )


class LocalRenderer:
    """
    Renders a short camera-move video from a single image.

    Usage:
        renderer = LocalRenderer(LocalRenderConfig(output_dir="outputs"))
        artifact = await renderer.render(image_bytes, 4, "subtle", "push_in")

    ``writer_factory(path, fourcc, fps, (w, h))`` must return an object with
    ``isOpened()``, ``write(bgr_frame)`` and ``release()``; it defaults to
    ``cv2.VideoWriter``.
    """

    def __init__(
        self,
        config: Optional[LocalRenderConfig] = None,
        writer_factory: Callable[..., Any] = _opencv_writer,
        codecs: Optional[List[Tuple[str, str]]] = None,
    ):
        self.config = config or LocalRenderConfig()
        self.writer_factory = writer_factory
        self.codecs = codecs or CODEC_CHAIN

    def _open_writer(self, stem: Path, size: Tuple[int, int]) -> Tuple[Any, Path, str]:
        """First codec whose writer opens; raises before any frame is drawn"""
        for fourcc, ext in self.codecs:
            path = stem.with_suffix(ext)
            writer = self.writer_factory(path, fourcc, self.config.fps, size)
            if writer is not None and writer.isOpened():
                logger.info(f"Local render encoder: {fourcc} -> {path.name}")
                return writer, path, fourcc
            if writer is not None:
                writer.release()
            if path.exists():
                path.unlink()
            logger.debug(f"Encoder {fourcc} unavailable")

        tried = ", ".join(fourcc for fourcc, _ in self.codecs)
        raise CapabilityUnavailableError(
            f"No usable video encoder for local rendering (tried {tried})."
        )

    async def render(
        self,
        image: Union[bytes, Image.Image],
        duration_seconds: float,
        motion_intensity: Union[MotionIntensity, str] = MotionIntensity.MEDIUM,
        camera_move: Union[CameraMove, str] = CameraMove.PUSH_IN,
        on_progress: Optional[Callable[[float], None]] = None,
        token: Optional[CancellationToken] = None,
    ) -> OutputArtifact:
        """
        Render the video and return it as a local artifact.

        Raises:
            CapabilityUnavailableError: no encoder in the codec chain works
            GenerationCancelledError: token set between frames
        """
        source = image if isinstance(image, Image.Image) else open_image(image)
        source = source.convert("RGB")

        fps = self.config.fps
        duration = clamp_duration(duration_seconds)
        frames = frame_count(duration, fps)
        size = canvas_size(source.width, source.height, self.config.max_side, self.config.min_side)
        intensity = INTENSITY_MULTIPLIERS[MotionIntensity(motion_intensity)]
        move = CameraMove(camera_move)

        output_dir = Path(self.config.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        stem = output_dir / f"local_{time.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"

        writer, path, fourcc = self._open_writer(stem, size)
        delay = 1.0 / fps if self.config.realtime else 0
        completed = False

        logger.info(f"Rendering {frames} frames at {size[0]}x{size[1]} "
                    f"({move.value}, intensity {intensity})")
        try:
            for i in range(frames):
                if token is not None:
                    token.raise_if_cancelled()

                t = ease_in_out(i / (frames - 1))
                dx, dy, zoom = camera_transform(move, t, i, intensity, size[0], size[1])
                rgb = compose_frame(source, size, dx, dy, zoom)
                writer.write(cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))

                if on_progress:
                    on_progress(100.0 * i / (frames - 1))
                await asyncio.sleep(delay)
            completed = True
        finally:
            writer.release()
            if not completed and path.exists():
                path.unlink()

        return OutputArtifact(
            reference=str(path),
            backend=Backend.LOCAL,
            is_local=True,
            metadata={
                "fps": fps,
                "frames": frames,
                "width": size[0],
                "height": size[1],
                "codec": fourcc,
                "duration_seconds": duration,
            },
        )
