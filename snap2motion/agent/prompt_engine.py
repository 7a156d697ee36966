"""
Prompt Engine - Turns user intent into backend-ready prompt text

This module handles:
- Camera, style, lighting and motion-intensity vocabularies
- Mapping UI camera / lighting choices onto director-model vocabulary
- Bracket-tagged "director" prompts for queue-based backends
- Plain-English prompts for introspected (Space) backends

No LLM is involved: the prompt is massaged deterministically so that the
same inputs always give the same text.
"""

import math
from enum import Enum
from typing import Dict, Union

MIN_DURATION_SECONDS = 2
MAX_DURATION_SECONDS = 6


class MotionIntensity(str, Enum):
    """How much the scene should move"""
    SUBTLE = "subtle"
    MEDIUM = "medium"
    STRONG = "strong"


class CameraMove(str, Enum):
    """Camera moves offered by the UI (and understood by the local renderer)"""
    NONE = "none"
    PUSH_IN = "push_in"
    PULL_OUT = "pull_out"
    PAN_LEFT = "pan_left"
    PAN_RIGHT = "pan_right"
    TILT_UP = "tilt_up"
    TILT_DOWN = "tilt_down"
    ORBIT_LEFT = "orbit_left"
    ORBIT_RIGHT = "orbit_right"


class DirectorCamera(str, Enum):
    """Camera vocabulary of director-style models"""
    STATIC = "static"
    PUSH_IN = "push_in"
    PULL_OUT = "pull_out"
    PAN_LEFT = "pan_left"
    PAN_RIGHT = "pan_right"
    TILT_UP = "tilt_up"
    TILT_DOWN = "tilt_down"
    TRUCK_LEFT = "truck_left"
    TRUCK_RIGHT = "truck_right"
    PEDESTAL_UP = "pedestal_up"
    PEDESTAL_DOWN = "pedestal_down"
    ZOOM_IN = "zoom_in"
    ZOOM_OUT = "zoom_out"
    TRACKING = "tracking"
    SHAKE = "shake"


class VisualStyle(str, Enum):
    CINEMATIC = "cinematic"
    REALISTIC = "realistic"
    ANIME = "anime"
    DREAMY = "dreamy"
    RETRO = "retro"


class Lighting(str, Enum):
    NATURAL = "natural"
    CINEMATIC = "cinematic"
    NEON = "neon"
    SOFT = "soft"


class ShotType(str, Enum):
    WIDE = "wide"
    MEDIUM = "medium"
    CLOSEUP = "closeup"


DIRECTOR_CAMERA_LABELS: Dict[DirectorCamera, str] = {
    DirectorCamera.STATIC: "Static shot",
    DirectorCamera.PUSH_IN: "Push in",
    DirectorCamera.PULL_OUT: "Pull out",
    DirectorCamera.PAN_LEFT: "Pan left",
    DirectorCamera.PAN_RIGHT: "Pan right",
    DirectorCamera.TILT_UP: "Tilt up",
    DirectorCamera.TILT_DOWN: "Tilt down",
    DirectorCamera.TRUCK_LEFT: "Truck left",
    DirectorCamera.TRUCK_RIGHT: "Truck right",
    DirectorCamera.PEDESTAL_UP: "Pedestal up",
    DirectorCamera.PEDESTAL_DOWN: "Pedestal down",
    DirectorCamera.ZOOM_IN: "Zoom in",
    DirectorCamera.ZOOM_OUT: "Zoom out",
    DirectorCamera.TRACKING: "Tracking shot",
    DirectorCamera.SHAKE: "Shake",
}

STYLE_HINTS: Dict[VisualStyle, str] = {
    VisualStyle.CINEMATIC: "cinematic lighting, film look, shallow depth of field",
    VisualStyle.REALISTIC: "photorealistic, natural lighting, realistic motion",
    VisualStyle.ANIME: "anime style, vibrant colors, clean line art",
    VisualStyle.DREAMY: "soft dreamy atmosphere, bokeh, gentle glow",
    VisualStyle.RETRO: "retro 90s vibe, film grain, muted palette",
}

DIRECTOR_INTENSITY_HINTS: Dict[MotionIntensity, str] = {
    MotionIntensity.SUBTLE: "subtle motion",
    MotionIntensity.MEDIUM: "smooth motion",
    MotionIntensity.STRONG: "dynamic motion",
}

NATURAL_INTENSITY_TEXT: Dict[MotionIntensity, str] = {
    MotionIntensity.SUBTLE: "subtle, gentle motion",
    MotionIntensity.MEDIUM: "moderate, natural motion",
    MotionIntensity.STRONG: "strong, dynamic motion",
}

NATURAL_CAMERA_TEXT: Dict[CameraMove, str] = {
    CameraMove.NONE: "static camera",
    CameraMove.PUSH_IN: "slow push-in (dolly in)",
    CameraMove.PULL_OUT: "slow pull-out (dolly out)",
    CameraMove.PAN_LEFT: "slow pan left",
    CameraMove.PAN_RIGHT: "slow pan right",
    CameraMove.TILT_UP: "slow tilt up",
    CameraMove.TILT_DOWN: "slow tilt down",
    CameraMove.ORBIT_LEFT: "slow orbit left",
    CameraMove.ORBIT_RIGHT: "slow orbit right",
}

# Director models have no orbit; tracking is the closest move they know.
_UI_TO_DIRECTOR_CAMERA: Dict[CameraMove, DirectorCamera] = {
    CameraMove.NONE: DirectorCamera.STATIC,
    CameraMove.PUSH_IN: DirectorCamera.PUSH_IN,
    CameraMove.PULL_OUT: DirectorCamera.PULL_OUT,
    CameraMove.PAN_LEFT: DirectorCamera.PAN_LEFT,
    CameraMove.PAN_RIGHT: DirectorCamera.PAN_RIGHT,
    CameraMove.TILT_UP: DirectorCamera.TILT_UP,
    CameraMove.TILT_DOWN: DirectorCamera.TILT_DOWN,
    CameraMove.ORBIT_LEFT: DirectorCamera.TRACKING,
    CameraMove.ORBIT_RIGHT: DirectorCamera.TRACKING,
}

_LIGHTING_TO_STYLE: Dict[Lighting, VisualStyle] = {
    Lighting.NATURAL: VisualStyle.REALISTIC,
    Lighting.CINEMATIC: VisualStyle.CINEMATIC,
    Lighting.SOFT: VisualStyle.DREAMY,
    Lighting.NEON: VisualStyle.RETRO,
}


def clamp_duration(seconds: float) -> float:
    """Clamp a duration into the range every backend accepts"""
    return max(MIN_DURATION_SECONDS, min(MAX_DURATION_SECONDS, seconds))


def camera_bracket(camera: Union[DirectorCamera, str]) -> str:
    """Bracket tag for a director camera move, e.g. ``[Push in]``"""
    return f"[{DIRECTOR_CAMERA_LABELS[DirectorCamera(camera)]}]"


def to_director_camera(move: Union[CameraMove, str]) -> DirectorCamera:
    return _UI_TO_DIRECTOR_CAMERA.get(CameraMove(move), DirectorCamera.STATIC)


def to_director_style(lighting: Union[Lighting, str]) -> VisualStyle:
    return _LIGHTING_TO_STYLE.get(Lighting(lighting), VisualStyle.CINEMATIC)


def _format_seconds(seconds: float) -> str:
    return f"{seconds:g}"


def build_director_prompt(
    user_prompt: str,
    camera: Union[DirectorCamera, str],
    duration_seconds: float,
    style: Union[VisualStyle, str],
    motion_intensity: Union[MotionIntensity, str],
) -> str:
    """
    Build a bracket-tagged prompt for director-style queue backends.

    The camera tag goes first since these models key on it; the duration
    is spelled out so models without a duration input can still follow it.

    Example:
        >>> build_director_prompt("A cat yawns", "push_in", 4, "cinematic", "subtle")
        '[Push in] A cat yawns. cinematic lighting, film look, shallow depth of field. subtle motion. 4-second shot.'
    """
    bracket = camera_bracket(camera)
    style_hint = STYLE_HINTS[VisualStyle(style)]
    intensity_hint = DIRECTOR_INTENSITY_HINTS[MotionIntensity(motion_intensity)]
    seconds = int(clamp_duration(math.floor(duration_seconds + 0.5)))

    return f"{bracket} {user_prompt}. {style_hint}. {intensity_hint}. {seconds}-second shot."


def build_space_prompt(
    user_prompt: str,
    motion_intensity: Union[MotionIntensity, str],
    duration_seconds: float,
    camera_move: Union[CameraMove, str],
) -> str:
    """Build a plain-English prompt for introspected Space backends"""
    motion = NATURAL_INTENSITY_TEXT[MotionIntensity(motion_intensity)]
    camera = NATURAL_CAMERA_TEXT[CameraMove(camera_move)]
    seconds = _format_seconds(clamp_duration(duration_seconds))

    return (
        f"{user_prompt}. {motion}. Camera: {camera}. "
        f"Duration ~{seconds}s. Smooth, cinematic animation."
    )
