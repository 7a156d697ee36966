"""
Request and result records passed between the planner and the backends
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .prompt_engine import CameraMove, Lighting, MotionIntensity, ShotType


class Backend(str, Enum):
    """Where a video gets generated"""
    QUEUED_REMOTE = "queued_remote"
    INTROSPECTED_REMOTE = "introspected_remote"
    LOCAL = "local"


@dataclass(frozen=True)
class GenerationRequest:
    """A validated generation request; never mutated once dispatched"""
    source_image: bytes
    prompt: str
    image_name: str = "input.jpg"
    camera_move: CameraMove = CameraMove.PUSH_IN
    motion_intensity: MotionIntensity = MotionIntensity.SUBTLE
    duration_seconds: float = 4.0
    lighting: Lighting = Lighting.CINEMATIC
    shot_type: ShotType = ShotType.MEDIUM
    backend: Backend = Backend.INTROSPECTED_REMOTE
    space_id: Optional[str] = None
    resize_inputs: bool = True
    seed: Optional[int] = None

    def summary(self) -> Dict[str, Any]:
        """Loggable view without the image bytes"""
        return {
            "backend": self.backend.value,
            "prompt": self.prompt,
            "camera_move": self.camera_move.value,
            "motion_intensity": self.motion_intensity.value,
            "duration_seconds": self.duration_seconds,
            "lighting": self.lighting.value,
            "shot_type": self.shot_type.value,
            "space_id": self.space_id,
            "image_bytes": len(self.source_image),
        }


@dataclass(frozen=True)
class OutputArtifact:
    """The single playable result of a completed request"""
    reference: str
    backend: Backend
    is_local: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
