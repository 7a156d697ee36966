"""
Retry Logic - Degrades requests across Spaces and attempt profiles

This module handles:
- Classifying remote failures (transient overload vs. everything else)
- Ordered attempt profiles that lower resolution, duration and steps
- Building a Space call payload from introspected endpoint parameters
- Walking candidate Spaces until one returns a video
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .endpoint_scorer import ApiDescription, EndpointParameter, is_prompt_name, select_endpoint
from .errors import (
    AllCandidatesExhaustedError,
    GenerationCancelledError,
    PolledSuccessWithoutOutputError,
    TransientOverloadError,
)
from .models import Backend, GenerationRequest, OutputArtifact
from .prompt_engine import MotionIntensity, build_space_prompt
from .session import CancellationToken
from ..video.imaging import resize_image

logger = logging.getLogger(__name__)

DEFAULT_SPACE = "multimodalart/stable-video-diffusion"
DEFAULT_NEGATIVE_PROMPT = "blurry, low quality, watermark, subtitles, deformed, artifacts"
DEFAULT_SEED = 42
DEFAULT_RETRY_DELAY = 0.8
UNRESIZED_MAX_DIMENSION = 10000
MIN_STEPS = 3

NO_VIDEO_MESSAGE = "Space returned, but no video URL was found in the output."

# (base steps, guidance) per motion intensity
INTENSITY_DEFAULTS: Dict[MotionIntensity, Tuple[int, float]] = {
    MotionIntensity.SUBTLE: (4, 1.0),
    MotionIntensity.MEDIUM: (5, 1.2),
    MotionIntensity.STRONG: (6, 1.5),
}


class ErrorType(Enum):
    """Classification of Space failures"""
    TRANSIENT_OVERLOAD = auto()   # GPU abort, quota, timeout
    CONNECTION = auto()           # Connect or introspection failed
    NO_OUTPUT = auto()            # Call returned without a video
    UNKNOWN = auto()


# Matched case-insensitively against the error message
TRANSIENT_PATTERNS = [
    'gpu task aborted',
    'zerogpu worker error',
    'insufficient gpu',
    'insufficient gpu time',
    'quota',
    'requested',
    'timed out',
    'overloaded',
]


def is_transient_overload(message: Any) -> bool:
    """True if a failure message looks like GPU overload / quota / timeout"""
    text = str(message).lower()
    return any(pattern in text for pattern in TRANSIENT_PATTERNS)


def classify_error(error: Exception) -> ErrorType:
    if isinstance(error, PolledSuccessWithoutOutputError):
        return ErrorType.NO_OUTPUT
    if isinstance(error, TransientOverloadError) or is_transient_overload(error):
        return ErrorType.TRANSIENT_OVERLOAD
    return ErrorType.UNKNOWN


def _is_video_location(value: str) -> bool:
    # gradio_client downloads file outputs, so a local path must exist
    if value.startswith(("http://", "https://")):
        return True
    return os.path.isfile(value)


def extract_space_video(result: Any, _depth: int = 0) -> Optional[str]:
    """
    Find the video in a Space prediction result.

    Every item of a tuple or list is checked in order, so a leading
    status string or seed does not hide the video. Strings count only as
    an http(s) URL or an existing file; mappings and file objects are
    searched under ``video``, ``url``, ``path`` and ``data``.

    Returns:
        The first video location found, or None
    """
    if result is None or _depth > 4:
        return None

    if isinstance(result, os.PathLike):
        result = os.fspath(result)

    if isinstance(result, str):
        return result if result and _is_video_location(result) else None

    if isinstance(result, (list, tuple)):
        for item in result:
            found = extract_space_video(item, _depth + 1)
            if found:
                return found
        return None

    for key in ('video', 'url', 'path', 'data'):
        value = result.get(key) if isinstance(result, dict) else getattr(result, key, None)
        found = extract_space_video(value, _depth + 1)
        if found:
            return found
    return None


@dataclass(frozen=True)
class AttemptProfile:
    """One step down the cost ladder"""
    max_input_dimension: int
    duration_cap: Optional[float] = None
    step_multiplier: float = 1.0

    def effective_duration(self, requested: float) -> float:
        if self.duration_cap is None:
            return requested
        return min(requested, self.duration_cap)

    def steps_for(self, base_steps: int) -> int:
        return max(MIN_STEPS, round(base_steps * self.step_multiplier))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttemptProfile':
        cap = data.get('duration_cap')
        return cls(
            max_input_dimension=int(data.get('max_side', 768)),
            duration_cap=float(cap) if cap is not None else None,
            step_multiplier=float(data.get('step_multiplier', 1.0)),
        )


DEFAULT_PROFILES: Tuple[AttemptProfile, ...] = (
    AttemptProfile(768, None, 1.0),
    AttemptProfile(512, 4, 0.85),
    AttemptProfile(384, 2, 0.75),
)


def profiles_for(profiles: Sequence[AttemptProfile], resize_inputs: bool) -> List[AttemptProfile]:
    """Profiles as used for a request; without resizing the size cap is lifted"""
    if resize_inputs:
        return list(profiles)
    return [
        AttemptProfile(UNRESIZED_MAX_DIMENSION, p.duration_cap, p.step_multiplier)
        for p in profiles
    ]


@dataclass
class DegradationConfig:
    """Settings of the introspected-remote backend"""
    default_space: str = DEFAULT_SPACE
    spaces: List[str] = field(default_factory=list)
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT
    seed: int = DEFAULT_SEED
    profiles: Tuple[AttemptProfile, ...] = DEFAULT_PROFILES

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DegradationConfig':
        """Build from the ``introspected_remote`` config section"""
        data = data or {}
        spaces = []
        for entry in data.get('spaces') or []:
            space_id = entry.get('id') if isinstance(entry, dict) else entry
            if space_id:
                spaces.append(str(space_id))

        raw_profiles = data.get('attempt_profiles') or []
        profiles = tuple(AttemptProfile.from_dict(p) for p in raw_profiles) or DEFAULT_PROFILES

        return cls(
            default_space=data.get('default_space') or DEFAULT_SPACE,
            spaces=spaces,
            retry_delay_seconds=float(data.get('retry_delay_seconds', DEFAULT_RETRY_DELAY)),
            negative_prompt=data.get('negative_prompt') or DEFAULT_NEGATIVE_PROMPT,
            seed=int(data.get('seed', DEFAULT_SEED)),
            profiles=profiles,
        )


@dataclass
class RetryAttempt:
    """Record of a single (candidate, profile) attempt"""
    candidate: str
    profile_index: int
    success: bool
    error_type: Optional[ErrorType]
    error_message: str
    duration_seconds: float
    timestamp: float = field(default_factory=time.time)


class SpaceConnection(ABC):
    """An open connection to one Space"""

    @abstractmethod
    async def view_api(self) -> Dict[str, Any]:
        """Introspected API description (``view_api`` dict format)"""

    @abstractmethod
    def file_input(self, data: bytes, name: str) -> Any:
        """Wrap image bytes as a file argument for ``predict``"""

    @abstractmethod
    async def predict(self, payload: Dict[str, Any], endpoint: Any) -> Any:
        """Invoke an endpoint by name (str) or index (int)"""


class SpaceConnector(ABC):
    @abstractmethod
    async def connect(self, space_id: str) -> SpaceConnection:
        """Open a connection to ``space_id``"""


def candidate_spaces(primary: Optional[str], fallbacks: Sequence[str]) -> List[str]:
    """Primary first, then fallbacks; empty entries and repeats dropped"""
    seen = set()
    ordered = []
    for space_id in [primary, *fallbacks]:
        if space_id and space_id not in seen:
            seen.add(space_id)
            ordered.append(space_id)
    return ordered


def _is_negative(param: EndpointParameter) -> bool:
    return "negative" in param.lname or "negative" in param.label.lower()


def build_endpoint_payload(
    parameters: Sequence[EndpointParameter],
    request: GenerationRequest,
    profile: AttemptProfile,
    image_input: Callable[[], Any],
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT,
    seed: int = DEFAULT_SEED,
) -> Dict[str, Any]:
    """
    Fill every endpoint parameter we can give a sensible value.

    Args:
        parameters: Parameters of the selected endpoint
        request: The generation request
        profile: Attempt profile in effect
        image_input: Produces the (resized) image argument; only called
            if the endpoint takes an image
        negative_prompt: Quality-guard text for negative prompt inputs
        seed: Fixed seed for inputs named ``seed``

    Returns:
        Keyword payload for ``predict``
    """
    duration = profile.effective_duration(request.duration_seconds)
    base_steps, guidance = INTENSITY_DEFAULTS[MotionIntensity(request.motion_intensity)]
    steps = profile.steps_for(base_steps)

    payload: Dict[str, Any] = {}
    image_value = None

    for param in parameters:
        name, lname = param.name, param.lname

        if "image" in lname:
            if image_value is None:
                image_value = image_input()
            payload[name] = image_value
        elif is_prompt_name(lname) and not _is_negative(param):
            payload[name] = build_space_prompt(
                request.prompt, request.motion_intensity, duration, request.camera_move,
            )
        elif _is_negative(param):
            payload[name] = negative_prompt
        elif "duration" in lname:
            payload[name] = duration
        elif "steps" in lname:
            payload[name] = steps
        elif "guidance" in lname:
            payload[name] = guidance
        elif lname == "seed":
            payload[name] = seed
        elif "randomize" in lname and "seed" in lname:
            payload[name] = True
        elif param.has_default:
            payload[name] = param.default

    return payload


class DegradationController:
    """
    Tries candidate Spaces with progressively cheaper settings.

    For every candidate, each attempt profile is tried in order. A
    transient overload moves to the next (cheaper) profile on the same
    Space; any other failure moves to the next Space.
    """

    def __init__(self, connector: SpaceConnector, config: Optional[DegradationConfig] = None):
        self.connector = connector
        self.config = config or DegradationConfig()
        self.attempt_history: List[RetryAttempt] = []

    def _record(self, candidate, index, started, error=None, error_type=None) -> RetryAttempt:
        attempt = RetryAttempt(
            candidate=candidate,
            profile_index=index,
            success=error is None,
            error_type=error_type,
            error_message=str(error) if error is not None else "",
            duration_seconds=time.time() - started,
        )
        self.attempt_history.append(attempt)
        if error is None:
            logger.info(f"Attempt {index + 1} on {candidate} succeeded "
                        f"({attempt.duration_seconds:.1f}s)")
        else:
            logger.warning(f"Attempt {index + 1} on {candidate} failed "
                           f"[{error_type.name}]: {attempt.error_message}")
        return attempt

    async def _attempt(
        self,
        connection: SpaceConnection,
        api: ApiDescription,
        request: GenerationRequest,
        profile: AttemptProfile,
    ) -> Tuple[str, Any]:
        candidate = select_endpoint(api)

        def image_input():
            blob = resize_image(request.source_image, profile.max_input_dimension)
            return connection.file_input(blob, request.image_name)

        payload = build_endpoint_payload(
            candidate.parameters, request, profile, image_input,
            negative_prompt=self.config.negative_prompt,
            seed=self.config.seed,
        )
        logger.debug(f"Calling endpoint {candidate.identifier!r} with keys {list(payload)}")

        result = await connection.predict(payload, candidate.identifier)
        reference = extract_space_video(result)
        if not reference:
            raise PolledSuccessWithoutOutputError(NO_VIDEO_MESSAGE)
        return reference, candidate.identifier

    async def dispatch(
        self,
        request: GenerationRequest,
        token: Optional[CancellationToken] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> OutputArtifact:
        """
        Run the request against the candidate Spaces.

        Raises:
            GenerationCancelledError: token set between attempts
            AllCandidatesExhaustedError: every candidate and profile failed
        """
        def status(text: str):
            logger.info(text)
            if on_status:
                on_status(text)

        def check_cancelled():
            if token is not None:
                token.raise_if_cancelled()

        self.attempt_history = []
        candidates = candidate_spaces(
            request.space_id or self.config.default_space, self.config.spaces,
        )
        profiles = profiles_for(self.config.profiles, request.resize_inputs)
        last_error: Optional[Exception] = None

        for space_id in candidates:
            check_cancelled()

            for index, profile in enumerate(profiles):
                check_cancelled()
                started = time.time()

                try:
                    status(f"Connecting to HF Space: {space_id}…")
                    connection = await self.connector.connect(space_id)
                    status("Inspecting Space API…")
                    api = ApiDescription.from_view_api(await connection.view_api())
                except GenerationCancelledError:
                    raise
                except Exception as e:
                    last_error = e
                    self._record(space_id, index, started, e, ErrorType.CONNECTION)
                    break

                try:
                    status(f"Generating on {space_id}… (may queue)")
                    reference, endpoint = await self._attempt(connection, api, request, profile)
                except GenerationCancelledError:
                    raise
                except Exception as e:
                    last_error = e
                    error_type = classify_error(e)
                    self._record(space_id, index, started, e, error_type)
                    if error_type is not ErrorType.TRANSIENT_OVERLOAD:
                        break
                    if index + 1 < len(profiles):
                        status(f"HF busy (attempt {index + 1}/{len(profiles)}). "
                               f"Retrying with lighter settings…")
                        await asyncio.sleep(self.config.retry_delay_seconds)
                    continue

                self._record(space_id, index, started)
                return OutputArtifact(
                    reference=reference,
                    backend=Backend.INTROSPECTED_REMOTE,
                    is_local=False,
                    metadata={
                        "space_id": space_id,
                        "endpoint": endpoint,
                        "profile_index": index,
                        "attempts": len(self.attempt_history),
                    },
                )

        last_message = str(last_error) if last_error is not None else "Unknown error"
        raise AllCandidatesExhaustedError(exhaustion_message(last_message), last_error=last_message)


def exhaustion_message(details: str) -> str:
    return (
        'Hugging Face ZeroGPU is busy or your GPU time was cut short ("GPU task aborted").\n\n'
        'Try: (1) duration 2–4s, (2) Motion=Subtle, (3) keep the default '
        '"Stable Video Diffusion" Space, or (4) switch Provider → "Local Free (always works)".\n\n'
        f"Details: {details}"
    )
