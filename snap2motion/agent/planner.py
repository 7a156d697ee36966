"""
Generation Planner - Routes a request to a backend and drives the session

This module is the central orchestrator that:
- Validates raw form input into an immutable GenerationRequest
- Picks the queued, introspected or local backend for the request
- Walks the GenerationSession through its states
- Turns every failure into a user-visible status / error pair
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..config import load_defaults, section
from ..runtime.replicate_client import ReplicateClient, ReplicateConfig
from ..video.imaging import guess_mime_type, to_data_uri
from .errors import (
    SchemaIncompleteError,
    Snap2MotionError,
    SubmissionError,
    ValidationError,
)
from .job_dispatcher import JobDispatcher
from .models import Backend, GenerationRequest, OutputArtifact
from .prompt_engine import (
    CameraMove,
    DirectorCamera,
    Lighting,
    MotionIntensity,
    ShotType,
    VisualStyle,
    build_director_prompt,
    to_director_camera,
    to_director_style,
)
from .retry_logic import DegradationConfig, DegradationController, SpaceConnector
from .schema_resolver import InputSchema, ResolvedFieldMapping, resolve_input_fields
from .session import CancellationToken, GenerationSession, SessionState

if TYPE_CHECKING:
    from ..video.local_renderer import LocalRenderer

logger = logging.getLogger(__name__)

PROMPT_MIN_LENGTH = 3
PROMPT_MAX_LENGTH = 500

PROMPT_REQUIRED_MESSAGE = "Please write a prompt (at least 3 characters)."
PROMPT_TOO_LONG_MESSAGE = "Please keep the prompt under 500 characters."
IMAGE_REQUIRED_MESSAGE = "Please upload an image first."
MISSING_SCHEMA_MESSAGE = "Could not fetch model schema (openapi_schema missing). Try again later."
NO_IMAGE_FIELD_MESSAGE = (
    "This model schema did not expose an image input. Pick a model that supports image-to-video."
)

StatusCallback = Optional[Callable[[str], None]]


class GenerationForm(BaseModel):
    """Raw form input as submitted by the UI, CLI or HTTP API"""
    model_config = ConfigDict(extra='ignore', validate_default=True)

    prompt: str = ""
    image: Optional[bytes] = None
    image_name: str = "input.jpg"
    camera_move: CameraMove = CameraMove.PUSH_IN
    motion_intensity: MotionIntensity = MotionIntensity.SUBTLE
    duration_seconds: float = Field(4.0, ge=2, le=6)
    lighting: Lighting = Lighting.CINEMATIC
    shot_type: ShotType = ShotType.MEDIUM
    backend: Backend = Backend.INTROSPECTED_REMOTE
    space_id: Optional[str] = None
    resize_inputs: bool = True
    seed: Optional[int] = None

    @field_validator('prompt')
    @classmethod
    def check_prompt(cls, value: str) -> str:
        if len(value.strip()) < PROMPT_MIN_LENGTH:
            raise ValueError(PROMPT_REQUIRED_MESSAGE)
        if len(value) > PROMPT_MAX_LENGTH:
            raise ValueError(PROMPT_TOO_LONG_MESSAGE)
        return value


def _first_error(exc: PydanticValidationError) -> Tuple[Optional[str], str]:
    """(field, message) of the first pydantic error, custom messages unwrapped"""
    err = exc.errors()[0]
    loc = err.get('loc') or ()
    field_name = str(loc[0]) if loc else None

    ctx_error = (err.get('ctx') or {}).get('error')
    if err.get('type') == 'value_error' and ctx_error is not None:
        return field_name, str(ctx_error)
    if field_name:
        return field_name, f"{field_name}: {err.get('msg', 'Invalid input.')}"
    return None, err.get('msg', 'Invalid input.')


def validate_request(form: Union[GenerationForm, Mapping[str, Any]]) -> GenerationRequest:
    """
    Check form input and freeze it into a GenerationRequest.

    Field constraints are checked before the image, so an empty form
    reports the prompt first.

    Raises:
        ValidationError: with the first failing field and its message
    """
    if not isinstance(form, GenerationForm):
        try:
            form = GenerationForm(**dict(form))
        except PydanticValidationError as e:
            field_name, message = _first_error(e)
            raise ValidationError(message, field=field_name) from e

    if not form.image:
        raise ValidationError(IMAGE_REQUIRED_MESSAGE, field='image')

    return GenerationRequest(
        source_image=form.image,
        prompt=form.prompt,
        image_name=form.image_name or "input.jpg",
        camera_move=form.camera_move,
        motion_intensity=form.motion_intensity,
        duration_seconds=float(form.duration_seconds),
        lighting=form.lighting,
        shot_type=form.shot_type,
        backend=form.backend,
        space_id=form.space_id or None,
        resize_inputs=form.resize_inputs,
        seed=form.seed,
    )


def build_queue_input(
    mapping: ResolvedFieldMapping,
    prompt: str,
    duration_seconds: float,
    image_uri: str,
    seed: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Assemble the remote input for a queued job.

    Raises:
        SchemaIncompleteError: the schema has no image field
    """
    if not mapping.image_field:
        raise SchemaIncompleteError(NO_IMAGE_FIELD_MESSAGE)

    payload: Dict[str, Any] = dict(mapping.extra_required_defaults)
    payload[mapping.prompt_field] = prompt
    if mapping.duration_field:
        whole = float(duration_seconds).is_integer()
        payload[mapping.duration_field] = int(duration_seconds) if whole else duration_seconds
    if mapping.seed_field and seed is not None:
        payload[mapping.seed_field] = seed
    payload[mapping.image_field] = image_uri
    return payload


class QueuedRemoteBackend:
    """
    Glue between a Replicate-style model and the job dispatcher.

    The model's input schema is fetched and resolved on every submission,
    so a model changing its field names needs no code change.
    """

    def __init__(self, client: ReplicateClient, config: Optional[ReplicateConfig] = None):
        self.client = client
        self.config = config or ReplicateConfig()
        self.dispatcher = JobDispatcher(client, poll_interval=self.config.poll_interval_seconds)

    async def fetch_model(self) -> Tuple[str, InputSchema]:
        """
        Latest version id and input schema of the configured model.

        Raises:
            SubmissionError: the model record carries no OpenAPI schema
        """
        model = await self.client.get_model(self.config.model_owner, self.config.model_name)
        latest = (model or {}).get('latest_version') or {}
        openapi = latest.get('openapi_schema')
        if not openapi or not latest.get('id'):
            raise SubmissionError(MISSING_SCHEMA_MESSAGE)
        return latest['id'], InputSchema.from_openapi(openapi)

    async def image_input(self, image: bytes, image_name: str) -> str:
        """Uploaded file URL for the source image, or a data URI when uploads are off"""
        if not self.config.upload_inputs:
            return to_data_uri(image, image_name)
        return await self.client.upload_file(image, image_name or "input.jpg", guess_mime_type(image_name))

    async def start(
        self,
        image: bytes,
        image_name: str,
        prompt: str,
        camera: Union[DirectorCamera, str],
        duration_seconds: float,
        style: Union[VisualStyle, str],
        motion_intensity: Union[MotionIntensity, str],
        seed: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Submit one job in director vocabulary.

        Returns:
            ``{id, status, created_at, model}``
        """
        version, schema = await self.fetch_model()
        mapping = resolve_input_fields(schema)

        director_prompt = build_director_prompt(prompt, camera, duration_seconds, style, motion_intensity)
        payload = build_queue_input(
            mapping, director_prompt, duration_seconds, await self.image_input(image, image_name), seed,
        )

        prediction = await self.dispatcher.submit_record(payload, version)
        return {
            "id": str(prediction['id']),
            "status": prediction.get('status', 'starting'),
            "created_at": prediction.get('created_at'),
            "model": self.config.model_id,
        }

    async def submit(self, request: GenerationRequest) -> str:
        """Submit a UI request, mapping camera and lighting to director vocabulary"""
        started = await self.start(
            image=request.source_image,
            image_name=request.image_name,
            prompt=request.prompt,
            camera=to_director_camera(request.camera_move),
            duration_seconds=request.duration_seconds,
            style=to_director_style(request.lighting),
            motion_intensity=request.motion_intensity,
            seed=request.seed,
        )
        return started['id']

    async def wait(self, job_id: str, token: Optional[CancellationToken] = None,
                   on_status: StatusCallback = None) -> str:
        return await self.dispatcher.wait_for_output(job_id, token, on_status)


class GenerationPlanner:
    """
    Entry point for one generation at a time.

    Usage:
        planner = GenerationPlanner()
        session = await planner.run_safely({"prompt": "...", "image": data})
        print(session.state, session.video_reference or session.error)

    Backends are built lazily from config; pass ``queue_client``,
    ``space_connector`` or ``local_renderer`` to substitute them.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        config_dir: Optional[Path] = None,
        output_dir: Optional[Path] = None,
        queue_client: Optional[ReplicateClient] = None,
        space_connector: Optional[SpaceConnector] = None,
        local_renderer: Optional["LocalRenderer"] = None,
    ):
        self.config = config if config is not None else load_defaults(config_dir)

        ui_cfg = section(self.config, 'ui')
        self.output_dir = Path(output_dir or ui_cfg.get('output_dir') or "outputs")

        self.replicate_config = ReplicateConfig.from_dict(section(self.config, 'queued_remote'))
        self.degradation_config = DegradationConfig.from_dict(section(self.config, 'introspected_remote'))

        self._queue_client = queue_client
        self._space_connector = space_connector
        self._local_renderer = local_renderer

        logger.info("GenerationPlanner initialized")

    @asynccontextmanager
    async def queued_backend(self) -> AsyncIterator[QueuedRemoteBackend]:
        """Queued backend bound to an open client; owned clients are closed on exit"""
        if self._queue_client is not None:
            yield QueuedRemoteBackend(self._queue_client, self.replicate_config)
            return
        async with ReplicateClient(self.replicate_config) as client:
            yield QueuedRemoteBackend(client, self.replicate_config)

    @property
    def space_connector(self) -> SpaceConnector:
        if self._space_connector is None:
            from ..runtime.space_client import GradioSpaceConnector
            self._space_connector = GradioSpaceConnector(work_dir=self.output_dir)
        return self._space_connector

    @property
    def local_renderer(self) -> "LocalRenderer":
        if self._local_renderer is None:
            from ..video.local_renderer import LocalRenderConfig, LocalRenderer
            self._local_renderer = LocalRenderer(
                LocalRenderConfig.from_dict(section(self.config, 'local'), self.output_dir)
            )
        return self._local_renderer

    async def run(
        self,
        request: GenerationRequest,
        token: Optional[CancellationToken] = None,
        on_status: StatusCallback = None,
        session: Optional[GenerationSession] = None,
    ) -> OutputArtifact:
        """
        Generate one video.

        Raises:
            Snap2MotionError: any component failure, unchanged
        """
        session = session if session is not None else GenerationSession()
        token = token or CancellationToken()

        def status(text: str):
            session.set_status(text)
            if on_status:
                on_status(text)

        logger.info(f"Generation request: {request.summary()}")

        if request.backend is Backend.LOCAL:
            session.begin(SessionState.RENDERING_LOCAL)
            status("Preparing local (free) render…")
            artifact = await self.local_renderer.render(
                request.source_image,
                request.duration_seconds,
                request.motion_intensity,
                request.camera_move,
                on_progress=lambda pct: status(f"Rendering locally… {round(pct)}%"),
                token=token,
            )
            session.succeed(artifact.reference, "Done ✅ (local render)")

        elif request.backend is Backend.QUEUED_REMOTE:
            session.begin(SessionState.DISPATCHING)
            status("Starting Replicate job...")
            async with self.queued_backend() as backend:
                job_id = await backend.submit(request)
                session.job_id = job_id
                session.move_to(SessionState.POLLING)
                status("Replicate: generating…")
                reference = await backend.wait(job_id, token, status)
            artifact = OutputArtifact(
                reference=reference,
                backend=Backend.QUEUED_REMOTE,
                metadata={"job_id": job_id, "model": self.replicate_config.model_id},
            )
            session.succeed(artifact.reference, "Done ✅")

        else:
            session.begin(SessionState.DISPATCHING)
            controller = DegradationController(self.space_connector, self.degradation_config)
            artifact = await controller.dispatch(request, token, status)
            session.succeed(artifact.reference, "Done ✅")

        session.metadata = dict(artifact.metadata)
        logger.info(f"Generation finished in {session.elapsed_seconds or 0:.1f}s: {artifact.reference}")
        return artifact

    async def run_safely(
        self,
        form: Union[GenerationRequest, GenerationForm, Mapping[str, Any]],
        token: Optional[CancellationToken] = None,
        on_status: StatusCallback = None,
        session: Optional[GenerationSession] = None,
    ) -> GenerationSession:
        """
        Validate and run, never raising: failures end in the FAILED state.

        Returns:
            The session, SUCCEEDED with a video reference or FAILED with an error
        """
        session = session if session is not None else GenerationSession()
        session.reset()

        try:
            request = form if isinstance(form, GenerationRequest) else validate_request(form)
            await self.run(request, token, on_status, session)
        except Snap2MotionError as e:
            logger.error(f"Generation failed: {e}")
            session.fail(str(e))
        except Exception as e:
            logger.exception("Unexpected error during generation")
            session.fail(str(e) or "Unknown error")

        return session
