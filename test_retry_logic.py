"""
Retry Logic — Unit Tests
========================
Error classification, attempt profiles, Space payload construction and
the candidate/profile degradation loop against in-memory Spaces.

Run:
    python -m pytest test_retry_logic.py -v --tb=short
"""

import sys
import os
import io
import asyncio
import logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest
from PIL import Image

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")

from snap2motion.agent.endpoint_scorer import EndpointParameter
from snap2motion.agent.errors import (
    AllCandidatesExhaustedError,
    GenerationCancelledError,
    PolledSuccessWithoutOutputError,
)
from snap2motion.agent.models import Backend, GenerationRequest
from snap2motion.agent.prompt_engine import CameraMove, MotionIntensity
from snap2motion.agent.retry_logic import (
    DEFAULT_PROFILES,
    NO_VIDEO_MESSAGE,
    UNRESIZED_MAX_DIMENSION,
    AttemptProfile,
    DegradationConfig,
    DegradationController,
    ErrorType,
    SpaceConnection,
    SpaceConnector,
    build_endpoint_payload,
    candidate_spaces,
    classify_error,
    extract_space_video,
    is_transient_overload,
    profiles_for,
)
from snap2motion.agent.session import CancellationToken


def make_jpeg(width=1600, height=900):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 120, 40)).save(buf, format="JPEG")
    return buf.getvalue()


I2V_API = {
    "named_endpoints": {
        "/generate": {"parameters": [
            {"parameter_name": "input_image", "component": "Image"},
            {"parameter_name": "prompt", "component": "Textbox"},
            {"parameter_name": "duration_seconds", "component": "Slider"},
            {"parameter_name": "steps", "component": "Slider"},
        ]},
    },
    "unnamed_endpoints": {},
}


class FakeConnection(SpaceConnection):
    """Pops one scripted outcome per predict call"""

    def __init__(self, outcomes, api=None):
        self.outcomes = outcomes
        self.api = api if api is not None else I2V_API
        self.calls = []
        self.files = []

    async def view_api(self):
        return self.api

    def file_input(self, data, name):
        self.files.append(data)
        return f"file://{name}"

    async def predict(self, payload, endpoint):
        self.calls.append((endpoint, payload))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeConnector(SpaceConnector):

    def __init__(self, spaces, unreachable=()):
        self.spaces = spaces
        self.unreachable = set(unreachable)
        self.connected = []

    async def connect(self, space_id):
        self.connected.append(space_id)
        if space_id in self.unreachable:
            raise ConnectionError(f"Could not fetch config for {space_id}")
        return self.spaces[space_id]


def make_request(**overrides):
    fields = dict(
        source_image=make_jpeg(),
        prompt="The lighthouse beam sweeps across the fog",
        duration_seconds=6.0,
        motion_intensity=MotionIntensity.MEDIUM,
        camera_move=CameraMove.PUSH_IN,
        space_id="primary/space",
    )
    fields.update(overrides)
    return GenerationRequest(**fields)


def make_config(spaces=("fallback/space",)):
    return DegradationConfig(default_space="default/space", spaces=list(spaces), retry_delay_seconds=0)


# ---------------------------------------------------------------------------
# 1. Classification and profiles
# ---------------------------------------------------------------------------

class TestClassification:

    @pytest.mark.parametrize("message", [
        "GPU task aborted",
        "ZeroGPU worker error",
        "You have exceeded your GPU quota",
        "Insufficient GPU time: requested 120s",
        "Request timed out",
        "Model is overloaded",
    ])
    def test_transient(self, message):
        assert is_transient_overload(message)
        assert classify_error(RuntimeError(message)) is ErrorType.TRANSIENT_OVERLOAD

    def test_not_transient(self):
        assert not is_transient_overload("Invalid image format")
        assert classify_error(ValueError("boom")) is ErrorType.UNKNOWN

    def test_no_output(self):
        assert classify_error(PolledSuccessWithoutOutputError(NO_VIDEO_MESSAGE)) is ErrorType.NO_OUTPUT


class TestProfiles:

    def test_default_ladder(self):
        assert [p.max_input_dimension for p in DEFAULT_PROFILES] == [768, 512, 384]
        assert [p.duration_cap for p in DEFAULT_PROFILES] == [None, 4, 2]

    def test_effective_duration(self):
        assert DEFAULT_PROFILES[0].effective_duration(6) == 6
        assert DEFAULT_PROFILES[1].effective_duration(6) == 4
        assert DEFAULT_PROFILES[2].effective_duration(3) == 2

    def test_steps_floor(self):
        assert AttemptProfile(384, 2, 0.75).steps_for(4) == 3
        assert AttemptProfile(384, 2, 0.1).steps_for(6) == 3
        assert AttemptProfile(768).steps_for(6) == 6

    def test_unresized_profiles(self):
        lifted = profiles_for(DEFAULT_PROFILES, resize_inputs=False)
        assert all(p.max_input_dimension == UNRESIZED_MAX_DIMENSION for p in lifted)
        assert [p.duration_cap for p in lifted] == [None, 4, 2]
        assert profiles_for(DEFAULT_PROFILES, resize_inputs=True) == list(DEFAULT_PROFILES)

    def test_config_from_dict(self):
        config = DegradationConfig.from_dict({
            "default_space": "a/b",
            "spaces": [{"id": "c/d", "label": "CD"}, "e/f", {"label": "no id"}],
            "retry_delay_seconds": 0.2,
            "attempt_profiles": [{"max_side": 640, "duration_cap": 3, "step_multiplier": 0.5}],
        })
        assert config.default_space == "a/b"
        assert config.spaces == ["c/d", "e/f"]
        assert config.retry_delay_seconds == 0.2
        assert config.profiles == (AttemptProfile(640, 3.0, 0.5),)

    def test_candidate_spaces(self):
        assert candidate_spaces("a/b", ["c/d", "a/b", "", "e/f"]) == ["a/b", "c/d", "e/f"]
        assert candidate_spaces(None, ["c/d"]) == ["c/d"]


# ---------------------------------------------------------------------------
# 2. Payload construction
# ---------------------------------------------------------------------------

class TestEndpointPayload:

    def test_fills_known_parameters(self):
        params = [
            EndpointParameter("image"),
            EndpointParameter("end_image"),
            EndpointParameter("prompt"),
            EndpointParameter("negative_prompt"),
            EndpointParameter("n_text", label="Negative text"),
            EndpointParameter("duration"),
            EndpointParameter("num_inference_steps"),
            EndpointParameter("guidance_scale"),
            EndpointParameter("seed"),
            EndpointParameter("randomize_seed"),
            EndpointParameter("fps", has_default=True, default=24),
            EndpointParameter("mystery"),
        ]
        calls = []

        def image_input():
            calls.append(1)
            return "IMG"

        request = make_request(motion_intensity=MotionIntensity.STRONG)
        payload = build_endpoint_payload(params, request, DEFAULT_PROFILES[1], image_input,
                                         negative_prompt="NEG", seed=7)

        assert calls == [1]
        assert payload["image"] == "IMG" and payload["end_image"] == "IMG"
        assert payload["prompt"].startswith("The lighthouse beam sweeps across the fog. strong, dynamic motion.")
        assert "Duration ~4s." in payload["prompt"]
        assert payload["negative_prompt"] == "NEG"
        assert payload["n_text"] == "NEG"
        assert payload["duration"] == 4
        assert payload["num_inference_steps"] == 5
        assert payload["guidance_scale"] == 1.5
        assert payload["seed"] == 7
        assert payload["randomize_seed"] is True
        assert payload["fps"] == 24
        assert "mystery" not in payload

    def test_image_not_built_when_unused(self):
        def image_input():
            raise AssertionError("image should not be prepared")

        payload = build_endpoint_payload([EndpointParameter("prompt")], make_request(),
                                         DEFAULT_PROFILES[0], image_input)
        assert list(payload) == ["prompt"]


class TestSpaceVideoExtraction:

    @pytest.fixture
    def video_file(self, tmp_path):
        path = tmp_path / "out.mp4"
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        return str(path)

    def test_url_string(self):
        assert extract_space_video("https://hf.space/file=a.mp4") == "https://hf.space/file=a.mp4"

    def test_existing_local_file(self, video_file):
        assert extract_space_video(video_file) == video_file
        assert extract_space_video({"video": video_file}) == video_file

    def test_missing_local_file_rejected(self, tmp_path):
        assert extract_space_video(str(tmp_path / "gone.mp4")) is None

    def test_status_text_is_not_a_video(self, video_file):
        assert extract_space_video("Generation complete") is None
        assert extract_space_video(("Generation complete", {"video": video_file})) == video_file

    def test_video_after_seed(self):
        assert extract_space_video((42, "https://hf/video.mp4")) == "https://hf/video.mp4"

    def test_nested_keys(self, video_file):
        assert extract_space_video({"video": {"url": "https://hf/v.mp4"}}) == "https://hf/v.mp4"
        assert extract_space_video([{"path": video_file, "url": None}]) == video_file
        assert extract_space_video({"data": ["https://hf/d.mp4"]}) == "https://hf/d.mp4"

    def test_file_object_attributes(self):
        class FileData:
            path = None
            url = "https://hf/obj.mp4"

        assert extract_space_video([FileData()]) == "https://hf/obj.mp4"

    def test_nothing_found(self):
        assert extract_space_video(None) is None
        assert extract_space_video([]) is None
        assert extract_space_video({"status": "done"}) is None
        assert extract_space_video((7, "queued", {"seed": 7})) is None


# ---------------------------------------------------------------------------
# 3. Degradation loop
# ---------------------------------------------------------------------------

class TestDegradationController:

    def test_first_attempt_succeeds(self):
        primary = FakeConnection([{"video": "https://hf.space/file=out.mp4"}])
        connector = FakeConnector({"primary/space": primary})
        controller = DegradationController(connector, make_config())

        artifact = asyncio.run(controller.dispatch(make_request()))

        assert artifact.reference == "https://hf.space/file=out.mp4"
        assert artifact.backend is Backend.INTROSPECTED_REMOTE
        assert not artifact.is_local
        assert artifact.metadata["space_id"] == "primary/space"
        assert artifact.metadata["endpoint"] == "/generate"
        assert artifact.metadata["profile_index"] == 0
        endpoint, payload = primary.calls[0]
        assert payload["duration_seconds"] == 6
        assert payload["steps"] == 5

    def test_transient_degrades_on_same_space(self):
        primary = FakeConnection([RuntimeError("GPU task aborted"), ["https://hf/out.mp4"]])
        connector = FakeConnector({"primary/space": primary})
        controller = DegradationController(connector, make_config())
        statuses = []

        artifact = asyncio.run(controller.dispatch(make_request(), on_status=statuses.append))

        assert artifact.reference == "https://hf/out.mp4"
        assert artifact.metadata["profile_index"] == 1
        assert connector.connected == ["primary/space", "primary/space"]
        assert "HF busy (attempt 1/3). Retrying with lighter settings…" in statuses
        assert primary.calls[1][1]["duration_seconds"] == 4
        assert primary.calls[1][1]["steps"] == 4

        first, second = [Image.open(io.BytesIO(b)) for b in primary.files]
        assert max(first.size) == 768
        assert max(second.size) == 512

        history = controller.attempt_history
        assert [a.success for a in history] == [False, True]
        assert history[0].error_type is ErrorType.TRANSIENT_OVERLOAD

    def test_other_error_moves_to_next_space(self):
        primary = FakeConnection([ValueError("Invalid input shape")])
        fallback = FakeConnection([{"video": {"path": "https://hf.space/file=fb.mp4"}}])
        connector = FakeConnector({"primary/space": primary, "fallback/space": fallback})
        controller = DegradationController(connector, make_config())

        artifact = asyncio.run(controller.dispatch(make_request()))

        assert artifact.reference == "https://hf.space/file=fb.mp4"
        assert artifact.metadata["space_id"] == "fallback/space"
        assert artifact.metadata["profile_index"] == 0
        assert len(primary.calls) == 1

    def test_status_text_before_video_is_skipped(self, tmp_path):
        video = tmp_path / "real.mp4"
        video.write_bytes(b"mp4")
        primary = FakeConnection([("Generation complete", {"video": str(video)})])
        controller = DegradationController(FakeConnector({"primary/space": primary}), make_config())

        artifact = asyncio.run(controller.dispatch(make_request()))

        assert artifact.reference == str(video)
        assert artifact.metadata["space_id"] == "primary/space"

    def test_seed_before_video_succeeds(self):
        primary = FakeConnection([(42, "https://hf/video.mp4")])
        controller = DegradationController(FakeConnector({"primary/space": primary}), make_config())

        artifact = asyncio.run(controller.dispatch(make_request()))

        assert artifact.reference == "https://hf/video.mp4"
        assert [a.success for a in controller.attempt_history] == [True]

    def test_missing_output_moves_to_next_space(self):
        primary = FakeConnection([{"status": "done"}])
        fallback = FakeConnection(["https://hf.space/file=fb.mp4"])
        connector = FakeConnector({"primary/space": primary, "fallback/space": fallback})
        controller = DegradationController(connector, make_config())

        artifact = asyncio.run(controller.dispatch(make_request()))

        assert artifact.metadata["space_id"] == "fallback/space"
        assert controller.attempt_history[0].error_type is ErrorType.NO_OUTPUT
        assert controller.attempt_history[0].error_message == NO_VIDEO_MESSAGE

    def test_unreachable_space_is_skipped(self):
        fallback = FakeConnection(["https://hf.space/file=fb.mp4"])
        connector = FakeConnector({"fallback/space": fallback}, unreachable={"primary/space"})
        controller = DegradationController(connector, make_config())

        artifact = asyncio.run(controller.dispatch(make_request()))

        assert artifact.metadata["space_id"] == "fallback/space"
        assert connector.connected == ["primary/space", "fallback/space"]
        assert controller.attempt_history[0].error_type is ErrorType.CONNECTION

    def test_default_space_when_none_requested(self):
        default = FakeConnection(["https://hf.space/file=d.mp4"])
        connector = FakeConnector({"default/space": default})
        controller = DegradationController(connector, make_config(spaces=()))

        artifact = asyncio.run(controller.dispatch(make_request(space_id=None)))
        assert artifact.metadata["space_id"] == "default/space"

    def test_all_exhausted(self):
        busy = RuntimeError("ZeroGPU worker error")
        primary = FakeConnection([busy, busy, busy])
        fallback = FakeConnection([RuntimeError("GPU task aborted")] * 3)
        connector = FakeConnector({"primary/space": primary, "fallback/space": fallback})
        controller = DegradationController(connector, make_config())

        with pytest.raises(AllCandidatesExhaustedError) as exc_info:
            asyncio.run(controller.dispatch(make_request()))

        message = str(exc_info.value)
        assert message.startswith("Hugging Face ZeroGPU is busy")
        assert message.endswith("Details: GPU task aborted")
        assert exc_info.value.last_error == "GPU task aborted"
        assert len(controller.attempt_history) == 6

    def test_second_candidate_second_profile(self):
        primary = FakeConnection([RuntimeError("GPU task aborted")] * 3)
        fallback = FakeConnection([RuntimeError("Insufficient GPU time"), "https://hf/fb-profile2.mp4", "unused"])
        connector = FakeConnector({"primary/space": primary, "fallback/space": fallback})
        controller = DegradationController(connector, make_config())

        artifact = asyncio.run(controller.dispatch(make_request()))

        assert artifact.reference == "https://hf/fb-profile2.mp4"
        assert artifact.metadata["space_id"] == "fallback/space"
        assert artifact.metadata["profile_index"] == 1
        assert len(primary.calls) == 3
        assert len(fallback.calls) == 2
        assert fallback.outcomes == ["unused"]
        assert [a.success for a in controller.attempt_history].count(True) == 1

    def test_non_transient_errors_try_each_candidate_once(self):
        primary = FakeConnection([ValueError("bad input")] * 3)
        fallback = FakeConnection([ValueError("bad input")] * 3)
        connector = FakeConnector({"primary/space": primary, "fallback/space": fallback})
        controller = DegradationController(connector, make_config())

        with pytest.raises(AllCandidatesExhaustedError):
            asyncio.run(controller.dispatch(make_request()))

        assert len(primary.calls) == 1
        assert len(fallback.calls) == 1
        assert len(controller.attempt_history) == 2

    def test_no_resize_keeps_full_image(self):
        primary = FakeConnection(["https://hf.space/file=out.mp4"])
        connector = FakeConnector({"primary/space": primary})
        controller = DegradationController(connector, make_config())

        asyncio.run(controller.dispatch(make_request(resize_inputs=False)))

        sent = Image.open(io.BytesIO(primary.files[0]))
        assert sent.size == (1600, 900)

    def test_source_image_untouched(self):
        request = make_request()
        original = request.source_image
        primary = FakeConnection(["https://hf.space/file=out.mp4"])
        controller = DegradationController(FakeConnector({"primary/space": primary}), make_config())

        asyncio.run(controller.dispatch(request))
        assert request.source_image is original
        assert primary.files[0] != original

    def test_cancelled_before_first_attempt(self):
        token = CancellationToken()
        token.cancel()
        connector = FakeConnector({"primary/space": FakeConnection([])})
        controller = DegradationController(connector, make_config())

        with pytest.raises(GenerationCancelledError):
            asyncio.run(controller.dispatch(make_request(), token))
        assert connector.connected == []

    def test_cancelled_between_attempts(self):
        token = CancellationToken()
        primary = FakeConnection([RuntimeError("GPU task aborted"), "https://hf.space/file=never.mp4"])
        connector = FakeConnector({"primary/space": primary})
        controller = DegradationController(connector, make_config())

        def on_status(text):
            if text.startswith("HF busy"):
                token.cancel()

        with pytest.raises(GenerationCancelledError):
            asyncio.run(controller.dispatch(make_request(), token, on_status))
        assert len(primary.calls) == 1


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v", "--tb=short"]))
