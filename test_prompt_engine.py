"""
Prompt Engine — Unit Tests
==========================
Director (bracket-tagged) and plain-English prompt construction, plus the
UI -> director vocabulary mapping.

Run:
    python -m pytest test_prompt_engine.py -v --tb=short
"""

import sys
import os
import logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")

from snap2motion.agent.prompt_engine import (
    CameraMove,
    DirectorCamera,
    Lighting,
    MotionIntensity,
    VisualStyle,
    build_director_prompt,
    build_space_prompt,
    camera_bracket,
    clamp_duration,
    to_director_camera,
    to_director_style,
)


# ---------------------------------------------------------------------------
# 1. Director prompts
# ---------------------------------------------------------------------------

class TestDirectorPrompt:

    def test_full_prompt(self):
        text = build_director_prompt("A cat yawns", "push_in", 4, "cinematic", "subtle")
        assert text == (
            "[Push in] A cat yawns. cinematic lighting, film look, shallow depth of field. "
            "subtle motion. 4-second shot."
        )

    def test_bracket_comes_first(self):
        text = build_director_prompt("Waves", DirectorCamera.TRACKING, 6, VisualStyle.RETRO, MotionIntensity.STRONG)
        assert text.startswith("[Tracking shot] Waves.")
        assert "dynamic motion" in text
        assert "film grain" in text

    def test_duration_rounds_half_up(self):
        assert build_director_prompt("x", "static", 4.5, "anime", "medium").endswith("5-second shot.")
        assert build_director_prompt("x", "static", 4.4, "anime", "medium").endswith("4-second shot.")

    def test_duration_is_clamped(self):
        assert build_director_prompt("x", "static", 10, "dreamy", "medium").endswith("6-second shot.")
        assert build_director_prompt("x", "static", 0.2, "dreamy", "medium").endswith("2-second shot.")

    @pytest.mark.parametrize("camera,label", [
        ("static", "[Static shot]"),
        ("pedestal_down", "[Pedestal down]"),
        ("zoom_out", "[Zoom out]"),
        ("shake", "[Shake]"),
    ])
    def test_camera_bracket(self, camera, label):
        assert camera_bracket(camera) == label

    def test_every_director_camera_has_unique_bracket(self):
        brackets = [camera_bracket(camera) for camera in DirectorCamera]
        assert len(brackets) == 15
        assert len(set(brackets)) == 15
        assert all(len(b) > 2 for b in brackets)

    @pytest.mark.parametrize("seconds,expected", [(1, "2-second"), (10, "6-second")])
    def test_clamp_edges(self, seconds, expected):
        assert expected in build_director_prompt("x", "static", seconds, "cinematic", "subtle")
        assert f"Duration ~{expected[0]}s." in build_space_prompt("x", "subtle", seconds, "none")

    def test_user_prompt_kept_verbatim(self):
        text = "A   weird [prompt] with... punctuation!"
        for camera in DirectorCamera:
            assert text in build_director_prompt(text, camera, 4, "realistic", "medium")
        for move in CameraMove:
            assert text in build_space_prompt(text, "medium", 4, move)

    def test_unknown_camera_rejected(self):
        with pytest.raises(ValueError):
            camera_bracket("barrel_roll")


# ---------------------------------------------------------------------------
# 2. Space prompts
# ---------------------------------------------------------------------------

class TestSpacePrompt:

    def test_full_prompt(self):
        text = build_space_prompt("A dog runs on the beach", "medium", 4, "pan_left")
        assert text == (
            "A dog runs on the beach. moderate, natural motion. Camera: slow pan left. "
            "Duration ~4s. Smooth, cinematic animation."
        )

    def test_fractional_duration_kept(self):
        assert "Duration ~3.5s." in build_space_prompt("x", "subtle", 3.5, "none")

    def test_static_camera(self):
        assert "Camera: static camera." in build_space_prompt("x", "strong", 2, CameraMove.NONE)


# ---------------------------------------------------------------------------
# 3. Vocabulary mapping
# ---------------------------------------------------------------------------

class TestVocabularyMapping:

    def test_camera_moves_map_to_director(self):
        assert to_director_camera(CameraMove.NONE) is DirectorCamera.STATIC
        assert to_director_camera("push_in") is DirectorCamera.PUSH_IN
        assert to_director_camera("tilt_down") is DirectorCamera.TILT_DOWN

    def test_orbit_becomes_tracking(self):
        assert to_director_camera("orbit_left") is DirectorCamera.TRACKING
        assert to_director_camera("orbit_right") is DirectorCamera.TRACKING

    def test_every_ui_move_has_a_director_move(self):
        for move in CameraMove:
            assert isinstance(to_director_camera(move), DirectorCamera)

    def test_lighting_to_style(self):
        assert to_director_style(Lighting.NATURAL) is VisualStyle.REALISTIC
        assert to_director_style("cinematic") is VisualStyle.CINEMATIC
        assert to_director_style("soft") is VisualStyle.DREAMY
        assert to_director_style("neon") is VisualStyle.RETRO

    def test_clamp_duration(self):
        assert clamp_duration(1) == 2
        assert clamp_duration(4.5) == 4.5
        assert clamp_duration(9) == 6


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v", "--tb=short"]))
