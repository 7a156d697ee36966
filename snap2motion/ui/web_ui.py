"""
Snap2Motion - Web UI

Gradio interface for turning a photo into a short video.

Features:
  - Provider selection: free Hugging Face Spaces, Replicate, or the
    always-available local renderer
  - Space picker with optional input resizing
  - Motion intensity, duration, camera move, shot type and lighting
  - Generate / Cancel, live status and a log panel
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import gradio as gr

from ..agent.models import Backend
from ..agent.planner import GenerationPlanner
from ..agent.prompt_engine import CameraMove, Lighting, MotionIntensity, ShotType
from ..agent.session import CancellationToken, GenerationSession, SessionState
from ..config import load_defaults, section
from .log_handler import UILogHandler

logger = logging.getLogger(__name__)

PROVIDER_CHOICES: List[Tuple[str, str]] = [
    ("Hugging Face Spaces (free, may queue)", Backend.INTROSPECTED_REMOTE.value),
    ("Replicate (API token required)", Backend.QUEUED_REMOTE.value),
    ("Local Free (always works)", Backend.LOCAL.value),
]

CAMERA_CHOICES: List[Tuple[str, str]] = [
    ("Static", CameraMove.NONE.value),
    ("Push in", CameraMove.PUSH_IN.value),
    ("Pull out", CameraMove.PULL_OUT.value),
    ("Pan left", CameraMove.PAN_LEFT.value),
    ("Pan right", CameraMove.PAN_RIGHT.value),
    ("Tilt up", CameraMove.TILT_UP.value),
    ("Tilt down", CameraMove.TILT_DOWN.value),
    ("Orbit left", CameraMove.ORBIT_LEFT.value),
    ("Orbit right", CameraMove.ORBIT_RIGHT.value),
]

CUSTOM_CSS = """
.app-header { text-align: center; padding: 12px 0 4px; }
.app-header h1 { margin-bottom: 2px; }
.app-header p { color: #64748b; margin-top: 0; }
.error-text { color: #dc2626; white-space: pre-wrap; }
.log-console textarea { font-family: 'JetBrains Mono', Consolas, monospace !important; font-size: 12px !important; }
"""


def _choices(enum_cls) -> List[Tuple[str, str]]:
    return [(member.value.replace("_", " ").title(), member.value) for member in enum_cls]


class WebUI:
    """Web UI for Snap2Motion generation."""

    def __init__(
        self,
        config_dir: Optional[str] = None,
        output_dir: Optional[str] = None,
        share: bool = False,
        port: int = 7860,
        planner: Optional[GenerationPlanner] = None,
    ):
        self.config = load_defaults(config_dir)
        ui_cfg = section(self.config, 'ui')

        self.output_dir = Path(output_dir or ui_cfg.get('output_dir') or "./outputs")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.share = share
        self.port = port

        self.log_handler = UILogHandler(max_entries=500).attach()

        self.planner = planner or GenerationPlanner(config=self.config, output_dir=self.output_dir)
        self.session = GenerationSession()
        self._token: Optional[CancellationToken] = None

        remote_cfg = section(self.config, 'introspected_remote')
        self.space_choices = [
            (entry.get('label') or entry['id'], entry['id'])
            for entry in remote_cfg.get('spaces') or [] if isinstance(entry, dict) and entry.get('id')
        ]
        self.default_space = remote_cfg.get('default_space')
        self.default_resize = bool(remote_cfg.get('resize_inputs', True))

    # ── handlers ───────────────────────────────────────────────────

    @staticmethod
    def _read_image(path: Optional[str]) -> Tuple[Optional[bytes], str]:
        if not path:
            return None, "input.jpg"
        p = Path(path)
        return p.read_bytes(), p.name

    def _format_status(self) -> str:
        if self.session.state is SessionState.FAILED:
            return ""
        return self.session.status or "*Ready. Upload an image, describe the motion and click Generate.*"

    def _format_error(self) -> str:
        return self.session.error or ""

    async def _generate(
        self,
        provider: str,
        space_id: str,
        resize_inputs: bool,
        image_path: Optional[str],
        prompt: str,
        motion_intensity: str,
        duration: float,
        camera_move: str,
        shot_type: str,
        lighting: str,
    ) -> AsyncIterator[Tuple[Optional[str], str, str, str]]:
        """Yield (video, status, error, logs) as the generation progresses."""
        if self.session.is_running:
            yield None, "⚠️ Generation already in progress.", "", self._get_logs()
            return

        image, image_name = self._read_image(image_path)
        form: Dict[str, Any] = {
            "backend": provider,
            "space_id": space_id or self.default_space,
            "resize_inputs": resize_inputs,
            "image": image,
            "image_name": image_name,
            "prompt": prompt or "",
            "motion_intensity": motion_intensity,
            "duration_seconds": duration,
            "camera_move": camera_move,
            "shot_type": shot_type,
            "lighting": lighting,
        }

        updates: "asyncio.Queue[str]" = asyncio.Queue()
        self._token = CancellationToken()
        task = asyncio.ensure_future(self.planner.run_safely(
            form, self._token, on_status=updates.put_nowait, session=self.session,
        ))
        try:
            while True:
                if not updates.empty():
                    yield None, updates.get_nowait(), "", self._get_logs()
                    continue
                if task.done():
                    break
                getter = asyncio.ensure_future(updates.get())
                await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter.done():
                    yield None, getter.result(), "", self._get_logs()
                else:
                    getter.cancel()
            await task
        finally:
            if not task.done():
                self._token.cancel()
                task.cancel()
            self._token = None

        yield (
            self.session.video_reference,
            self._format_status(),
            self._format_error(),
            self._get_logs(),
        )

    def _cancel(self) -> str:
        if self._token is not None and self.session.is_running:
            self._token.cancel()
            logger.warning("Cancel requested")
            return "⚠️ Cancellation requested…"
        return "Nothing to cancel."

    def _get_logs(self, max_lines: int = 200) -> str:
        return self.log_handler.get_logs_text(count=max_lines)

    def _clear_logs(self) -> str:
        self.log_handler.clear()
        return ""

    @staticmethod
    def _on_provider_change(provider: str):
        """Space settings only apply to the Hugging Face provider"""
        visible = provider == Backend.INTROSPECTED_REMOTE.value
        return gr.update(visible=visible), gr.update(visible=visible)

    # ── build interface ────────────────────────────────────────────

    def create_interface(self) -> "gr.Blocks":
        theme = gr.themes.Base(
            primary_hue=gr.themes.colors.indigo,
            neutral_hue=gr.themes.colors.slate,
        )

        with gr.Blocks(title="Snap2Motion", theme=theme, css=CUSTOM_CSS) as app:
            gr.HTML("""
            <div class="app-header">
                <h1>🎬 Snap2Motion</h1>
                <p>Image → short video &nbsp;·&nbsp; Hugging Face · Replicate · Local</p>
            </div>
            """)

            with gr.Row(equal_height=False):
                # ── LEFT: Inputs ─────────────────────────────
                with gr.Column(scale=1, min_width=380):
                    provider = gr.Dropdown(
                        label="Provider",
                        choices=PROVIDER_CHOICES,
                        value=Backend.INTROSPECTED_REMOTE.value,
                    )
                    space = gr.Dropdown(
                        label="Hugging Face Space",
                        choices=self.space_choices,
                        value=self.default_space,
                        allow_custom_value=True,
                    )
                    resize = gr.Checkbox(
                        label="Resize image before upload (faster, fewer GPU aborts)",
                        value=self.default_resize,
                    )

                    image = gr.Image(label="Image", type="filepath", height=280)
                    prompt = gr.Textbox(
                        label="Prompt",
                        placeholder="What should happen in the video?",
                        lines=3,
                        max_lines=6,
                    )

                    with gr.Row():
                        motion = gr.Radio(
                            label="Motion intensity",
                            choices=_choices(MotionIntensity),
                            value=MotionIntensity.SUBTLE.value,
                        )
                        duration = gr.Slider(
                            label="Duration (seconds)",
                            minimum=2, maximum=6, step=1, value=4,
                        )

                    with gr.Row():
                        camera = gr.Dropdown(
                            label="Camera move",
                            choices=CAMERA_CHOICES,
                            value=CameraMove.PUSH_IN.value,
                        )
                        shot = gr.Dropdown(
                            label="Shot type",
                            choices=_choices(ShotType),
                            value=ShotType.MEDIUM.value,
                        )
                        lighting = gr.Dropdown(
                            label="Lighting",
                            choices=_choices(Lighting),
                            value=Lighting.CINEMATIC.value,
                        )

                    with gr.Row():
                        generate_btn = gr.Button("🎬 Generate", variant="primary")
                        cancel_btn = gr.Button("⏹ Cancel", variant="stop")

                # ── RIGHT: Output ────────────────────────────
                with gr.Column(scale=1, min_width=420):
                    video_output = gr.Video(label="Result", interactive=False, height=400)
                    status_output = gr.Markdown(value=self._format_status())
                    error_output = gr.Markdown(value="", elem_classes=["error-text"])

            with gr.Accordion("📋 Logs", open=False):
                with gr.Row():
                    refresh_logs = gr.Button("🔄 Refresh", size="sm")
                    clear_logs = gr.Button("🗑️ Clear", size="sm")
                logs_output = gr.Textbox(
                    label="Agent log",
                    lines=16, max_lines=40,
                    interactive=False,
                    elem_classes=["log-console"],
                )

            # ── Event wiring ─────────────────────────────────
            provider.change(
                fn=self._on_provider_change,
                inputs=[provider],
                outputs=[space, resize],
            )
            generate_btn.click(
                fn=self._generate,
                inputs=[provider, space, resize, image, prompt, motion, duration, camera, shot, lighting],
                outputs=[video_output, status_output, error_output, logs_output],
            )
            cancel_btn.click(fn=self._cancel, outputs=[status_output])
            refresh_logs.click(fn=self._get_logs, outputs=[logs_output])
            clear_logs.click(fn=self._clear_logs, outputs=[logs_output])

        return app

    # ── launch ────────────────────────────────────────────────────

    def launch(self):
        app = self.create_interface()
        logger.info(f"Launching Snap2Motion on port {self.port}")
        logger.info(f"Output directory: {self.output_dir}")
        app.queue()
        app.launch(
            server_name="0.0.0.0",
            server_port=self.port,
            share=self.share,
            show_error=True,
        )


# ─── Public launcher ─────────────────────────────────────────────────────────

def launch_ui(
    config_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    share: bool = False,
    port: int = 7860,
):
    """Launch the Snap2Motion web interface."""
    ui = WebUI(
        config_dir=config_dir,
        output_dir=output_dir,
        share=share,
        port=port,
    )
    ui.launch()


if __name__ == "__main__":
    launch_ui()
