"""
Snap2Motion HTTP API

REST endpoints for the queued (Replicate) backend, so a browser or
script can start a job and poll it without holding a connection open.

Endpoints:
  POST /api/predict        multipart form, starts a job
  GET  /api/predict/{id}   job status snapshot
  GET  /health             liveness
"""

import time
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..agent.errors import SchemaIncompleteError, Snap2MotionError
from ..agent.planner import GenerationPlanner
from ..agent.prompt_engine import DirectorCamera, MotionIntensity, VisualStyle

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


# =============================================================================
# Request Models
# =============================================================================

class PredictForm(BaseModel):
    """Form fields of POST /api/predict"""
    prompt: str = Field(..., description="What should happen in the video")
    camera: DirectorCamera = Field(DirectorCamera.STATIC, description="Director camera move")
    durationSec: float = Field(6, ge=2, le=6, description="Clip length in seconds")
    style: VisualStyle = Field(VisualStyle.CINEMATIC, description="Visual style preset")
    motionIntensity: MotionIntensity = Field(MotionIntensity.MEDIUM)
    seed: Optional[int] = Field(None, description="Seed, if the model accepts one")

    @field_validator('prompt')
    @classmethod
    def check_prompt(cls, value: str) -> str:
        if len(value) < 3:
            raise ValueError("Please describe what should happen in the video.")
        return value

    @field_validator('seed', mode='before')
    @classmethod
    def parse_seed(cls, value: Any) -> Optional[int]:
        """Seeds arrive as form text; anything non-numeric is ignored"""
        if value is None or value == "":
            return None
        try:
            return int(str(value).strip())
        except ValueError:
            return None


def _error(message: Any, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _validation_message(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    ctx_error = (err.get('ctx') or {}).get('error')
    if err.get('type') == 'value_error' and ctx_error is not None:
        return str(ctx_error)
    loc = ".".join(str(part) for part in err.get('loc') or ())
    return f"{loc}: {err.get('msg')}" if loc else str(err.get('msg'))


# =============================================================================
# App Factory
# =============================================================================

def create_app(planner: Optional[GenerationPlanner] = None) -> FastAPI:
    """
    Build the API app.

    Args:
        planner: Planner providing the queued backend (built from the
            default config if None)
    """
    app = FastAPI(
        title="Snap2Motion API",
        description="Start and poll image-to-video jobs",
        version=API_VERSION,
    )
    app.state.planner = planner or GenerationPlanner()
    app.state.start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["General"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "uptime_seconds": time.time() - app.state.start_time,
        }

    @app.post("/api/predict", tags=["Predictions"])
    async def create_prediction(
        request: Request,
        image: Optional[UploadFile] = File(None),
        prompt: str = Form(""),
        camera: str = Form("static"),
        durationSec: str = Form("6"),
        style: str = Form("cinematic"),
        motionIntensity: str = Form("medium"),
        seed: Optional[str] = Form(None),
    ):
        """Start a queued job from an uploaded image"""
        if image is None:
            return _error("Missing image file.", 400)

        try:
            form = PredictForm(
                prompt=prompt,
                camera=camera,
                durationSec=durationSec,
                style=style,
                motionIntensity=motionIntensity,
                seed=seed,
            )
        except PydanticValidationError as e:
            return _error(_validation_message(e), 400)

        image_bytes = await image.read()
        if not image_bytes:
            return _error("Missing image file.", 400)

        planner: GenerationPlanner = request.app.state.planner
        try:
            async with planner.queued_backend() as backend:
                started = await backend.start(
                    image=image_bytes,
                    image_name=image.filename or "input.jpg",
                    prompt=form.prompt,
                    camera=form.camera,
                    duration_seconds=form.durationSec,
                    style=form.style,
                    motion_intensity=form.motionIntensity,
                    seed=form.seed,
                )
        except SchemaIncompleteError as e:
            return _error(str(e), 400)
        except Snap2MotionError as e:
            logger.error(f"Prediction start failed: {e}")
            return _error(str(e), 500)
        except Exception as e:
            logger.exception("Unexpected error starting prediction")
            return _error(str(e) or "Unknown error", 500)

        return started

    @app.get("/api/predict/{prediction_id}", tags=["Predictions"])
    async def get_prediction(prediction_id: str, request: Request):
        """Current status, last log line and output of a job"""
        planner: GenerationPlanner = request.app.state.planner
        try:
            async with planner.queued_backend() as backend:
                snapshot = await backend.dispatcher.poll(prediction_id)
        except Snap2MotionError as e:
            logger.error(f"Polling {prediction_id} failed: {e}")
            return _error(str(e), 500)
        except Exception as e:
            logger.exception("Unexpected error polling prediction")
            return _error(str(e) or "Unknown error", 500)

        return snapshot.to_dict()

    return app


# =============================================================================
# Server Entry Point
# =============================================================================

def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the API server"""
    import uvicorn
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    run_server()
