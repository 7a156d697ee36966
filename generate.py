#!/usr/bin/env python3
"""
Snap2Motion - Command Line Interface

Turn one image and a prompt into a short video.

Usage:
    python generate.py --image photo.jpg --prompt "Your description here"
    python generate.py --image photo.jpg --prompt "..." --backend local
    python generate.py --print-schema

Examples:
    python generate.py --image cat.jpg --prompt "The cat slowly turns its head" --camera push_in
    python generate.py --image city.png --prompt "Traffic flows" --backend queued_remote --seed 7
    python generate.py --image beach.jpg --prompt "Waves roll in" --space ginigen/framepack-i2v --no-resize
"""

import sys
import json
import time
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from snap2motion.agent.errors import Snap2MotionError
from snap2motion.agent.models import Backend
from snap2motion.agent.planner import GenerationPlanner
from snap2motion.agent.prompt_engine import CameraMove, Lighting, MotionIntensity, ShotType
from snap2motion.agent.session import SessionState


def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Configure logging"""
    level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler()]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers
    )


def print_banner():
    """Print application banner"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                        SNAP2MOTION                             ║
║              Image → short video, three backends               ║
╚═══════════════════════════════════════════════════════════════╝
"""
    print(banner)


async def print_schema(planner: GenerationPlanner) -> int:
    """Print the queued model's id, latest version and input schema"""
    async with planner.queued_backend() as backend:
        model = await backend.client.get_model(
            planner.replicate_config.model_owner, planner.replicate_config.model_name,
        )

    latest = (model or {}).get('latest_version') or {}
    openapi = latest.get('openapi_schema') or {}
    print(json.dumps({
        "model": planner.replicate_config.model_id,
        "version": latest.get('id'),
        "input_schema": ((openapi.get('components') or {}).get('schemas') or {}).get('Input'),
    }, indent=2))
    return 0


async def run_generation(args, planner: GenerationPlanner) -> int:
    """Run one generation and report the outcome"""
    image_path = Path(args.image)
    if not image_path.exists():
        print(f"Error: image not found: {image_path}")
        return 1

    form = {
        "image": image_path.read_bytes(),
        "image_name": image_path.name,
        "prompt": args.prompt or "",
        "backend": args.backend,
        "space_id": args.space,
        "resize_inputs": not args.no_resize,
        "camera_move": args.camera,
        "motion_intensity": args.intensity,
        "duration_seconds": args.duration,
        "lighting": args.lighting,
        "shot_type": args.shot,
        "seed": args.seed,
    }

    print(f"\n🎬 Generating Video")
    print(f"   Image: {image_path}")
    print(f"   Prompt: {args.prompt}")
    print(f"   Backend: {args.backend}")
    print(f"   Camera: {args.camera}   Motion: {args.intensity}   Duration: {args.duration}s")
    print()

    def on_status(text: str):
        print(f"\r   {text:<70}", end="", flush=True)

    start_time = time.time()
    session = await planner.run_safely(form, on_status=on_status)
    elapsed = time.time() - start_time
    print()

    if session.state is SessionState.SUCCEEDED:
        print(f"\n✅ Generation Complete!")
        print(f"   Output: {session.video_reference}")
        print(f"   Time: {elapsed:.1f}s")
        if args.save_metadata and session.metadata:
            print(f"   Metadata: {json.dumps(session.metadata, default=str)}")
        return 0

    print(f"\n❌ Generation Failed!")
    print(f"   Error: {session.error}")
    return 1


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Snap2Motion - Turn an image into a short video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python generate.py --image photo.jpg --prompt "Leaves drift in the wind"
  python generate.py --image photo.jpg --prompt "..." --backend local --duration 3
  python generate.py --print-schema
        """
    )

    parser.add_argument('--image', '-i', type=str, help='Input image file')
    parser.add_argument('--prompt', '-p', type=str, help='What should happen in the video')
    parser.add_argument(
        '--backend', '-b',
        choices=[b.value for b in Backend],
        default=Backend.INTROSPECTED_REMOTE.value,
        help='Where to generate (default: introspected_remote)'
    )
    parser.add_argument('--space', type=str, default=None,
                        help='Primary Hugging Face Space (owner/name)')
    parser.add_argument('--no-resize', action='store_true',
                        help='Send the image to the Space at full size')
    parser.add_argument('--camera', choices=[c.value for c in CameraMove],
                        default=CameraMove.PUSH_IN.value, help='Camera move')
    parser.add_argument('--intensity', choices=[m.value for m in MotionIntensity],
                        default=MotionIntensity.SUBTLE.value, help='Motion intensity')
    parser.add_argument('--duration', '-s', type=float, default=4.0,
                        help='Duration in seconds, 2 to 6 (default: 4)')
    parser.add_argument('--lighting', choices=[l.value for l in Lighting],
                        default=Lighting.CINEMATIC.value, help='Lighting')
    parser.add_argument('--shot', choices=[s.value for s in ShotType],
                        default=ShotType.MEDIUM.value, help='Shot type')
    parser.add_argument('--seed', type=int, default=None, help='Seed (queued backend only)')
    parser.add_argument('--output-dir', '-o', type=str, default=None,
                        help='Directory for local renders')
    parser.add_argument('--config-dir', '-c', type=str, default=None,
                        help='Path to config directory')
    parser.add_argument('--print-schema', action='store_true',
                        help="Print the queued model's input schema and exit")
    parser.add_argument('--save-metadata', action='store_true',
                        help='Print generation metadata')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    parser.add_argument('--log-file', type=str, default=None, help='Also log to this file')

    args = parser.parse_args()
    setup_logging(args.verbose, args.log_file)

    planner = GenerationPlanner(config_dir=args.config_dir, output_dir=args.output_dir)

    if args.print_schema:
        try:
            return asyncio.run(print_schema(planner))
        except Snap2MotionError as e:
            print(f"Error: {e}")
            return 1

    print_banner()

    if not args.image:
        print("Error: --image is required")
        return 1

    return asyncio.run(run_generation(args, planner))


if __name__ == "__main__":
    sys.exit(main())
