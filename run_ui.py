#!/usr/bin/env python3
"""
Snap2Motion UI Launcher

Launch the web interface, or the HTTP API for the queued backend.

Usage:
    python run_ui.py
    python run_ui.py --port 8080
    python run_ui.py --share
    python run_ui.py --api --port 8000
"""

import argparse
import sys
import os
import logging

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def main():
    parser = argparse.ArgumentParser(
        description="Snap2Motion - Web UI Launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_ui.py                    # Launch on default port 7860
    python run_ui.py --port 8080        # Launch on port 8080
    python run_ui.py --share            # Create public link
    python run_ui.py --api              # Serve the HTTP API instead of the UI
    python run_ui.py --debug            # Enable debug logging
        """
    )

    parser.add_argument(
        '--port', '-p',
        type=int,
        default=None,
        help='Port to listen on (default: 7860 for the UI, 8000 for the API)'
    )

    parser.add_argument(
        '--share', '-s',
        action='store_true',
        help='Create a public shareable link'
    )

    parser.add_argument(
        '--api',
        action='store_true',
        help='Serve the REST API (POST /api/predict) instead of the web UI'
    )

    parser.add_argument(
        '--output-dir', '-o',
        type=str,
        default='./outputs',
        help='Directory to save local renders (default: ./outputs)'
    )

    parser.add_argument(
        '--config-dir', '-c',
        type=str,
        default=None,
        help='Path to config directory'
    )

    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # ASCII-only banner, safe on Windows consoles
    print("")
    print("  ====================================================")
    print("    Snap2Motion - Image to Short Video")
    print("    Hugging Face Spaces / Replicate / Local")
    print("  ====================================================")
    print("")

    try:
        if args.api:
            from snap2motion.agent.planner import GenerationPlanner
            from snap2motion.api.server import create_app
            import uvicorn

            port = args.port or 8000
            print(f"Starting API on port {port}...")
            planner = GenerationPlanner(config_dir=args.config_dir, output_dir=args.output_dir)
            uvicorn.run(create_app(planner), host="0.0.0.0", port=port)
            return

        from snap2motion.ui import launch_ui

        port = args.port or 7860
        print(f"Starting web UI on port {port}...")
        print(f"Output directory: {args.output_dir}")
        if args.share:
            print("Public sharing enabled - a public URL will be generated")
        print()

        launch_ui(
            config_dir=args.config_dir,
            output_dir=args.output_dir,
            share=args.share,
            port=port
        )
    except ImportError as e:
        print(f"\n❌ Error: {e}")
        print("\nMissing dependencies. Please install:")
        print("    pip install -r requirements.txt")
        sys.exit(1)
    except Exception as e:
        print(f"\n❌ Error starting: {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
