#!/usr/bin/env python3
"""
GIF Processing Script
=====================

Standalone script to run the full pipeline on one GIF file.

This script:
    1. Decodes, downsamples and resizes the input GIF
    2. Processes every frame (remote editor when --remote and a key is set,
       local engines otherwise)
    3. Writes the encoded result
    4. Reports a summary

Usage:
    python scripts/process_gif.py input.gif --mode remove-bg
    python scripts/process_gif.py input.gif --mode recolor --rule "#FF0000:#0000FF:red car"
    python scripts/process_gif.py input.gif --mode remove-bg --replacement "#FFFFFF" -o out.gif
    GEMINI_API_KEY=... python scripts/process_gif.py input.gif --mode remove-bg --remote
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from gif_alchemy.models.color import RecolorRule
from gif_alchemy.models.project import EditConfig, ProcessingMode, ProcessingStatus
from gif_alchemy.projects import ingest_gif
from gif_alchemy.remote.client import RemoteEditClient
from gif_alchemy.remote.gemini import DEFAULT_MODEL, GeminiTransport
from gif_alchemy.scheduling import FrameJobScheduler, ProjectBatchScheduler


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_rule(value: str) -> RecolorRule:
    """Parse 'SOURCE:TARGET[:description]' into a RecolorRule."""
    parts = value.split(":", 2)
    if len(parts) < 2:
        raise argparse.ArgumentTypeError(
            f"Rule must be SOURCE:TARGET[:description], got {value!r}"
        )
    try:
        return RecolorRule(
            source=parts[0],
            target=parts[1],
            description=parts[2] if len(parts) == 3 else None,
        )
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


async def run(args: argparse.Namespace) -> int:
    """
    Process one file.

    Returns:
        Process exit code
    """
    input_path = Path(args.input)
    output_path = Path(args.output) if args.output else input_path.with_name(
        f"{input_path.stem}_edited.gif"
    )

    config = EditConfig(
        modes=[ProcessingMode(m) for m in (args.mode or [ProcessingMode.REMOVE_BG.value])],
        recolor_rules=args.rule or EditConfig().recolor_rules,
        remove_color=args.remove_color,
        replacement_color=args.replacement,
    )

    project = ingest_gif(
        input_path.name,
        input_path.read_bytes(),
        config,
        max_frames=args.max_frames,
        max_width=args.max_width,
    )
    if project.status == ProcessingStatus.ERROR:
        logger.error(f"❌ {project.error}")
        return 1

    editor = None
    if args.remote:
        api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
        if api_key:
            editor = RemoteEditClient(GeminiTransport(api_key=api_key, model=args.model))
        else:
            logger.warning("No API key set, falling back to local processing")

    batch = ProjectBatchScheduler(
        FrameJobScheduler(editor=editor, concurrency=args.concurrency),
        use_remote=editor is not None,
    )

    logger.info("=" * 60)
    logger.info(f"Input: {input_path} ({len(project.frames)} frames)")
    logger.info(f"Modes: {[m.value for m in config.modes]}")
    logger.info(f"Remote: {'yes' if editor else 'no'}")
    logger.info("=" * 60)

    start_time = time.time()
    result = await batch.process_project(project)
    elapsed = time.time() - start_time

    if project.status != ProcessingStatus.COMPLETED or result is None:
        logger.error(f"❌ FAILED - {project.error or project.status.value}")
        return 1

    output_path.write_bytes(project.result_blob)

    logger.info("=" * 60)
    logger.info("SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Runtime: {elapsed:.1f} seconds")
    logger.info(f"Frames: {result.frame_count}")
    logger.info(f"Remote frames: {result.remote_frames}")
    logger.info(f"Local frames: {result.local_frames}")
    logger.info(f"Quota exhausted: {result.quota_exhausted}")
    logger.info(f"Output: {output_path} ({len(project.result_blob)} bytes)")
    logger.info("=" * 60)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Recolor an animated GIF and/or remove its background"
    )
    parser.add_argument("input", type=str, help="Input GIF file")
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        help="Output GIF file (default: <input>_edited.gif)",
    )
    parser.add_argument(
        "--mode",
        action="append",
        choices=[m.value for m in ProcessingMode],
        help="Edit mode, repeatable (default: remove-bg)",
    )
    parser.add_argument(
        "--rule",
        action="append",
        type=parse_rule,
        help="Recolor rule SOURCE:TARGET[:description], repeatable",
    )
    parser.add_argument(
        "--remove-color",
        type=str,
        default="#00FF00",
        help="Background key color for local removal (default: #00FF00)",
    )
    parser.add_argument(
        "--replacement",
        type=str,
        default=None,
        help="Solid background color (default: transparent)",
    )
    parser.add_argument(
        "--remote",
        action="store_true",
        help="Use the remote editor (needs GEMINI_API_KEY or API_KEY)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=DEFAULT_MODEL,
        help=f"Remote model name (default: {DEFAULT_MODEL})",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=2,
        help="Frame workers (default: 2)",
    )
    parser.add_argument(
        "--max-frames",
        type=int,
        default=50,
        help="Frame-count limit (default: 50)",
    )
    parser.add_argument(
        "--max-width",
        type=int,
        default=300,
        help="Width limit in pixels (default: 300)",
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
