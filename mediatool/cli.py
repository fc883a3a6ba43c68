"""
cli.py — Command line entry point.

Usage:
  mediatool convert <path> [--simulate]   extract, rename, subtitle + remux
  mediatool extract <path> [--simulate]   extract archives and rename only
  mediatool merge   <path> [--simulate]   reserved, makes no changes yet
  mediatool update  [ffmpeg-dir] [--simulate]

--ffmpeg-dir points every action at a specific ffmpeg install.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from mediatool import __version__
from mediatool.config import cfg
from mediatool.errors import MediaToolError
from mediatool.misc.logger import setup_logging
from mediatool.models import Stage
from mediatool.pipeline import ALL_STAGES, Pipeline
from mediatool.updater import Updater

log = logging.getLogger(__name__)

ACTION_STAGES: Dict[str, Tuple[Stage, ...]] = {
    "convert": ALL_STAGES,
    "extract": (Stage.EXTRACT_ARCHIVE, Stage.RENAME_FILE),
    "merge": (Stage.CREATE_ARCHIVE,),
}

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediatool",
        description="Extract, rename and remux media files.",
    )
    parser.add_argument("action", choices=[*ACTION_STAGES, "update"])
    parser.add_argument(
        "path", nargs="?",
        help="file or directory to process; for 'update' the ffmpeg install directory",
    )
    parser.add_argument("-s", "--simulate", action="store_true",
                        help="report what would change without touching any file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--ffmpeg-dir", help="ffmpeg install directory (overrides MEDIATOOL_FFMPEG_DIR)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def _run_pipeline(action: str, location: Path, simulate: bool) -> Pipeline:
    pipeline = Pipeline(simulate=simulate, stages=ACTION_STAGES[action])
    await pipeline.run(location)
    return pipeline


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    if args.ffmpeg_dir:
        cfg.update({"ffmpeg_dir": args.ffmpeg_dir})

    try:
        if args.action == "update":
            ffmpeg_dir = args.path or cfg.ffmpeg_dir
            if not ffmpeg_dir:
                log.error("No ffmpeg directory given and MEDIATOOL_FFMPEG_DIR is not set")
                return EXIT_USAGE
            updater = Updater(Path(ffmpeg_dir), simulate=args.simulate)
            asyncio.run(updater.update())
            return EXIT_OK

        if not args.path or not Path(args.path).exists():
            log.error("Invalid path specified: %r", args.path)
            return EXIT_USAGE
        if args.action == "merge":
            log.warning("merge is reserved and currently makes no changes")

        pipeline = asyncio.run(_run_pipeline(args.action, Path(args.path), args.simulate))
    except MediaToolError as exc:
        log.critical("Aborted: %s", exc)
        return EXIT_ABORTED

    for line in pipeline.summary_lines():
        print(line)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
