"""
extractor.py — Probe a media file, extract its subtitle and remux it to mp4.

Responsibilities:
  - Run ffprobe (JSON) and hand the streams to the stream classifier
  - Extract the chosen subtitle track to a '<stem>.srt' sidecar (mkv only)
  - Remux video + the chosen audio into '<stem>.mp4' with -codec copy,
    dropping subtitles and chapters, when the classifier says it is safe
  - Trash the mkv source only after a successful remux
  - Convert tool failures (timeout, non-zero exit, spawn error) into item
    failure tags; unparseable probe output propagates
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import ffmpeg

from mediatool import fileops
from mediatool.config import cfg
from mediatool.errors import ProbeMetadataError, ProcessLaunchError, UnknownStreamTypeError
from mediatool.models import MediaItem
from mediatool.runner import CAPTURE_STDERR, CAPTURE_STDOUT, ProcessResult, run_process
from mediatool.streams import StreamInfo, StreamSelection, parse_streams, select_streams

log = logging.getLogger(__name__)

Runner = Callable[..., Awaitable[ProcessResult]]

SUBTITLE_SOURCE_EXT = ".mkv"
REMUX_SOURCE_EXT = ".mkv"
REMUX_TARGET_EXT = ".mp4"

# A remuxed file this much smaller than its source lost streams on the way
REMUX_SIZE_TOLERANCE = 50 * fileops.MB
MIN_SUBTITLE_SIZE = 5 * 1024


def probe_args(path: Path, ffprobe: str = "ffprobe") -> List[str]:
    return [
        ffprobe,
        "-loglevel", "warning",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        "-i", str(path),
    ]


def subtitle_args(source: Path, stream: StreamInfo, target: Path, cmd: str = "ffmpeg") -> List[str]:
    out = (
        ffmpeg
        .input(str(source))[str(stream.index)]
        .output(str(target), **{"codec:s": "srt"})
        .global_args("-loglevel", "fatal")
    )
    return out.compile(cmd=cmd)


def remux_args(source: Path, audio: Optional[StreamInfo], target: Path, cmd: str = "ffmpeg") -> List[str]:
    inp = ffmpeg.input(str(source))
    streams = [inp["v:0"]]
    if audio is not None:
        streams.append(inp[str(audio.index)])
    out = ffmpeg.output(
        *streams,
        str(target),
        vcodec="copy",
        acodec="copy",
        map_chapters=-1,
        sn=None,
    ).global_args("-loglevel", "fatal")
    return out.compile(cmd=cmd)


class MediaExtractor:
    """Drives ffprobe/ffmpeg for one item at a time."""

    def __init__(
        self,
        runner: Runner = run_process,
        trash: Callable[[Path], None] = fileops.send_to_trash,
    ) -> None:
        self._run = runner
        self._trash = trash

    # ── probe ────────────────────────────────────────────────────────────────

    async def probe(self, item: MediaItem) -> Optional[dict]:
        """Return decoded ffprobe JSON, or None after recording a failure on item."""
        args = probe_args(item.path, cfg.tool_path("ffprobe"))
        result = await self._invoke(item, "probe", args, cfg.probe_timeout,
                                    capture=CAPTURE_STDOUT, require_output=True)
        if result is None:
            return None
        if result.returncode != 0:
            log.error("Exit code: %s, please check if it's corrupted file: %s",
                      result.returncode, item.path)
            item.record("Fail: corrupted media file")
            return None
        try:
            return json.loads(result.output)
        except json.JSONDecodeError as exc:
            raise ProbeMetadataError(f"ffprobe returned invalid JSON for {item.path}: {exc}") from exc

    # ── subtitle ─────────────────────────────────────────────────────────────

    async def extract_subtitle(self, item: MediaItem, stream: StreamInfo) -> bool:
        source = item.path
        if source.suffix.lower() != SUBTITLE_SOURCE_EXT:
            return False
        target = source.with_suffix(".srt")
        if target.exists():
            fileops.move_aside(target)

        args = subtitle_args(source, stream, target, cfg.tool_path("ffmpeg"))
        result = await self._invoke(item, "subtitle extraction", args, cfg.subtitle_timeout,
                                    capture=CAPTURE_STDERR)
        if result is None:
            return False
        if result.returncode != 0:
            log.error("Exit code: %s, please check input stream. codec id: 0:%d",
                      result.returncode, stream.index)
            item.record("Fail: subtitle extraction")
            return False

        size = target.stat().st_size if target.exists() else 0
        log.info("Srt size: %.2f KB (%d ms)", size / 1024, round(result.elapsed * 1000))
        if size == 0:
            log.error("ffmpeg exited cleanly but wrote no subtitle for stream 0:%d", stream.index)
            if target.exists():
                target.unlink()
            item.record("Fail: subtitle extraction produced no file")
            return False
        if size < MIN_SUBTITLE_SIZE:
            log.warning("Subtitle file size is small (< 5 KB)!")
        item.record("subtitle")
        return True

    # ── remux ────────────────────────────────────────────────────────────────

    async def remux(self, item: MediaItem, selection: StreamSelection) -> bool:
        source = item.path
        if source.suffix.lower() != REMUX_SOURCE_EXT:
            return False
        target = source.with_suffix(REMUX_TARGET_EXT)
        if target.exists():
            fileops.move_aside(target)

        in_size = source.stat().st_size
        args = remux_args(source, selection.audio, target, cfg.tool_path("ffmpeg"))
        result = await self._invoke(item, "media conversion", args, cfg.remux_timeout,
                                    capture=CAPTURE_STDERR)
        if result is None:
            return False
        if result.returncode != 0:
            log.error("Exit code: %s, ffmpeg is invoked incorrectly! args: %s",
                      result.returncode, " ".join(result.args))
            item.record("Fail: media conversion")
            return False

        out_size = target.stat().st_size if target.exists() else 0
        if in_size - out_size > REMUX_SIZE_TOLERANCE:
            log.error("%s is %d MB smaller than its source",
                      target.name, (in_size - out_size) // fileops.MB)
            item.record("Fail: media conversion output truncated")
            return False

        log.info("Elapsed time: %d ms (change to mp4 container)", round(result.elapsed * 1000))
        self._trash(source)
        item.path = target
        item.record("convert")
        return True

    # ── stage entry point ────────────────────────────────────────────────────

    async def process(self, item: MediaItem, simulate: bool = False) -> None:
        log.info("Processing Media %s:", item.path)
        probe = await self.probe(item)
        if probe is None or item.is_in_error:
            return

        try:
            selection = select_streams(parse_streams(probe), item.ripper, cfg.language)
        except UnknownStreamTypeError as exc:
            log.error("%s", exc)
            item.record("Fail: unknown stream found")
            return

        if selection.subtitle is not None:
            log.info("Subtitle stream index: 0:%d", selection.subtitle.index)

        is_mkv = item.path.suffix.lower() == REMUX_SOURCE_EXT
        if simulate:
            if selection.subtitle is not None and is_mkv:
                item.record("subtitle")
            if selection.can_change_container and is_mkv:
                item.record("convert")
            return

        if selection.subtitle is not None:
            await self.extract_subtitle(item, selection.subtitle)

        if selection.can_change_container and not item.is_in_error:
            await self.remux(item, selection)

    # ── helpers ──────────────────────────────────────────────────────────────

    async def _invoke(self, item: MediaItem, operation: str, args: List[str], timeout: float,
                      **kwargs) -> Optional[ProcessResult]:
        try:
            result = await self._run(args, timeout, **kwargs)
        except ProcessLaunchError as exc:
            log.error("An error occurred trying to run %s: %s", operation, exc)
            item.record(f"Fail: could not launch {Path(args[0]).name}")
            return None
        if result.timed_out:
            item.record(f"Fail: {operation} timed out")
            return None
        return result
