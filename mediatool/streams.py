"""
streams.py — Pick the audio and subtitle tracks to keep from ffprobe metadata.

Selection rules (single pass, index order):
  - video streams are kept as-is and not part of the selection
  - data streams are logged as suspicious and ignored
  - any other codec type is an error for the item
  - subtitle/audio streams qualify only when their codec is supported
  - the first qualifying stream in the preferred language wins, otherwise
    the first qualifying stream is the fallback
  - per-ripper overrides can skip a stream or adopt it as preferred
  - a container change is unsafe when several audio tracks qualify and
    none is preferred, when audio exists but none can be copied, or when
    subtitles exist but none can be extracted
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from mediatool.errors import ProbeMetadataError, UnknownStreamTypeError
from mediatool.models import CodecType, Ripper

log = logging.getLogger(__name__)

# Text subtitles ffmpeg can convert to srt
SUBTITLE_CODECS = frozenset({"subrip", "srt", "ass", "ssa", "mov_text", "webvtt", "text"})

# Audio codecs an mp4 container can carry with -codec copy
AUDIO_CODECS = frozenset({"aac", "ac3", "eac3", "mp3", "opus", "vorbis", "flac", "dts"})

SKIP = "skip"
ADOPT = "adopt"

_UNTAGGED = ("", "und")


@dataclass(frozen=True)
class StreamInfo:
    index: int
    codec_type: str
    codec_name: str = ""
    tags: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def language(self) -> str:
        # matroska files sometimes carry upper-case tag keys
        for key in ("language", "LANGUAGE"):
            if key in self.tags:
                return str(self.tags[key]).lower()
        return ""

    @property
    def title(self) -> str:
        return str(self.tags.get("title", ""))

    @classmethod
    def from_probe(cls, raw: dict) -> StreamInfo:
        try:
            index = int(raw["index"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProbeMetadataError(f"stream without a usable index: {raw!r}") from exc
        return cls(
            index=index,
            codec_type=str(raw.get("codec_type", "")),
            codec_name=str(raw.get("codec_name", "")).lower(),
            tags=dict(raw.get("tags") or {}),
        )

    def describe(self) -> str:
        lang = f"({self.language})" if self.language else ""
        return f"#0:{self.index}{lang} {self.codec_type}: {self.codec_name} {self.title}".rstrip()


@dataclass
class StreamSelection:
    subtitle: Optional[StreamInfo] = None
    audio: Optional[StreamInfo] = None
    subtitle_count: int = 0
    audio_count: int = 0
    can_change_container: bool = True


@dataclass(frozen=True)
class RipperOverride:
    """Corrective rule for one release group, applied on top of the generic rules."""
    ripper: Ripper
    codec_type: CodecType
    applies: Callable[[StreamInfo], bool]
    action: str


RIPPER_OVERRIDES: Tuple[RipperOverride, ...] = (
    # PSA styled subtitle tracks carry the group's sponsor overlays
    RipperOverride(Ripper.PSA, CodecType.SUBTITLE, lambda s: s.codec_name in ("ass", "ssa"), SKIP),
    # HETeam leaves every track untagged
    RipperOverride(Ripper.HET, CodecType.AUDIO, lambda s: s.language in _UNTAGGED, ADOPT),
    RipperOverride(Ripper.HET, CodecType.SUBTITLE, lambda s: s.language in _UNTAGGED, ADOPT),
)


def parse_streams(probe: dict) -> List[StreamInfo]:
    """Convert ffprobe JSON into StreamInfo objects sorted by index."""
    raw_streams = probe.get("streams") if isinstance(probe, dict) else None
    if not raw_streams:
        raise ProbeMetadataError("probe metadata lists no streams, corrupted file?")
    return sorted((StreamInfo.from_probe(s) for s in raw_streams), key=lambda s: s.index)


def _override_for(ripper: Ripper, stream: StreamInfo) -> Optional[str]:
    for rule in RIPPER_OVERRIDES:
        if rule.ripper == ripper and rule.codec_type.value == stream.codec_type and rule.applies(stream):
            return rule.action
    return None


class _Candidate:
    """First preferred and first fallback stream of one codec type."""

    def __init__(self) -> None:
        self.preferred: Optional[StreamInfo] = None
        self.fallback: Optional[StreamInfo] = None
        self.count = 0

    def offer(self, stream: StreamInfo, preferred: bool) -> None:
        self.count += 1
        if self.fallback is None:
            self.fallback = stream
        if preferred and self.preferred is None:
            self.preferred = stream

    @property
    def chosen(self) -> Optional[StreamInfo]:
        return self.preferred or self.fallback


def select_streams(
    streams: Sequence[StreamInfo],
    ripper: Ripper = Ripper.UNKNOWN,
    language: str = "eng",
) -> StreamSelection:
    language = language.lower()
    subtitles = _Candidate()
    audio = _Candidate()
    subtitle_streams = 0
    audio_streams = 0

    for stream in sorted(streams, key=lambda s: s.index):
        log.info(" %s", stream.describe())
        if stream.codec_type == CodecType.VIDEO.value:
            continue
        if stream.codec_type == CodecType.DATA.value:
            log.warning("Stream #0:%d is a data stream: is the input an mp4 file?", stream.index)
            continue
        if stream.codec_type not in (CodecType.AUDIO.value, CodecType.SUBTITLE.value):
            raise UnknownStreamTypeError(
                f"stream #0:{stream.index} has unknown codec type {stream.codec_type!r}"
            )

        if stream.codec_type == CodecType.SUBTITLE.value:
            subtitle_streams += 1
        else:
            audio_streams += 1

        override = _override_for(ripper, stream)
        if override == SKIP:
            log.info("Skipping stream #0:%d for %s releases", stream.index, ripper.value)
            continue
        preferred = override == ADOPT or stream.language == language

        if stream.codec_type == CodecType.SUBTITLE.value:
            if stream.codec_name in SUBTITLE_CODECS:
                subtitles.offer(stream, preferred)
        elif stream.codec_name in AUDIO_CODECS:
            audio.offer(stream, preferred)

    selection = StreamSelection(
        subtitle=subtitles.chosen,
        audio=audio.chosen,
        subtitle_count=subtitles.count,
        audio_count=audio.count,
    )
    log.info("Number of subtitles: %d, number of audio: %d", subtitles.count, audio.count)

    if audio.count > 1 and audio.preferred is None:
        log.warning(
            "Audio streams# %d without a %s track! Disabling container change..",
            audio.count, language,
        )
        selection.can_change_container = False
    if audio_streams > 0 and selection.audio is None:
        log.warning("No supported audio codec! Disabling container change..")
        selection.can_change_container = False
    if subtitle_streams > 0 and selection.subtitle is None:
        log.warning("Failed to choose subtitle index! Disabling container change..")
        selection.can_change_container = False

    return selection
