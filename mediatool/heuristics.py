"""
heuristics.py — Derive a canonical file name from an unstructured release name.

Naming rules:
  - Episode: the name carries an S##E## token. Output is "E## Episode Title.ext";
    show and season come from the folder the file already lives in.
  - Movie: a 4-digit year is found, parenthesised first, then bare. Output is
    "Title (YYYY).<suffix>.ext" where <suffix> is the release tail compressed
    through the ripper's replacement table.
  - Uncategorized: neither of the above. The stem is title-cased, nothing else.

Every function works on a simplified name (file name relative to its parent)
and is pure: no filesystem access, no item state. The year span is returned
by extract_year()/episode_span() and handed explicitly to the title and tail
functions.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, NamedTuple, Pattern, Tuple

from mediatool.errors import FilenameClassificationError
from mediatool.models import Ripper, validate_simplified

log = logging.getLogger(__name__)

# ── Patterns ─────────────────────────────────────────────────────────────────

_EPISODE_RE = re.compile(r"S\d{2}E\d{2}", re.IGNORECASE)

# Year bounded by separators: ".(2010)." / " (2010) " first, then ".2010."
_PAREN_YEAR_RE = re.compile(r"[., ]\((\d{4})\)[., ]")
_BARE_YEAR_RE = re.compile(r"[., ](\d{4})[., ]")

# Where the episode title stops: ".720p.", ".1080p." ...
_EPISODE_RES_RE = re.compile(r"\.(?:480|576|720|1080|2160)p\.", re.IGNORECASE)

# Resolution tokens that look like years
_MISPARSED_YEARS = frozenset({"1080"})

# Season prefix skipped in "S01E02" so the episode title starts at "E02"
_SEASON_PREFIX_LEN = 3


class YearSpan(NamedTuple):
    """Offset and length of the matched year token inside the simplified name."""
    position: int
    length: int

    @property
    def end(self) -> int:
        return self.position + self.length


class CanonicalName(NamedTuple):
    name: str
    title: str
    year: str
    ripper: Ripper
    suffix: str
    episode: bool


# ── Ripper rules ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RipperRule:
    """Raw release markers plus the suffixes this module itself produces."""
    ripper: Ripper
    markers: Tuple[str, ...]
    canonical: FrozenSet[str]

    def matches(self, tail: str) -> bool:
        lowered = tail.lower()
        if any(marker.lower() in lowered for marker in self.markers):
            return True
        return tail in self.canonical


# Tested top to bottom, first match wins
RIPPER_RULES: Tuple[RipperRule, ...] = (
    RipperRule(
        Ripper.PSA,
        ("x265.HEVC-PSA",),
        frozenset({"", "8", "1080", "web", "web.2", "web.8"}),
    ),
    RipperRule(Ripper.JOY, (" Joy)",), frozenset({"Joy", "720.Joy"})),
    RipperRule(Ripper.RMT, ("x265.rmteam",), frozenset({"RMT", "1080.RMT"})),
    RipperRule(
        Ripper.HET,
        ("x265-HETeam",),
        frozenset({"HET", "1080.HET", "1080.HET.Ext"}),
    ),
)

# Longer release strings come before their own substrings
_TAIL_REPLACEMENTS: Dict[Ripper, Tuple[Tuple[str, str], ...]] = {
    # 720p BluRay 6CH is the PSA default and collapses to nothing
    Ripper.PSA: (
        ("REMASTERED.720p.10bit.BluRay.6CH.x265.HEVC-PSA", ""),
        ("720p.10bit.BluRay.6CH.x265.HEVC-PSA", ""),
        ("INTERNAL.720p.BrRip.2CH.x265.HEVC-PSA", "8"),
        ("720p.BluRay.2CH.x265.HEVC-PSA", "8"),
        ("720p.BrRip.2CH.x265.HEVC-PSA", "8"),
        ("1080p.BrRip.6CH.x265.HEVC-PSA", "1080"),
        ("1080p.BluRay.6CH.x265.HEVC-PSA", "1080"),
        ("720p.10bit.WEBRip.6CH.x265.HEVC-PSA", "web"),
        ("720p.10bit.WEBRip.2CH.x265.HEVC-PSA", "web.2"),
        ("720p.WEBRip.2CH.x265.HEVC-PSA", "web.8"),
    ),
    Ripper.HET: (
        ("Extended.1080p.BluRay.x265-HETeam", "1080.HET.Ext"),
        ("720p.BluRay.x265-HETeam", "HET"),
        ("1080p.BluRay.x265-HETeam", "1080.HET"),
    ),
    Ripper.RMT: (
        ("remastered.720p.bluray.hevc.x265.rmteam", "RMT"),
        ("720p.bluray.hevc.x265.rmteam", "RMT"),
        ("1080p.bluray.dd5.1.hevc.x265.rmteam", "1080.RMT"),
    ),
    Ripper.JOY: (
        ("(720p x265 q22 Joy)", "720.Joy"),
        ("(1080p x265 q22 Joy)", "Joy"),
    ),
}


def _compile_replacements() -> Dict[Ripper, Tuple[Tuple[Pattern, str], ...]]:
    return {
        ripper: tuple((re.compile(re.escape(old), re.IGNORECASE), new) for old, new in table)
        for ripper, table in _TAIL_REPLACEMENTS.items()
    }


_COMPILED_REPLACEMENTS = _compile_replacements()
_RULES_BY_RIPPER = {rule.ripper: rule for rule in RIPPER_RULES}


# ── Pure functions ───────────────────────────────────────────────────────────

def _split_extension(name: str) -> Tuple[str, str]:
    stem, ext = os.path.splitext(name)
    return stem, ext[1:]


def _join_suffix(release: str, ext: str) -> str:
    parts = [part for part in (release, ext) if part]
    return "." + ".".join(parts) if parts else ""


def _capitalize(word: str) -> str:
    # All-caps words are treated as acronyms and kept
    if word.isupper():
        return word
    lowered = word.lower()
    for i, ch in enumerate(lowered):
        if ch.isalpha():
            return lowered[:i] + ch.upper() + lowered[i + 1:]
    return lowered


def title_case(text: str) -> str:
    return " ".join(_capitalize(word) for word in text.split(" "))


def is_episode(name: str) -> bool:
    return bool(_EPISODE_RE.search(validate_simplified(name)))


def extract_year(name: str) -> Tuple[str, YearSpan]:
    """
    Return (year, span) for a movie name.

    Without a year the span points at the extension so the whole stem
    becomes the title, and the year is "".
    """
    validate_simplified(name)
    match = _PAREN_YEAR_RE.search(name) or _BARE_YEAR_RE.search(name)
    if match is None:
        stem, _ = _split_extension(name)
        return "", YearSpan(len(stem), 0)

    year = match.group(1)
    if year in _MISPARSED_YEARS:
        raise FilenameClassificationError(
            f"bad parsing: got {year} as year in {name!r}"
        )
    return year, YearSpan(match.start(), match.end() - match.start())


def episode_span(name: str) -> YearSpan:
    """Boundary of the episode title: the resolution token, else the extension."""
    validate_simplified(name)
    episode = _EPISODE_RE.search(name)
    start = episode.end() if episode else 0
    match = _EPISODE_RES_RE.search(name, start)
    if match:
        return YearSpan(match.start(), 0)
    stem, _ = _split_extension(name)
    return YearSpan(len(stem), 0)


def extract_title(name: str, span: YearSpan, episode: bool = False) -> str:
    head = validate_simplified(name)[: span.position]

    if episode:
        match = _EPISODE_RE.search(head)
        if match is None:
            raise FilenameClassificationError(
                f"episode token not found before position {span.position} in {name!r}"
            )
        head = head[match.start() + _SEASON_PREFIX_LEN:]
        if head.endswith((".", " ")):
            head = head[:-1]
    elif not head.strip(". "):
        raise FilenameClassificationError(f"no title before the year in {name!r}")

    return title_case(head.replace(".", " ").strip())


def ripper_tail(name: str, span: YearSpan, episode: bool = False) -> str:
    """Text the ripper rules are matched against."""
    stem, _ = _split_extension(validate_simplified(name))
    if episode or span.length == 0:
        return stem
    release, _, _ext = name[span.end:].rpartition(".")
    return release


def classify_ripper(tail: str) -> Ripper:
    for rule in RIPPER_RULES:
        if rule.matches(tail):
            return rule.ripper
    log.warning("Unknown ripper! Suffix: %r", tail)
    return Ripper.UNKNOWN


def compress_tail(release: str, ripper: Ripper) -> str:
    compressed = release
    for pattern, replacement in _COMPILED_REPLACEMENTS.get(ripper, ()):
        compressed = pattern.sub(lambda _m, r=replacement: r, compressed)

    rule = _RULES_BY_RIPPER.get(ripper)
    if compressed == release and (rule is None or release not in rule.canonical):
        log.warning("Unrecognized %s pattern, keeping suffix: %r", ripper.value, release)
    return compressed


def ripper_suffix(name: str, span: YearSpan, ripper: Ripper, episode: bool = False) -> str:
    """Separator-prefixed suffix (compressed release + extension), or ""."""
    _, ext = _split_extension(validate_simplified(name))
    if episode or span.length == 0:
        return _join_suffix("", ext)
    release = ripper_tail(name, span)
    return _join_suffix(compress_tail(release, ripper), ext)


def canonical_name(name: str) -> CanonicalName:
    """
    Compute the canonical name for a simplified file name.

    Raises FilenameClassificationError when the heuristics cannot be trusted
    (a resolution parsed as year, an empty title).
    """
    if is_episode(name):
        span = episode_span(name)
        title = extract_title(name, span, episode=True)
        ripper = classify_ripper(ripper_tail(name, span, episode=True))
        suffix = ripper_suffix(name, span, ripper, episode=True)
        return CanonicalName(title + suffix, title, "", ripper, suffix, True)

    year, span = extract_year(name)
    title = extract_title(name, span)
    ripper = classify_ripper(ripper_tail(name, span))
    suffix = ripper_suffix(name, span, ripper)
    year_part = f" ({year})" if year else ""
    return CanonicalName(title + year_part + suffix, title, year, ripper, suffix, False)
