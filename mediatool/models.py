"""
models.py — Dataclasses and enums shared across the mediatool pipeline.

The MediaItem is the single mutable record threaded through every stage.
Stages talk to it only through record() and the path attribute.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from mediatool.errors import SimplifiedPathError

log = logging.getLogger(__name__)

FAIL_PREFIX = "Fail:"


# ── Enums ────────────────────────────────────────────────────────────────────

class Stage(Enum):
    EXTRACT_ARCHIVE = "extract_archive"
    RENAME_FILE = "rename_file"
    EXTRACT_MEDIA = "extract_media"
    CREATE_ARCHIVE = "create_archive"


class Ripper(str, Enum):
    PSA = "PSA"
    RMT = "RMT"
    HET = "HET"
    JOY = "Joy"
    UNKNOWN = "Unknown"


class CodecType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"
    DATA = "data"


# ── Per-item state ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ItemResult:
    """Outcome checked at every stage boundary."""
    ok: bool = True
    reason: str = ""


@dataclass
class MediaItem:
    """One file travelling through the stage pipeline."""
    path: Path
    parent: Path = field(init=False)
    ripper: Ripper = Ripper.UNKNOWN
    mod_log: List[str] = field(default_factory=list)
    failure: Optional[str] = None

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.parent = self.path.parent

    @property
    def is_modified(self) -> bool:
        return bool(self.mod_log)

    @property
    def is_in_error(self) -> bool:
        return self.failure is not None

    @property
    def result(self) -> ItemResult:
        if self.failure is not None:
            return ItemResult(ok=False, reason=self.failure[len(FAIL_PREFIX):].strip())
        return ItemResult()

    @property
    def simplified_name(self) -> str:
        return simplify(self.path, self.parent)

    def record(self, tag: str) -> None:
        """
        Record a modification tag or a failure tag.

        The first failure wins and is logged once; the item never leaves the
        error state afterwards. Modification tags are kept in order, without
        duplicates.
        """
        if tag.startswith(FAIL_PREFIX):
            if self.failure is None:
                self.failure = tag
                log.error("%s: %s", self.path.name, tag[len(FAIL_PREFIX):].strip())
            else:
                log.debug("%s: ignoring later failure %r", self.path.name, tag)
            return
        if tag not in self.mod_log:
            self.mod_log.append(tag)

    def has_applied(self, tag: str) -> bool:
        return tag in self.mod_log

    def describe(self) -> str:
        return ", ".join(self.mod_log)


def simplify(path: Path, parent: Path) -> str:
    """Return path relative to parent, rejecting anything that is not a bare name."""
    path_str = str(path)
    parent_str = str(parent)
    if len(path_str) > len(parent_str) and path_str.startswith(parent_str):
        name = path_str[len(parent_str):].lstrip(os.sep)
    else:
        name = path_str
    return validate_simplified(name)


def validate_simplified(name: str) -> str:
    if not name or os.sep in name or (os.altsep and os.altsep in name):
        raise SimplifiedPathError(
            f"simplified path must be a bare file name, got {name!r}"
        )
    return name


# ── Run summary ──────────────────────────────────────────────────────────────

@dataclass
class RunSummary:
    failed: int = 0
    modified: int = 0
    unchanged: int = 0

    def count(self, item: MediaItem) -> None:
        if item.is_in_error:
            self.failed += 1
        elif item.is_modified:
            self.modified += 1
        else:
            self.unchanged += 1

    def to_dict(self) -> dict:
        return {
            "failed": self.failed,
            "modified": self.modified,
            "unchanged": self.unchanged,
        }
