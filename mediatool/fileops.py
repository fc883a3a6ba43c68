"""
fileops.py — Filesystem side effects used by the stages.

Nothing here is ever called in simulation mode; the stages decide that.
Files are never deleted outright: removals go to the recycle bin and name
clashes are resolved by moving the existing file aside.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable

from send2trash import send2trash

from mediatool.models import MediaItem

log = logging.getLogger(__name__)

MB = 1024 * 1024


def send_to_trash(path: Path) -> None:
    log.info("Removing file: %s", path)
    send2trash(str(path))


def aside_path(path: Path) -> Path:
    """First free '<name>.old', '<name>.old.1', ... next to path."""
    candidate = path.with_name(path.name + ".old")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.old.{counter}")
        counter += 1
    return candidate


def move_aside(path: Path) -> Path:
    """Move an existing file out of the way instead of overwriting it."""
    target = aside_path(path)
    log.warning("%s already exists, moving it to %s", path.name, target.name)
    shutil.move(str(path), str(target))
    return target


def move_file(source: Path, dest: Path) -> None:
    if dest.exists() and not _same_file(source, dest):
        move_aside(dest)
    shutil.move(str(source), str(dest))


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.samefile(b)
    except OSError:
        return False


def free_space(path: Path) -> int:
    """Free bytes on the volume holding path (or its nearest existing parent)."""
    probe = Path(path)
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return shutil.disk_usage(str(probe)).free


def check_free_space(
    item: MediaItem,
    size: int,
    multiplier: int,
    headroom: int,
    free_space_fn: Callable[[Path], int] = free_space,
) -> bool:
    """Record a failure on item when the volume cannot take size * multiplier + headroom."""
    required = multiplier * size + headroom
    available = free_space_fn(item.parent)
    if available < required:
        log.error(
            "Not enough free space in %s! Required %d MB, available %d MB.",
            item.parent, required // MB, available // MB,
        )
        item.record(f"Fail: not enough free space in {item.parent}")
        return False
    return True
