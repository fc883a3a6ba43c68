"""
archives.py — Thin adapter over the archive libraries (zipfile, tarfile, rarfile).

The pipeline only needs three operations:
  - open an archive
  - list its file entries
  - write one entry into a directory

Entries are written flat (basename only) into the target directory, so an
extracted file always sits next to the archive it came from.
"""

from __future__ import annotations

import logging
import re
import shutil
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import IO, Any, List, Optional

import rarfile

from mediatool.errors import ArchiveError

log = logging.getLogger(__name__)

ARCHIVE_EXTENSIONS = frozenset({"rar", "zip", "tar"})

# movie.part1.rar, movie.part01.rar; three-digit part numbers are not supported
_PART_RE = re.compile(r"^(?P<prefix>.*)part(?P<number>\d{1,2})\.rar$", re.IGNORECASE)


@dataclass(frozen=True)
class ArchiveEntry:
    name: str
    size: int

    @property
    def basename(self) -> str:
        return PurePosixPath(self.name.replace("\\", "/")).name


def extension(path: Path) -> str:
    return Path(path).suffix[1:].lower()


def is_archive(path: Path) -> bool:
    return extension(path) in ARCHIVE_EXTENSIONS


def part_number(path: Path) -> Optional[int]:
    match = _PART_RE.match(Path(path).name)
    return int(match.group("number")) if match else None


def is_extractable(path: Path) -> bool:
    """Archives are extracted from a single file or from the first numbered part only."""
    number = part_number(path)
    if number is not None:
        return number == 1
    return is_archive(path)


def sibling_parts(path: Path) -> List[Path]:
    """Every '<prefix>partN.rar' next to path, path included."""
    path = Path(path)
    match = _PART_RE.match(path.name)
    if match is None:
        return [path]
    pattern = re.compile(
        "^" + re.escape(match.group("prefix")) + r"part\d+\.rar$", re.IGNORECASE
    )
    return sorted(p for p in path.parent.iterdir() if p.is_file() and pattern.match(p.name))


# ── Archive implementations ──────────────────────────────────────────────────

class Archive:
    """Base class: subclasses provide _list() and _open_entry()."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._handle: Any = None

    def __enter__(self) -> Archive:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def entries(self) -> List[ArchiveEntry]:
        try:
            return self._list()
        except (OSError, zipfile.BadZipFile, tarfile.TarError, rarfile.Error) as exc:
            raise ArchiveError(f"could not list {self.path.name}: {exc}") from exc

    def extract(self, entry: ArchiveEntry, dest_dir: Path, overwrite: bool = True) -> Path:
        target = Path(dest_dir) / entry.basename
        if target.exists() and not overwrite:
            raise ArchiveError(f"{target} already exists")
        try:
            with self._open_entry(entry) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except (OSError, zipfile.BadZipFile, tarfile.TarError, rarfile.Error) as exc:
            # a half-written entry would pass for a media file on the next run
            if target.exists():
                log.warning("Removing partially extracted %s", target.name)
                target.unlink()
            raise ArchiveError(
                f"probably could not find next archive part of {self.path.name}: {exc}"
            ) from exc
        return target

    def _list(self) -> List[ArchiveEntry]:
        raise NotImplementedError

    def _open_entry(self, entry: ArchiveEntry) -> IO[bytes]:
        raise NotImplementedError


class ZipArchive(Archive):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self._handle = zipfile.ZipFile(self.path)

    def _list(self) -> List[ArchiveEntry]:
        return [
            ArchiveEntry(info.filename, info.file_size)
            for info in self._handle.infolist()
            if not info.is_dir()
        ]

    def _open_entry(self, entry: ArchiveEntry) -> IO[bytes]:
        return self._handle.open(entry.name)


class TarArchive(Archive):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self._handle = tarfile.open(self.path)

    def _list(self) -> List[ArchiveEntry]:
        return [
            ArchiveEntry(member.name, member.size)
            for member in self._handle.getmembers()
            if member.isfile()
        ]

    def _open_entry(self, entry: ArchiveEntry) -> IO[bytes]:
        fileobj = self._handle.extractfile(entry.name)
        if fileobj is None:
            raise ArchiveError(f"{entry.name} is not a regular file")
        return fileobj


class RarArchive(Archive):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self._handle = rarfile.RarFile(str(self.path))

    def _list(self) -> List[ArchiveEntry]:
        return [
            ArchiveEntry(info.filename, info.file_size)
            for info in self._handle.infolist()
            if not info.is_dir()
        ]

    def _open_entry(self, entry: ArchiveEntry) -> IO[bytes]:
        return self._handle.open(entry.name)


_ARCHIVE_TYPES = {
    "zip": ZipArchive,
    "tar": TarArchive,
    "rar": RarArchive,
}


def open_archive(path: Path) -> Archive:
    """Open path with the implementation matching its extension."""
    archive_cls = _ARCHIVE_TYPES.get(extension(path))
    if archive_cls is None:
        raise ArchiveError(f"unsupported archive type: {Path(path).name}")
    try:
        return archive_cls(path)
    except (OSError, zipfile.BadZipFile, tarfile.TarError, rarfile.Error) as exc:
        raise ArchiveError(f"could not open {Path(path).name}: {exc}") from exc
