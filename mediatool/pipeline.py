"""
pipeline.py — Drive every file under a location through the fixed stage order.

Behaviour:
  - A directory is walked depth-first: its files first (in the order the
    filesystem lists them), then each subdirectory
  - Every file becomes one MediaItem that visits the stages in order:
      ExtractArchive -> RenameFile -> ExtractMedia -> CreateArchive
  - Before each stage the item result is checked; a failed item stops there
    while its siblings carry on
  - Simulation never touches the filesystem but records the same tags
  - Each item ends up counted once: failed, modified or unchanged
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from mediatool import archives, fileops, heuristics
from mediatool.archives import Archive
from mediatool.config import cfg
from mediatool.errors import ArchiveError, FilenameClassificationError
from mediatool.extractor import MediaExtractor
from mediatool.models import MediaItem, RunSummary, Stage

log = logging.getLogger(__name__)

MEDIA_EXTENSIONS = frozenset({"mp4", "mkv", "m4v", "wmv", "3gp", "m4a"})
RENAME_EXTENSIONS = MEDIA_EXTENSIONS | {"srt"}

ALL_STAGES = tuple(Stage)


class Pipeline:
    """
    Stage pipeline over a file or a directory tree.

    All collaborators are injectable for testability:
      - extractor:     MediaExtractor-like object with process(item, simulate)
      - open_archive:  function(path) -> Archive
      - trash:         function(path) -> None, used for removed archives
      - free_space:    function(dir) -> free bytes
    """

    def __init__(
        self,
        simulate: bool = False,
        stages: Iterable[Stage] = ALL_STAGES,
        extractor: Optional[MediaExtractor] = None,
        open_archive: Callable[[Path], Archive] = archives.open_archive,
        trash: Callable[[Path], None] = fileops.send_to_trash,
        free_space: Callable[[Path], int] = fileops.free_space,
    ) -> None:
        self.simulate = simulate
        wanted = set(stages)
        self.stages = tuple(s for s in ALL_STAGES if s in wanted)
        self.extractor = extractor or MediaExtractor(trash=trash)
        self._open_archive = open_archive
        self._trash = trash
        self._free_space = free_space
        self.summary = RunSummary()
        self._handlers: Dict[Stage, Callable[[MediaItem], Awaitable[None]]] = {
            Stage.EXTRACT_ARCHIVE: self.extract_archive,
            Stage.RENAME_FILE: self.rename_file,
            Stage.EXTRACT_MEDIA: self.extract_media,
            Stage.CREATE_ARCHIVE: self.create_archive,
        }

    # ── traversal ────────────────────────────────────────────────────────────

    async def run(self, location: Path) -> RunSummary:
        location = Path(location)
        if location.is_dir():
            await self.process_directory(location)
        else:
            await self.process_file(location)
        return self.summary

    async def process_directory(self, directory: Path) -> None:
        log.info("Processing Directory %s:", directory)
        # Both listings are taken up front: stages add and remove files
        with os.scandir(directory) as it:
            entries = list(it)
        files = [Path(e.path) for e in entries if e.is_file()]
        for path in files:
            await self.process_file(path)

        with os.scandir(directory) as it:
            subdirs = [Path(e.path) for e in it if e.is_dir()]
        for subdir in subdirs:
            await self.process_directory(subdir)

    async def process_file(self, path: Path) -> Optional[MediaItem]:
        path = Path(path)
        if not path.exists():
            # trailing parts of a multi-part archive already removed
            log.debug("Skipping %s: no longer exists", path)
            return None

        item = MediaItem(path)
        if not path.suffix:
            log.warning("File does not have an extension: %s", path)
            item.record("Fail: has no extension")
            self.summary.count(item)
            return item

        for stage in self.stages:
            if not item.result.ok:
                break
            await self._handlers[stage](item)

        if item.is_modified and not item.is_in_error:
            log.info("   %s: %s", item.path.name, item.describe())
        self.summary.count(item)
        return item

    # ── stages ───────────────────────────────────────────────────────────────

    async def extract_archive(self, item: MediaItem) -> None:
        archive_path = item.path
        if not archives.is_extractable(archive_path):
            return

        item.record("extract")
        try:
            with self._open_archive(archive_path) as archive:
                entries = archive.entries()
                if not entries:
                    item.record("Fail: archive is empty")
                    return
                if len(entries) > 1:
                    log.warning("%s holds %d entries, extracting the first only",
                                archive_path.name, len(entries))
                entry = entries[0]
                item.path = item.parent / entry.basename

                fileops.check_free_space(item, entry.size, cfg.archive_multiplier,
                                         cfg.headroom_bytes, self._free_space)
                if not self.simulate and not item.is_in_error:
                    log.info("Extracting %s -> %s", archive_path.name, entry.basename)
                    archive.extract(entry, item.parent, overwrite=True)
        except ArchiveError as exc:
            log.error("%s", exc)
            item.record("Fail: could not open archive")
            return

        if item.is_in_error or self.simulate:
            return
        for part in archives.sibling_parts(archive_path):
            self._trash(part)

    async def rename_file(self, item: MediaItem) -> None:
        path = item.path
        if archives.is_archive(path) or archives.extension(path) not in RENAME_EXTENSIONS:
            return

        name = item.simplified_name
        try:
            canonical = heuristics.canonical_name(name)
        except FilenameClassificationError as exc:
            log.error("%s", exc)
            item.record("Fail: bad filename parse")
            return
        item.ripper = canonical.ripper
        log.debug("title: %r, year: %r, ripper: %s", canonical.title, canonical.year,
                  canonical.ripper.value)

        target = item.parent / canonical.name
        if str(path).lower() == str(target).lower():
            return

        item.record("rename")
        log.info("   %s: %s", name, item.describe())
        log.info("-> %s", canonical.name)

        if not self.simulate and item.is_modified and not item.is_in_error:
            fileops.move_file(path, target)
            item.path = target

    async def extract_media(self, item: MediaItem) -> None:
        if archives.extension(item.path) not in MEDIA_EXTENSIONS:
            return
        extracted = item.has_applied("extract")
        # an archive that was only simulated has nothing on disk yet
        if self.simulate and extracted:
            return
        if not extracted:
            fileops.check_free_space(item, item.path.stat().st_size, 1,
                                     cfg.headroom_bytes, self._free_space)
        if item.is_in_error:
            return
        await self.extractor.process(item, self.simulate)

    async def create_archive(self, item: MediaItem) -> None:
        """Reserved stage, nothing to do yet."""

    # ── summary ──────────────────────────────────────────────────────────────

    def summary_lines(self) -> List[str]:
        lines = []
        if self.simulate:
            lines.append("Simulated summary:")
        lines.append(f"Failed    files# {self.summary.failed}")
        lines.append(f"Processed files# {self.summary.modified}")
        return lines
