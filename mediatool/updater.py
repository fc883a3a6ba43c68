"""
updater.py — Keep the local ffmpeg install on the latest release build.

Flow:
  - Read the local version ('ffmpeg -version') and the latest published
    version concurrently, then join both
  - Nothing to do when either is missing or they match
  - In simulation, only report
  - Otherwise move the install aside, download the release zip, unpack it
    next to the install and swap it in; the old install and the zip go to
    the recycle bin
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import zipfile
from pathlib import Path
from typing import Callable, Optional

import requests

from mediatool import fileops
from mediatool.config import cfg
from mediatool.errors import ProcessError, UpdateError
from mediatool.runner import CAPTURE_STDOUT, run_process

log = logging.getLogger(__name__)

# Stable versions are short ("7.1"); anything longer is a parsing accident
MAX_VERSION_LENGTH = 20

_LOCAL_VERSION_RE = re.compile(r"ffmpeg version n?(\d+(?:\.\d+)*)")
_REMOTE_VERSION_RE = re.compile(r"\d+(?:\.\d+)*")

HTTP_TIMEOUT = 30
CHUNK_SIZE = 1024 * 1024


def parse_local_version(output: str) -> str:
    match = _LOCAL_VERSION_RE.search(output)
    if match is None:
        log.error("ffmpeg version string not found!")
        return ""
    return match.group(1)


def parse_remote_version(body: str) -> str:
    match = _REMOTE_VERSION_RE.search(body.strip())
    if match is None:
        log.error("Version placeholder string not found!")
        return ""
    return match.group(0)


class Updater:
    def __init__(
        self,
        ffmpeg_dir: Path,
        simulate: bool = False,
        session: Optional[requests.Session] = None,
        trash: Callable[[Path], None] = fileops.send_to_trash,
    ) -> None:
        self.ffmpeg_dir = Path(ffmpeg_dir)
        self.simulate = simulate
        self.session = session or requests.Session()
        self._trash = trash
        if not self.ffmpeg_dir.is_dir():
            raise UpdateError(f"Provided ffmpeg binary path not found: {self.ffmpeg_dir}")

    @property
    def ffmpeg_bin(self) -> Path:
        return self.ffmpeg_dir / "bin" / "ffmpeg"

    def fetch_latest_version(self) -> str:
        """Blocking: latest release version published online, "" on any failure."""
        try:
            resp = self.session.get(cfg.version_url, timeout=HTTP_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            log.error("Could not fetch latest ffmpeg version: %s", exc)
            return ""
        return parse_remote_version(resp.text)

    async def local_version(self) -> str:
        try:
            result = await run_process([str(self.ffmpeg_bin), "-version"], cfg.probe_timeout,
                                       capture=CAPTURE_STDOUT, require_output=True)
        except ProcessError as exc:
            log.error("%s", exc)
            return ""
        if not result.ok:
            return ""
        return parse_local_version(result.output)

    async def update(self) -> bool:
        """Return True when a new build was installed."""
        latest, local = await asyncio.gather(
            asyncio.to_thread(self.fetch_latest_version),
            self.local_version(),
        )
        if (not local or not latest or len(local) > MAX_VERSION_LENGTH
                or len(latest) > MAX_VERSION_LENGTH):
            log.error("Error while retrieving version information!")
            return False

        log.info("Local version: %s", local)
        log.info("Latest stable found online: %s", latest)
        if local == latest:
            log.info("ffmpeg is up to date.")
            return False
        if self.simulate:
            log.info("Remove simulate flag to update")
            return False

        await asyncio.to_thread(self.install, local, latest)
        return True

    def install(self, local: str, latest: str) -> None:
        log.info("Updating..")
        backup = self.ffmpeg_dir.with_name(f"{self.ffmpeg_dir.name}.{local}")
        if backup.exists():
            self._trash(backup)
        self.ffmpeg_dir.rename(backup)

        url = cfg.download_url.format(version=latest)
        archive = self.ffmpeg_dir.parent / Path(url).name
        try:
            self._download(url, archive)
            self._unpack(archive)
        except (requests.RequestException, zipfile.BadZipFile, OSError, UpdateError) as exc:
            log.error("Update failed, restoring %s: %s", self.ffmpeg_dir.name, exc)
            if self.ffmpeg_dir.exists():
                shutil.rmtree(self.ffmpeg_dir)
            backup.rename(self.ffmpeg_dir)
            if archive.exists():
                self._trash(archive)
            if isinstance(exc, UpdateError):
                raise
            raise UpdateError(f"could not install ffmpeg {latest} from {url}: {exc}") from exc

        self._trash(backup)
        self._trash(archive)
        log.info("ffmpeg updated to %s", latest)

    def _unpack(self, archive: Path) -> None:
        """Extract the release zip next to the install and move its single top folder into place."""
        with zipfile.ZipFile(archive) as zf:
            top_level = {Path(name).parts[0] for name in zf.namelist() if name.strip("/")}
            if len(top_level) != 1:
                raise UpdateError(f"unexpected layout in {archive.name}: {sorted(top_level)}")
            extracted = self.ffmpeg_dir.parent / top_level.pop()
            try:
                zf.extractall(self.ffmpeg_dir.parent)
                extracted.rename(self.ffmpeg_dir)
            except (zipfile.BadZipFile, OSError):
                if extracted.exists():
                    shutil.rmtree(extracted)
                raise

    def _download(self, url: str, target: Path) -> None:
        log.info("Downloading %s", url)
        log.info("Temporarily saving to %s", target)
        with self.session.get(url, stream=True, timeout=HTTP_TIMEOUT) as resp:
            resp.raise_for_status()
            with open(target, "wb") as f:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
