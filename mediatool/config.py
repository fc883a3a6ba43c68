"""
config.py — Global, live-mutable configuration loaded from environment variables.

Every value can be overridden through the environment before the process
starts, or later through Config.update() (the CLI uses it for --ffmpeg-dir).
"""

import os
import threading
from pathlib import Path

DEFAULT_VERSION_URL = "https://www.gyan.dev/ffmpeg/builds/release-version"
DEFAULT_DOWNLOAD_URL = (
    "https://github.com/GyanD/codexffmpeg/releases/download/"
    "{version}/ffmpeg-{version}-full_build-shared.zip"
)


class Config:
    """Mutable configuration object. Thread-safe via a read/write lock."""

    _lock = threading.RLock()

    def __init__(self) -> None:
        self._ffmpeg_dir: str = os.environ.get("MEDIATOOL_FFMPEG_DIR", "")
        self._language: str = os.environ.get("MEDIATOOL_LANGUAGE", "eng")
        self._probe_timeout: float = float(os.environ.get("MEDIATOOL_PROBE_TIMEOUT", "10"))
        self._subtitle_timeout: float = float(os.environ.get("MEDIATOOL_SUBTITLE_TIMEOUT", "120"))
        self._remux_timeout: float = float(os.environ.get("MEDIATOOL_REMUX_TIMEOUT", "40"))
        self._headroom_mb: int = int(os.environ.get("MEDIATOOL_HEADROOM_MB", "64"))
        self._archive_multiplier: int = int(os.environ.get("MEDIATOOL_ARCHIVE_MULTIPLIER", "2"))
        self._version_url: str = os.environ.get("MEDIATOOL_VERSION_URL", DEFAULT_VERSION_URL)
        self._download_url: str = os.environ.get("MEDIATOOL_DOWNLOAD_URL", DEFAULT_DOWNLOAD_URL)

    # --- Getters ---

    @property
    def ffmpeg_dir(self) -> str:
        with self._lock:
            return self._ffmpeg_dir

    @property
    def language(self) -> str:
        with self._lock:
            return self._language

    @property
    def probe_timeout(self) -> float:
        with self._lock:
            return self._probe_timeout

    @property
    def subtitle_timeout(self) -> float:
        with self._lock:
            return self._subtitle_timeout

    @property
    def remux_timeout(self) -> float:
        with self._lock:
            return self._remux_timeout

    @property
    def headroom_bytes(self) -> int:
        with self._lock:
            return self._headroom_mb * 1024 * 1024

    @property
    def archive_multiplier(self) -> int:
        with self._lock:
            return self._archive_multiplier

    @property
    def version_url(self) -> str:
        with self._lock:
            return self._version_url

    @property
    def download_url(self) -> str:
        with self._lock:
            return self._download_url

    def tool_path(self, name: str) -> str:
        """Executable for ffmpeg/ffprobe: <ffmpeg_dir>/bin/<name>, else PATH lookup."""
        with self._lock:
            if not self._ffmpeg_dir:
                return name
            return str(Path(self._ffmpeg_dir) / "bin" / name)

    # --- Setters (for overrides from the command line) ---

    def update(self, data: dict) -> None:
        with self._lock:
            if "ffmpeg_dir" in data:
                self._ffmpeg_dir = str(data["ffmpeg_dir"])
            if "language" in data:
                self._language = str(data["language"])
            if "probe_timeout" in data:
                self._probe_timeout = float(data["probe_timeout"])
            if "subtitle_timeout" in data:
                self._subtitle_timeout = float(data["subtitle_timeout"])
            if "remux_timeout" in data:
                self._remux_timeout = float(data["remux_timeout"])
            if "headroom_mb" in data:
                self._headroom_mb = int(data["headroom_mb"])
            if "archive_multiplier" in data:
                self._archive_multiplier = int(data["archive_multiplier"])
            if "version_url" in data:
                self._version_url = str(data["version_url"])
            if "download_url" in data:
                self._download_url = str(data["download_url"])

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "ffmpeg_dir": self._ffmpeg_dir,
                "language": self._language,
                "probe_timeout": self._probe_timeout,
                "subtitle_timeout": self._subtitle_timeout,
                "remux_timeout": self._remux_timeout,
                "headroom_mb": self._headroom_mb,
                "archive_multiplier": self._archive_multiplier,
                "version_url": self._version_url,
                "download_url": self._download_url,
            }


# Singleton used across all modules
cfg = Config()
