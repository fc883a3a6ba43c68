"""Tests for config.py."""

from pathlib import Path

from mediatool.config import Config


def test_config_initialization(monkeypatch):
    monkeypatch.setenv("MEDIATOOL_REMUX_TIMEOUT", "90")
    monkeypatch.delenv("MEDIATOOL_LANGUAGE", raising=False)
    cfg = Config()
    assert cfg.remux_timeout == 90.0
    assert cfg.language == "eng"  # Should default if missing
    assert cfg.probe_timeout == 10.0


def test_config_headroom_in_bytes(monkeypatch):
    monkeypatch.setenv("MEDIATOOL_HEADROOM_MB", "64")
    assert Config().headroom_bytes == 64 * 1024 * 1024


def test_config_update():
    cfg = Config()
    cfg.update({"language": "ger", "archive_multiplier": 3})
    assert cfg.language == "ger"
    assert cfg.archive_multiplier == 3


def test_tool_path(monkeypatch):
    monkeypatch.delenv("MEDIATOOL_FFMPEG_DIR", raising=False)
    cfg = Config()
    assert cfg.tool_path("ffprobe") == "ffprobe"
    cfg.update({"ffmpeg_dir": "/opt/ffmpeg"})
    assert cfg.tool_path("ffprobe") == str(Path("/opt/ffmpeg") / "bin" / "ffprobe")


def test_config_to_dict():
    d = Config().to_dict()
    assert "ffmpeg_dir" in d
    assert "subtitle_timeout" in d
    assert "headroom_mb" in d
    assert "{version}" in d["download_url"]
