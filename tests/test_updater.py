"""Tests for updater.py — version checks, simulation and the install swap."""

import asyncio
import io
import os
import stat
import sys
import tempfile
import zipfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests

from mediatool.errors import UpdateError
from mediatool.updater import Updater, parse_local_version, parse_remote_version


def _install(root):
    ffmpeg_dir = Path(root) / "ffmpeg"
    (ffmpeg_dir / "bin").mkdir(parents=True)
    (ffmpeg_dir / "bin" / "ffmpeg").write_bytes(b"old build")
    return ffmpeg_dir


def _session_with_version(text):
    session = MagicMock()
    session.get.return_value.text = text
    return session


def test_missing_install_dir_raises():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(UpdateError):
            Updater(Path(tmp) / "nope", session=MagicMock())


def test_parse_versions():
    assert parse_local_version("ffmpeg version 7.1-full_build-www.gyan.dev Copyright (c)") == "7.1"
    assert parse_local_version("ffmpeg version n6.0 Copyright") == "6.0"
    assert parse_local_version("garbage") == ""
    assert parse_remote_version("7.1\n") == "7.1"
    assert parse_remote_version("<html></html>") == ""


def test_fetch_latest_version():
    with tempfile.TemporaryDirectory() as tmp:
        updater = Updater(_install(tmp), session=_session_with_version("7.1\r\n"))
        assert updater.fetch_latest_version() == "7.1"


def test_fetch_latest_version_network_error():
    with tempfile.TemporaryDirectory() as tmp:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("offline")
        updater = Updater(_install(tmp), session=session)
        assert updater.fetch_latest_version() == ""


def _updater(tmp, local, latest, simulate=False):
    updater = Updater(_install(tmp), simulate=simulate, session=_session_with_version(latest))
    updater.local_version = AsyncMock(return_value=local)
    updater.install = MagicMock()
    return updater


def test_update_up_to_date():
    with tempfile.TemporaryDirectory() as tmp:
        updater = _updater(tmp, "7.1", "7.1")
        assert asyncio.run(updater.update()) is False
        updater.install.assert_not_called()


def test_update_simulation_only_reports():
    with tempfile.TemporaryDirectory() as tmp:
        updater = _updater(tmp, "7.0", "7.1", simulate=True)
        assert asyncio.run(updater.update()) is False
        updater.install.assert_not_called()


def test_update_rejects_implausible_versions():
    with tempfile.TemporaryDirectory() as tmp:
        updater = _updater(tmp, "", "7.1")
        assert asyncio.run(updater.update()) is False
        updater = _updater(tmp + "/again", "7.0", "1." * 15)
        assert asyncio.run(updater.update()) is False
        updater.install.assert_not_called()


def test_update_installs_newer_version():
    with tempfile.TemporaryDirectory() as tmp:
        updater = _updater(tmp, "7.0", "7.1")
        assert asyncio.run(updater.update()) is True
        updater.install.assert_called_once_with("7.0", "7.1")


def _release_zip():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("ffmpeg-7.1-full_build-shared/bin/ffmpeg", b"new build")
    return buf.getvalue()


def test_install_swaps_directories():
    with tempfile.TemporaryDirectory() as tmp:
        ffmpeg_dir = _install(tmp)
        response = MagicMock()
        response.__enter__.return_value = response
        response.iter_content.return_value = [_release_zip()]
        session = MagicMock()
        session.get.return_value = response
        trash = MagicMock()

        Updater(ffmpeg_dir, session=session, trash=trash).install("7.0", "7.1")

        assert (ffmpeg_dir / "bin" / "ffmpeg").read_bytes() == b"new build"
        trashed = [c.args[0].name for c in trash.call_args_list]
        assert trashed == ["ffmpeg.7.0", "ffmpeg-7.1-full_build-shared.zip"]
        assert session.get.call_args.kwargs["stream"] is True


def test_install_restores_backup_when_download_fails():
    with tempfile.TemporaryDirectory() as tmp:
        ffmpeg_dir = _install(tmp)
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("offline")

        with pytest.raises(UpdateError):
            Updater(ffmpeg_dir, session=session, trash=MagicMock()).install("7.0", "7.1")

        assert (ffmpeg_dir / "bin" / "ffmpeg").read_bytes() == b"old build"
        assert not (Path(tmp) / "ffmpeg.7.0").exists()


def _session_serving(payload):
    response = MagicMock()
    response.__enter__.return_value = response
    response.iter_content.return_value = [payload]
    session = MagicMock()
    session.get.return_value = response
    return session


def test_install_restores_backup_when_archive_is_corrupt():
    with tempfile.TemporaryDirectory() as tmp:
        ffmpeg_dir = _install(tmp)
        trash = MagicMock()
        updater = Updater(ffmpeg_dir, session=_session_serving(b"not a zip"), trash=trash)

        with pytest.raises(UpdateError):
            updater.install("7.0", "7.1")

        assert (ffmpeg_dir / "bin" / "ffmpeg").read_bytes() == b"old build"
        assert not (Path(tmp) / "ffmpeg.7.0").exists()
        trashed = [c.args[0].name for c in trash.call_args_list]
        assert trashed == ["ffmpeg-7.1-full_build-shared.zip"]


def test_install_restores_backup_on_unexpected_layout():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("build-a/bin/ffmpeg", b"new build")
        zf.writestr("build-b/bin/ffmpeg", b"new build")

    with tempfile.TemporaryDirectory() as tmp:
        ffmpeg_dir = _install(tmp)
        updater = Updater(ffmpeg_dir, session=_session_serving(buf.getvalue()), trash=MagicMock())

        with pytest.raises(UpdateError, match="unexpected layout"):
            updater.install("7.0", "7.1")

        assert (ffmpeg_dir / "bin" / "ffmpeg").read_bytes() == b"old build"
        leftovers = {p.name for p in Path(tmp).iterdir()}
        assert leftovers == {"ffmpeg", "ffmpeg-7.1-full_build-shared.zip"}


@pytest.mark.skipif(sys.platform == "win32", reason="needs a shell script as fake ffmpeg")
def test_local_version_runs_ffmpeg():
    with tempfile.TemporaryDirectory() as tmp:
        ffmpeg_dir = _install(tmp)
        binary = ffmpeg_dir / "bin" / "ffmpeg"
        binary.write_text("#!/bin/sh\necho 'ffmpeg version 6.1.1 Copyright (c) 2000-2023'\n")
        os.chmod(binary, os.stat(binary).st_mode | stat.S_IEXEC)

        updater = Updater(ffmpeg_dir, session=MagicMock())
        assert asyncio.run(updater.local_version()) == "6.1.1"


def test_local_version_missing_binary():
    with tempfile.TemporaryDirectory() as tmp:
        ffmpeg_dir = Path(tmp) / "ffmpeg"
        ffmpeg_dir.mkdir()
        updater = Updater(ffmpeg_dir, session=MagicMock())
        assert asyncio.run(updater.local_version()) == ""
