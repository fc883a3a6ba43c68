"""Tests for streams.py — probe parsing and audio/subtitle selection."""

import logging
import random

import pytest

from mediatool.errors import ProbeMetadataError, UnknownStreamTypeError
from mediatool.models import Ripper
from mediatool.streams import StreamInfo, parse_streams, select_streams


def _stream(index, codec_type, codec_name, language=None):
    raw = {"index": index, "codec_type": codec_type, "codec_name": codec_name}
    if language is not None:
        raw["tags"] = {"language": language}
    return raw


def _select(raw_streams, **kwargs):
    return select_streams(parse_streams({"streams": raw_streams}), **kwargs)


# ── parse_streams ───────────────────────────────────────────────────────────

def test_parse_streams_sorted_by_index():
    streams = parse_streams({"streams": [_stream(2, "audio", "aac"), _stream(0, "video", "h264")]})
    assert [s.index for s in streams] == [0, 2]


def test_parse_streams_without_streams_raises():
    with pytest.raises(ProbeMetadataError):
        parse_streams({"format": {}})
    with pytest.raises(ProbeMetadataError):
        parse_streams({"streams": []})


def test_stream_without_index_raises():
    with pytest.raises(ProbeMetadataError):
        StreamInfo.from_probe({"codec_type": "audio"})


def test_language_tag_is_case_insensitive():
    stream = StreamInfo.from_probe({"index": 1, "codec_type": "audio", "tags": {"LANGUAGE": "ENG"}})
    assert stream.language == "eng"


# ── select_streams ──────────────────────────────────────────────────────────

def test_prefers_language_match():
    selection = _select([
        _stream(0, "audio", "aac", "eng"),
        _stream(1, "subtitle", "subrip", "eng"),
        _stream(2, "audio", "aac", "und"),
    ])
    assert selection.audio.index == 0
    assert selection.subtitle.index == 1
    assert selection.can_change_container


def test_two_untagged_audio_tracks_are_unsafe():
    selection = _select([
        _stream(0, "audio", "ac3", "und"),
        _stream(1, "audio", "aac", "und"),
    ])
    assert selection.audio.index == 0
    assert selection.audio_count == 2
    assert not selection.can_change_container


def test_selection_does_not_depend_on_input_order():
    raw = [
        _stream(0, "video", "h264"),
        _stream(1, "audio", "aac", "ger"),
        _stream(2, "audio", "ac3", "eng"),
        _stream(3, "subtitle", "subrip", "ger"),
        _stream(4, "subtitle", "subrip", "eng"),
    ]
    expected = _select(raw)
    shuffled = list(raw)
    random.Random(7).shuffle(shuffled)
    assert _select(shuffled) == expected
    assert expected.audio.index == 2
    assert expected.subtitle.index == 4


def test_fallback_to_first_qualifying_stream():
    selection = _select([
        _stream(0, "video", "h264"),
        _stream(1, "audio", "aac", "ger"),
        _stream(2, "subtitle", "subrip", "ger"),
        _stream(3, "subtitle", "subrip", "fre"),
    ])
    assert selection.audio.index == 1
    assert selection.subtitle.index == 2
    assert selection.can_change_container


def test_unsupported_codecs_do_not_qualify():
    selection = _select([
        _stream(0, "audio", "truehd", "eng"),
        _stream(1, "audio", "aac", "ger"),
    ])
    assert selection.audio.index == 1
    assert selection.audio_count == 1


def test_image_subtitles_disable_container_change():
    selection = _select([
        _stream(0, "video", "h264"),
        _stream(1, "audio", "aac", "eng"),
        _stream(2, "subtitle", "hdmv_pgs_subtitle", "eng"),
    ])
    assert selection.subtitle is None
    assert not selection.can_change_container


def test_data_stream_is_ignored(caplog):
    with caplog.at_level(logging.WARNING):
        selection = _select([
            _stream(0, "video", "h264"),
            _stream(1, "audio", "aac", "eng"),
            _stream(2, "data", "bin_data"),
        ])
    assert selection.audio.index == 1
    assert "data stream" in caplog.text


def test_unknown_codec_type_raises():
    with pytest.raises(UnknownStreamTypeError):
        _select([_stream(0, "video", "h264"), _stream(1, "attachment", "ttf")])


# ── ripper overrides ────────────────────────────────────────────────────────

def test_psa_skips_styled_subtitles():
    raw = [
        _stream(0, "video", "hevc"),
        _stream(1, "audio", "aac", "eng"),
        _stream(2, "subtitle", "ass", "eng"),
        _stream(3, "subtitle", "subrip", "eng"),
    ]
    assert _select(raw).subtitle.index == 2
    assert _select(raw, ripper=Ripper.PSA).subtitle.index == 3


def test_het_adopts_untagged_tracks():
    raw = [
        _stream(0, "video", "hevc"),
        _stream(1, "audio", "aac", "und"),
        _stream(2, "audio", "ac3"),
    ]
    generic = _select(raw)
    assert not generic.can_change_container

    het = _select(raw, ripper=Ripper.HET)
    assert het.audio.index == 1
    assert het.can_change_container


def test_preferred_language_is_configurable():
    selection = _select([
        _stream(0, "audio", "aac", "eng"),
        _stream(1, "audio", "aac", "ger"),
    ], language="GER")
    assert selection.audio.index == 1


def test_unsupported_audio_only_disables_container_change():
    selection = _select([
        _stream(0, "video", "h264"),
        _stream(1, "audio", "truehd", "eng"),
    ])
    assert selection.audio is None
    assert not selection.can_change_container


def test_video_only_file_can_change_container():
    selection = _select([_stream(0, "video", "h264")])
    assert selection.audio is None
    assert selection.can_change_container
