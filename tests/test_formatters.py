"""Tests for the subtitle and plain-text codecs and the formatter registry.

WHY: Import and export are the only way transcripts enter and leave the
tool. Timestamps must survive a round trip to the millisecond, speakers
must survive in the ``[label]`` prefix, and odd input must degrade to
fewer segments rather than errors.

HOW: Tests are organized by concern:
  - TestTimestamps: HH:MM:SS,mmm formatting and parsing
  - TestSubtitleEncode / TestSubtitleDecode: the .srt codec
  - TestPlainText: the .txt codec
  - TestNormalize: normalize_segments defaults and clamping
  - TestRegistry: FORMATTERS and extension lookup
"""

from __future__ import annotations

import math

import pytest

from transcript_refiner.config import DEFAULT_SPEAKER
from transcript_refiner.core.ir import Segment
from transcript_refiner.formatters import (
    FORMATTERS,
    decode_plain_text,
    decode_subtitle,
    encode_plain_text,
    encode_subtitle,
    format_for_path,
    normalize_segments,
)
from transcript_refiner.formatters.base import BaseFormatter, split_speaker_body
from transcript_refiner.formatters.plain_text import PlainTextFormatter
from transcript_refiner.formatters.subtitle import (
    SubtitleFormatter,
    format_timestamp,
    parse_timestamp_line,
)


# ---------------------------------------------------------------------------
# TestTimestamps
# ---------------------------------------------------------------------------


class TestTimestamps:
    """format_timestamp() and parse_timestamp_line()."""

    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00:00,000"),
        (0.1, "00:00:00,100"),
        (2.5, "00:00:02,500"),
        (3661.5, "01:01:01,500"),
        (59.9996, "00:01:00,000"),
        (360000, "100:00:00,000"),
    ])
    def test_format(self, seconds, expected):
        assert format_timestamp(seconds) == expected

    def test_negative_time_clamps_to_zero(self):
        assert format_timestamp(-1.0) == "00:00:00,000"

    def test_parse_comma_separator(self):
        assert parse_timestamp_line("00:00:01,250 --> 00:00:03,000") == (1.25, 3.0)

    def test_parse_period_separator(self):
        assert parse_timestamp_line("00:01:00.500 --> 00:01:02.000") == (60.5, 62.0)

    def test_parse_wide_hours(self):
        assert parse_timestamp_line("100:00:00,000 --> 100:00:01,000") == (360000.0, 360001.0)

    def test_parse_rejects_non_timestamp(self):
        assert parse_timestamp_line("[A] hello") is None


# ---------------------------------------------------------------------------
# TestSubtitleEncode
# ---------------------------------------------------------------------------


class TestSubtitleEncode:
    """encode_subtitle() writes numbered, timed, speaker-tagged blocks."""

    def test_matches_expected_text(self, sample_segments, sample_subtitle):
        assert encode_subtitle(sample_segments) == sample_subtitle

    def test_numbering_follows_position_not_id(self):
        segments = [
            Segment(id=9, speaker="A", start=0.0, end=1.0, text="x"),
            Segment(id=4, speaker="B", start=1.0, end=2.0, text="y"),
        ]
        lines = encode_subtitle(segments).split("\n")
        assert lines[0] == "1"
        assert lines[4] == "2"

    def test_empty_transcript(self):
        assert encode_subtitle([]) == ""


# ---------------------------------------------------------------------------
# TestSubtitleDecode
# ---------------------------------------------------------------------------


class TestSubtitleDecode:
    """decode_subtitle() reads blocks leniently."""

    def test_decodes_sample(self, sample_subtitle, sample_segments):
        assert decode_subtitle(sample_subtitle) == sample_segments

    def test_round_trip_to_the_millisecond(self):
        segments = [
            Segment(id=1, speaker="A", start=0.001, end=0.999, text="one"),
            Segment(id=2, speaker="講者 B", start=123.456, end=130.0, text="二"),
            Segment(id=3, speaker="A", start=360123.789, end=360124.5, text="late"),
        ]
        decoded = decode_subtitle(encode_subtitle(segments))
        assert [(s.speaker, s.text) for s in decoded] == [(s.speaker, s.text) for s in segments]
        for original, result in zip(segments, decoded):
            assert round(result.start * 1000) == round(original.start * 1000)
            assert round(result.end * 1000) == round(original.end * 1000)

    @pytest.mark.parametrize("speaker,text,expected_text", [
        ("A", "para one\n\npara two", "para one\npara two"),
        ("A", "line\n   \nnext  ", "line\nnext"),
        ("Dr]X", " hi", "hi"),
        ("a\\b", "x", "x"),
        ("[A]", "[laughs] ok", "[laughs] ok"),
        ("D", "see\n1\n00:00:01,000 --> 00:00:02,000", "see\n1\n00:00:01,000 --> 00:00:02,000"),
        ("E", " \n\n ", ""),
    ])
    def test_round_trip_keeps_every_segment(self, speaker, text, expected_text):
        segments = [
            Segment(id=1, speaker=speaker, start=0.0, end=1.0, text=text),
            Segment(id=2, speaker="Z", start=1.0, end=2.0, text="after"),
        ]
        decoded = decode_subtitle(encode_subtitle(segments))
        assert [(s.speaker, s.text) for s in decoded] == [(speaker, expected_text), ("Z", "after")]
        assert [(s.start, s.end) for s in decoded] == [(0.0, 1.0), (1.0, 2.0)]

    def test_bracket_in_speaker_is_escaped(self):
        segment = Segment(id=1, speaker="Dr]X", start=0.0, end=1.0, text="hi")
        assert encode_subtitle([segment]).split("\n")[2] == "[Dr\\]X] hi"

    def test_crlf_and_bom(self, sample_subtitle, sample_segments):
        content = "\ufeff" + sample_subtitle.replace("\n", "\r\n")
        assert decode_subtitle(content) == sample_segments

    def test_block_without_timestamp_is_dropped(self):
        content = (
            "1\n00:00:00,000 --> 00:00:01,000\n[A] kept\n\n"
            "2\nnot a timestamp\n[B] dropped\n\n"
            "3\n00:00:02,000 --> 00:00:03,000\n[A] also kept\n"
        )
        decoded = decode_subtitle(content)
        assert [s.text for s in decoded] == ["kept", "also kept"]
        assert [s.id for s in decoded] == [1, 2]

    def test_body_without_label_uses_default_speaker(self):
        decoded = decode_subtitle("1\n00:00:00,000 --> 00:00:01,000\nno label here\n")
        assert decoded[0].speaker == DEFAULT_SPEAKER
        assert decoded[0].text == "no label here"

    def test_multi_line_body(self):
        decoded = decode_subtitle("1\n00:00:00,000 --> 00:00:01,000\n[A] first\nsecond\n")
        assert decoded[0].text == "first\nsecond"

    def test_missing_index_line(self):
        decoded = decode_subtitle("00:00:04,000 --> 00:00:05,000\n[A] hi\n")
        assert decoded == [Segment(id=1, speaker="A", start=4.0, end=5.0, text="hi")]

    @pytest.mark.parametrize("content", ["", "\n\n  \n", "\ufeff\r\n"])
    def test_blank_input_yields_nothing(self, content):
        assert decode_subtitle(content) == []


# ---------------------------------------------------------------------------
# TestPlainText
# ---------------------------------------------------------------------------


class TestPlainText:
    """Plain-text paragraphs: [speaker] text, blank-line separated."""

    def test_encode(self, sample_segments, sample_plain_text):
        assert encode_plain_text(sample_segments) == sample_plain_text

    def test_decode_synthesizes_times(self, sample_plain_text):
        decoded = decode_plain_text(sample_plain_text)
        assert [(s.start, s.end) for s in decoded] == [(0.0, 1.0), (1.0, 2.0), (2.0, 3.0)]
        assert [s.speaker for s in decoded] == ["講者 A", "講者 B", "講者 A"]
        assert [s.id for s in decoded] == [1, 2, 3]

    def test_round_trip_keeps_speakers_and_text(self, sample_segments):
        decoded = decode_plain_text(encode_plain_text(sample_segments))
        assert [(s.speaker, s.text) for s in decoded] == [
            (s.speaker, s.text) for s in sample_segments
        ]

    def test_round_trip_keeps_paragraphs_with_blank_lines(self):
        segments = [
            Segment(id=1, speaker="Dr]X", start=0.0, end=1.0, text="para one\n\npara two"),
            Segment(id=2, speaker="B", start=1.0, end=2.0, text="end"),
        ]
        decoded = decode_plain_text(encode_plain_text(segments))
        assert [(s.speaker, s.text) for s in decoded] == [
            ("Dr]X", "para one\npara two"),
            ("B", "end"),
        ]

    def test_unlabelled_paragraph(self):
        decoded = decode_plain_text("just words\n\n[B] tagged")
        assert decoded[0].speaker == DEFAULT_SPEAKER
        assert decoded[1].speaker == "B"

    def test_blank_input_yields_nothing(self):
        assert decode_plain_text("\n \n\t\n") == []

    def test_split_speaker_body_ignores_empty_label(self):
        assert split_speaker_body("[ ] text") == (DEFAULT_SPEAKER, "[ ] text")


# ---------------------------------------------------------------------------
# TestNormalize
# ---------------------------------------------------------------------------


class TestNormalize:
    """normalize_segments() repairs loosely shaped entries."""

    def test_renumbers_ids(self):
        segments = [
            Segment(id=7, speaker="A", start=0.0, end=1.0, text="a"),
            Segment(id=7, speaker="B", start=1.0, end=2.0, text="b"),
        ]
        assert [s.id for s in normalize_segments(segments)] == [1, 2]

    def test_mapping_records_with_aliases(self):
        result = normalize_segments([{"speaker_label": "C", "start_time": 3, "end_time": 4, "content": "z"}])
        assert result == [Segment(id=1, speaker="C", start=3.0, end=4.0, text="z")]

    def test_missing_and_invalid_times(self):
        result = normalize_segments([
            {"speaker": "A", "text": "x"},
            {"speaker": "A", "text": "y", "start": math.nan, "end": "soon"},
        ])
        assert [(s.start, s.end) for s in result] == [(0.0, 1.0), (1.0, 2.0)]

    def test_end_before_start_is_clamped(self):
        result = normalize_segments([{"speaker": "A", "text": "x", "start": 5, "end": 2}])
        assert result[0].start == 5.0
        assert result[0].end == 5.0

    def test_missing_speaker_and_text(self):
        result = normalize_segments([{"speaker": "  ", "start": 0, "end": 1}])
        assert result[0].speaker == DEFAULT_SPEAKER
        assert result[0].text == ""

    def test_does_not_mutate_input(self):
        segment = Segment(id=5, speaker="A", start=2.0, end=1.0, text="x")
        normalize_segments([segment])
        assert segment.id == 5
        assert segment.end == 1.0


# ---------------------------------------------------------------------------
# TestRegistry
# ---------------------------------------------------------------------------


class TestRegistry:
    """FORMATTERS and format_for_path()."""

    def test_registered_formats(self):
        assert FORMATTERS == {"subtitle": SubtitleFormatter, "plain_text": PlainTextFormatter}

    def test_all_formatters_subclass_base(self):
        for formatter_cls in FORMATTERS.values():
            assert issubclass(formatter_cls, BaseFormatter)

    def test_formatter_outputs(self, sample_segments):
        srt = SubtitleFormatter().format(sample_segments)[0]
        txt = PlainTextFormatter().format(sample_segments)[0]
        assert (srt.suffix, srt.media_type) == (".srt", "application/x-subrip")
        assert (txt.suffix, txt.media_type) == (".txt", "text/plain")

    def test_parse_delegates_to_codec(self, sample_subtitle, sample_segments):
        assert SubtitleFormatter().parse(sample_subtitle) == sample_segments

    @pytest.mark.parametrize("path,expected", [
        ("talk.srt", "subtitle"),
        ("TALK.SRT", "subtitle"),
        ("notes.txt", "plain_text"),
        ("movie.mp4", None),
        ("noext", None),
    ])
    def test_format_for_path(self, path, expected):
        assert format_for_path(path) == expected
