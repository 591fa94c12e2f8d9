"""SubRip-style subtitle codec with speaker-tagged bodies.

WHY: Subtitle files are the main way timed transcripts move between
this tool and video editors. The body carries the speaker as a
``[label]`` prefix so a transcript survives a round trip with speakers
intact.

HOW: Encoding emits, per segment, a 1-based index line, an
``HH:MM:SS,mmm --> HH:MM:SS,mmm`` line, and a ``[speaker] text`` line,
with blank lines between blocks. Decoding splits on blank lines, finds
the timestamp line in each block, and treats every other non-index line
as the body.

RULES:
- Milliseconds are rounded, so any finite non-negative time round-trips
  to millisecond precision
- Hours widen past two digits for recordings of 100 hours or more
- Bodies are written without blank lines or edge whitespace, and ``]``
  in a speaker label is escaped, so every block decodes back whole
- Decoding accepts ``,`` or ``.`` before the milliseconds
- Blocks without a valid timestamp line are dropped silently
- Decoded ids run 1..N in block order
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from transcript_refiner.core.ir import Segment
from transcript_refiner.formatters.base import (
    BaseFormatter,
    FormatterOutput,
    normalize_segments,
    speaker_line,
    split_blocks,
    split_speaker_body,
)

_TIMESTAMP_LINE_RE = re.compile(
    r"^\s*(\d+):(\d{1,2}):(\d{1,2})[,.](\d{1,3})\s*-->\s*(\d+):(\d{1,2}):(\d{1,2})[,.](\d{1,3})"
)


def format_timestamp(seconds: float) -> str:
    """Format float seconds as ``HH:MM:SS,mmm``."""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)


def _to_seconds(hours: str, minutes: str, secs: str, millis: str) -> float:
    total_ms = (
        int(hours) * 3_600_000
        + int(minutes) * 60_000
        + int(secs) * 1000
        + int(millis.ljust(3, "0"))
    )
    return total_ms / 1000


def parse_timestamp_line(line: str) -> Optional[Tuple[float, float]]:
    """Return (start, end) seconds for a timestamp line, else None."""
    match = _TIMESTAMP_LINE_RE.match(line)
    if not match:
        return None
    groups = match.groups()
    return _to_seconds(*groups[:4]), _to_seconds(*groups[4:])


def encode_subtitle(segments: List[Segment]) -> str:
    blocks = []
    for position, segment in enumerate(segments, start=1):
        blocks.append("{}\n{} --> {}\n{}".format(
            position,
            format_timestamp(segment.start),
            format_timestamp(segment.end),
            speaker_line(segment),
        ))
    return "\n\n".join(blocks) + "\n" if blocks else ""


def decode_subtitle(content: str) -> List[Segment]:
    segments: List[Segment] = []
    for lines in split_blocks(content):
        times = None
        body_lines: List[str] = []
        for line in lines:
            if times is None:
                times = parse_timestamp_line(line)
                if times is not None or line.strip().isdigit():
                    continue
            body_lines.append(line)
        if times is None:
            continue
        speaker, text = split_speaker_body("\n".join(body_lines))
        segments.append(Segment(
            id=len(segments) + 1,
            speaker=speaker,
            start=times[0],
            end=times[1],
            text=text,
        ))
    return normalize_segments(segments)


class SubtitleFormatter(BaseFormatter):
    """Formatter for ``[speaker] text`` subtitle files (.srt)."""

    @property
    def name(self) -> str:
        return "Subtitles (SRT)"

    def format(self, segments: List[Segment]) -> List[FormatterOutput]:
        return [
            FormatterOutput(
                suffix=".srt",
                content=encode_subtitle(segments),
                media_type="application/x-subrip",
            )
        ]

    def parse(self, content: str) -> List[Segment]:
        return decode_subtitle(content)
