"""Plain text transcript codec with speaker-tagged paragraphs.

WHY: Editors need a simple, readable transcript for review and quick
fixes in any text editor. No timecodes, just ``[speaker] text``
paragraphs that can be imported back afterwards.

HOW: Encoding writes one ``[speaker] text`` paragraph per segment,
separated by blank lines. Decoding maps each blank-line-delimited
block to one segment, reading the speaker exactly as the subtitle
codec does.

RULES:
- One paragraph per segment, no timestamps
- Decoded start/end are synthesized as block index and index + 1
- Output suffix: ".txt", media type "text/plain"
"""

from __future__ import annotations

from typing import List

from transcript_refiner.core.ir import Segment
from transcript_refiner.formatters.base import (
    BaseFormatter,
    FormatterOutput,
    normalize_segments,
    speaker_line,
    split_blocks,
    split_speaker_body,
)


def encode_plain_text(segments: List[Segment]) -> str:
    return "\n\n".join(speaker_line(segment) for segment in segments)


def decode_plain_text(content: str) -> List[Segment]:
    segments: List[Segment] = []
    for index, lines in enumerate(split_blocks(content)):
        speaker, text = split_speaker_body("\n".join(lines))
        segments.append(Segment(
            id=index + 1,
            speaker=speaker,
            start=float(index),
            end=float(index + 1),
            text=text,
        ))
    return normalize_segments(segments)


class PlainTextFormatter(BaseFormatter):
    """Formatter for blank-line-delimited ``[speaker] text`` paragraphs."""

    @property
    def name(self) -> str:
        return "Plain Text"

    def format(self, segments: List[Segment]) -> List[FormatterOutput]:
        return [
            FormatterOutput(
                suffix=".txt",
                content=encode_plain_text(segments),
                media_type="text/plain",
            )
        ]

    def parse(self, content: str) -> List[Segment]:
        return decode_plain_text(content)
