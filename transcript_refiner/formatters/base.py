"""Abstract base formatter, output container, and shared codec helpers.

WHY: Every interchange format reads and writes the same segment list.
This base class enforces a consistent interface so the session, CLI,
and API layers can import and export any registered format generically.

HOW: BaseFormatter is an ABC with a ``name`` property, a ``format()``
method (segments → files) and a ``parse()`` method (text → segments).
FormatterOutput bundles a file suffix with its content and MIME type.
The block/body helpers and ``normalize_segments`` are shared by the
text codecs.

RULES:
- Subclasses MUST implement ``name``, ``format()`` and ``parse()``
- ``suffix`` starts with a hyphen or dot, e.g. ``".srt"``
- ``parse()`` never raises on odd input; unusable blocks are dropped
- Imported segments always pass through ``normalize_segments``
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Tuple, Union

from transcript_refiner.config import DEFAULT_SPEAKER
from transcript_refiner.core.ir import Segment
from transcript_refiner.core.parser import record_value, to_float


class EmptyImportError(ValueError):
    """Raised when imported content yields no segments."""


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the source stem, e.g. ``".srt"``.
        content: The file content.
        media_type: MIME type for the content, e.g. ``"text/plain"``.
    """

    suffix: str
    content: str
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for all interchange formats.

    To add a new format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement name, format() and parse()
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'Subtitles (SRT)'."""

    @abstractmethod
    def format(self, segments: List[Segment]) -> List[FormatterOutput]:
        """Convert a transcript into one or more output files."""

    @abstractmethod
    def parse(self, content: str) -> List[Segment]:
        """Convert file content into a normalized transcript."""


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

_BLANK_LINE_RE = re.compile(r"\n[ \t]*\n")
_SPEAKER_BODY_RE = re.compile(r"^\[((?:[^\]\\\n]|\\.)+)\][ \t]?(.*)$", re.DOTALL)
_SPEAKER_ESCAPE_RE = re.compile(r"([\\\]])")
_SPEAKER_UNESCAPE_RE = re.compile(r"\\(.)")


def _lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def split_blocks(content: str) -> List[List[str]]:
    """Split text into blank-line-delimited blocks of non-empty lines."""
    text = "\n".join(_lines(content.lstrip("\ufeff")))
    blocks = []
    for chunk in _BLANK_LINE_RE.split(text):
        lines = [line.rstrip() for line in chunk.split("\n") if line.strip()]
        if lines:
            blocks.append(lines)
    return blocks


def split_speaker_body(body: str) -> Tuple[str, str]:
    """Split ``[label] rest`` into (label, rest); otherwise default speaker.

    ``\\]`` and ``\\\\`` inside the label stand for a literal ``]`` and
    backslash, as written by speaker_line().
    """
    match = _SPEAKER_BODY_RE.match(body.strip())
    if match:
        label = _SPEAKER_UNESCAPE_RE.sub(r"\1", match.group(1)).strip()
        if label:
            return label, match.group(2).strip()
    return DEFAULT_SPEAKER, body.strip()


def body_text(text: str) -> str:
    """Text as it can be written inside one blank-line-delimited block.

    Edge whitespace is dropped and blank lines are removed, so a decoder
    that splits on blank lines reads the whole text back as one body.
    """
    lines = (line.rstrip() for line in _lines(text.strip()))
    return "\n".join(line for line in lines if line.strip())


def speaker_line(segment: Segment) -> str:
    label = " ".join(_lines(segment.speaker))
    return "[{}] {}".format(_SPEAKER_ESCAPE_RE.sub(r"\\\1", label), body_text(segment.text))


def normalize_segments(segments: Iterable[Union[Segment, Any]]) -> List[Segment]:
    """Bring imported segments into a consistent, invariant-respecting shape.

    WHY: Imports and third-party records may carry gaps: missing
    speakers, non-numeric times, duplicate ids. Downstream batching and
    versioning assume unique ids and finite, ordered times.

    HOW: Reads each entry as a Segment or as a mapping (through the
    parser's field-alias table) and rebuilds it.

    RULES:
    - ids are reassigned 1..N in list order
    - missing or non-finite start/end default to index / index + 1
    - end earlier than start is raised to start
    - missing speaker becomes DEFAULT_SPEAKER, missing text ""
    """
    normalized: List[Segment] = []
    for index, entry in enumerate(segments):
        if isinstance(entry, Segment):
            speaker, text = entry.speaker, entry.text
            start, end = to_float(entry.start), to_float(entry.end)
        else:
            speaker = record_value(entry, "speaker")
            text = record_value(entry, "text")
            start = to_float(record_value(entry, "start"))
            end = to_float(record_value(entry, "end"))

        if start is None or start < 0:
            start = float(index)
        if end is None or end < 0:
            end = float(index + 1)
        if end < start:
            end = start

        normalized.append(Segment(
            id=index + 1,
            speaker=str(speaker).strip() if speaker is not None and str(speaker).strip() else DEFAULT_SPEAKER,
            start=start,
            end=end,
            text=str(text) if text is not None else "",
        ))
    return normalized
