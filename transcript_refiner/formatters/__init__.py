"""Interchange format registry: subtitle and plain-text codecs.

WHY: The session, CLI, and API layers need a single lookup to find the
right codec by name for both import and export. A central dict makes it
trivial to add new formats: create the formatter class, import it here,
add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["subtitle"]()``.
The module-level codec functions are re-exported for direct use.

RULES:
- Keys are snake_case identifiers (used in CLI flags, API paths, etc.)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

from transcript_refiner.formatters.base import EmptyImportError, normalize_segments
from transcript_refiner.formatters.plain_text import (
    PlainTextFormatter,
    decode_plain_text,
    encode_plain_text,
)
from transcript_refiner.formatters.subtitle import (
    SubtitleFormatter,
    decode_subtitle,
    encode_subtitle,
)

if TYPE_CHECKING:
    from transcript_refiner.formatters.base import BaseFormatter

FORMATTERS: Dict[str, type[BaseFormatter]] = {
    "subtitle": SubtitleFormatter,
    "plain_text": PlainTextFormatter,
}

_EXTENSION_FORMATS = {
    ".srt": "subtitle",
    ".txt": "plain_text",
}


def format_for_path(path: str | Path) -> Optional[str]:
    """Registry key for a file extension, or None if unsupported."""
    return _EXTENSION_FORMATS.get(Path(path).suffix.lower())


__all__ = [
    "FORMATTERS",
    "EmptyImportError",
    "decode_plain_text",
    "decode_subtitle",
    "encode_plain_text",
    "encode_subtitle",
    "format_for_path",
    "normalize_segments",
]
