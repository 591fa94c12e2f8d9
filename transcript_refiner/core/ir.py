"""Intermediate representation dataclasses for editable transcripts.

WHY: Imports, speech-to-text results, provider responses, and exports
all describe the same thing: an ordered list of speaker-attributed,
timed utterances. The IR gives every component one well-typed form to
exchange, decoupling parsing, batching, versioning, and formatting.

HOW: Small dataclasses:
  Segment     : one utterance with id, speaker, time span, and text
  Batch       : a contiguous slice of a transcript used during refinement
  BatchOutcome: what one batch contributed to a refinement
  RefineResult: the merged output of a full refinement

RULES:
- A transcript is a plain ``list[Segment]``; order is presentation order
- All times are float seconds, ``end >= start`` after normalization
- Segment ids are unique within a transcript but need not be sorted
- Batches and outcomes are never persisted
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class Segment:
    """One transcribed utterance.

    RULES:
    - id: positive integer, unique within its transcript
    - speaker: display label, shared freely between segments
    - start / end: non-negative float seconds
    - text: may be empty only while a user is editing
    """

    id: int
    speaker: str
    start: float
    end: float
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Segment:
        return cls(
            id=int(data["id"]),
            speaker=str(data["speaker"]),
            start=float(data["start"]),
            end=float(data["end"]),
            text=str(data["text"]),
        )


@dataclass
class Batch:
    """A contiguous slice of a transcript sent to the provider in one call.

    RULES:
    - index: 0-based position among all batches
    - offset: position of the first segment in the parent transcript
    - segments: the original, unmodified slice
    """

    index: int
    offset: int
    segments: List[Segment]


@dataclass
class BatchOutcome:
    """The contribution of one batch to a refinement.

    WHY: A batch either parses (its recovered segments replace the
    originals) or degrades to its original content. Keeping the outcome
    explicit makes the degradation visible to callers and tests.

    RULES:
    - parsed is False when every parser strategy failed; segments are
      then the batch's original content and changes is None
    - strategy names the parser strategy that succeeded, else None
    """

    batch_index: int
    segments: List[Segment]
    changes: Optional[str] = None
    parsed: bool = True
    strategy: Optional[str] = None


@dataclass
class RefineResult:
    """Merged output of a full-transcript refinement."""

    transcript: List[Segment]
    changes: str
    batch_count: int
    outcomes: List[BatchOutcome] = field(default_factory=list)


def clone_segments(segments: Iterable[Segment]) -> List[Segment]:
    """Return a structurally independent copy of a transcript."""
    return [copy.deepcopy(segment) for segment in segments]


def speakers_of(segments: Iterable[Segment]) -> List[str]:
    """Distinct speaker labels in first-appearance order."""
    seen: Dict[str, None] = {}
    for segment in segments:
        seen.setdefault(segment.speaker, None)
    return list(seen)
