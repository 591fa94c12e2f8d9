"""Append-only version history of transcript snapshots.

WHY: AI refinements rewrite many segments at once. Users need to see
what each step changed and return to any earlier state without losing
the later ones.

HOW: VersionLog keeps a list of frozen Version records. Each Version
holds a private, deep-copied tuple of segments; reading ``snapshot``
hands out another deep copy, so neither the live transcript nor a
caller can reach the stored segments.

RULES:
- save() deep-copies the given transcript and appends; nothing is removed
- restore() returns a copy of the snapshot and never mutates the log
- Timestamps never decrease, even if the wall clock steps back
- Out-of-range indices raise VersionIndexError
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from transcript_refiner.core.ir import Segment, clone_segments

logger = logging.getLogger(__name__)


class VersionIndexError(IndexError):
    """Raised when a version index does not exist in the log."""


@dataclass(frozen=True)
class Version:
    """An immutable, timestamped transcript checkpoint."""

    timestamp: float
    description: str
    changes: str
    _segments: Tuple[Segment, ...] = field(repr=False)

    @property
    def snapshot(self) -> List[Segment]:
        """A fresh, independent copy of the stored transcript."""
        return clone_segments(self._segments)

    def summary(self, index: int) -> Dict[str, Any]:
        return {
            "index": index,
            "timestamp": self.timestamp,
            "description": self.description,
            "changes": self.changes,
        }


class VersionLog:
    """Append-only log of Versions for one editing session."""

    def __init__(self) -> None:
        self._versions: List[Version] = []

    def __len__(self) -> int:
        return len(self._versions)

    def save(
        self,
        transcript: Iterable[Segment],
        description: str,
        changes: Optional[str] = None,
    ) -> Version:
        """Snapshot a transcript and append it as a new Version.

        RULES:
        - changes defaults to description when omitted or empty
        - The stored segments share no objects with ``transcript``
        """
        now = time.time()
        if self._versions:
            now = max(now, self._versions[-1].timestamp)
        version = Version(
            timestamp=now,
            description=description,
            changes=changes or description,
            _segments=tuple(clone_segments(transcript)),
        )
        self._versions.append(version)
        logger.info("Saved version %d: %s", len(self._versions) - 1, description)
        return version

    def get(self, index: int) -> Version:
        if not 0 <= index < len(self._versions):
            raise VersionIndexError(
                "Version {} does not exist (have {})".format(index, len(self._versions))
            )
        return self._versions[index]

    def restore(self, index: int) -> List[Segment]:
        """Return a copy of version ``index``'s snapshot for the live transcript."""
        return self.get(index).snapshot

    def list(self) -> List[Version]:
        """Versions in creation order."""
        return list(self._versions)

    def entries(self) -> List[Dict[str, Any]]:
        """Display records ``{index, timestamp, description, changes}``."""
        return [version.summary(index) for index, version in enumerate(self._versions)]
