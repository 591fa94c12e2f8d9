"""Editing session: live transcript, version history, and operations on both.

WHY: A transcript being edited has exactly three pieces of mutable
state: the live segments, their version history, and which version the
user is inspecting. Bundling them in one object (instead of process-wide
globals) lets the CLI, tests, and the HTTP API each hold any number of
independent sessions.

HOW: EditingSession owns a list of segments and its own VersionLog.
Import, ingestion, and refinement replace the live transcript only after
their work fully succeeds, then save a version. Restore copies a
snapshot back without touching the log.

RULES:
- Every import/ingestion and every completed refinement saves a version
- An empty import raises EmptyImportError and changes nothing
- A failed or cancelled refinement changes nothing
- Only one refinement may be in flight per session
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Iterable, List, Optional

from transcript_refiner.config import BATCH_SIZE, CONTEXT_OVERLAP
from transcript_refiner.core.batching import StatusCallback, refine_transcript
from transcript_refiner.core.history import Version, VersionLog
from transcript_refiner.core.ir import RefineResult, Segment, clone_segments, speakers_of
from transcript_refiner.formatters import FORMATTERS, EmptyImportError, normalize_segments
from transcript_refiner.formatters.base import FormatterOutput
from transcript_refiner.providers.log import ApiCallLog

logger = logging.getLogger(__name__)


class RefineInProgressError(RuntimeError):
    """Raised when a refinement starts while another is still running."""


def _formatter(fmt: str):
    formatter_cls = FORMATTERS.get(fmt)
    if formatter_cls is None:
        raise ValueError(
            "Unknown format '{}'. Available: {}".format(fmt, ", ".join(sorted(FORMATTERS)))
        )
    return formatter_cls()


class EditingSession:
    """One transcript under edit, with its own version history."""

    def __init__(self, session_id: Optional[str] = None, name: str = "transcript") -> None:
        self.id = session_id or uuid.uuid4().hex
        self.name = name
        self.transcript: List[Segment] = []
        self.history = VersionLog()
        self.selected_version: Optional[int] = None
        self._refining = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def speakers(self) -> List[str]:
        return speakers_of(self.transcript)

    @property
    def refining(self) -> bool:
        return self._refining

    # ------------------------------------------------------------------
    # Ingestion, import, export
    # ------------------------------------------------------------------

    def load_segments(
        self,
        segments: Iterable[Any],
        description: str = "Transcription complete",
    ) -> Version:
        """Replace the transcript with ingested segments and save a version."""
        normalized = normalize_segments(segments)
        if not normalized:
            raise EmptyImportError("No segments to load")
        self.transcript = normalized
        return self.save_version(description, "{} segments".format(len(normalized)))

    def import_text(self, content: str, fmt: str) -> Version:
        """Decode subtitle or plain-text content into the live transcript.

        Raises:
            ValueError: unknown format key.
            EmptyImportError: the content holds no recoverable segments.
        """
        segments = _formatter(fmt).parse(content)
        if not segments:
            raise EmptyImportError("The imported {} file contains no segments".format(fmt))
        self.transcript = segments
        logger.info("Session %s imported %d segments (%s)", self.id, len(segments), fmt)
        return self.save_version(
            "Imported {} file".format(fmt),
            "{} segments imported".format(len(segments)),
        )

    def export(self, fmt: str) -> FormatterOutput:
        return _formatter(fmt).format(self.transcript)[0]

    # ------------------------------------------------------------------
    # Manual edits
    # ------------------------------------------------------------------

    def update_segment_text(self, segment_id: int, text: str) -> Segment:
        for segment in self.transcript:
            if segment.id == segment_id:
                segment.text = text.strip()
                return segment
        raise KeyError("Segment {} not found".format(segment_id))

    def rename_speaker(self, old: str, new: str) -> int:
        """Relabel every segment spoken by ``old``; returns the count changed."""
        new = new.strip()
        if not new:
            raise ValueError("Speaker name must not be empty")
        changed = 0
        for segment in self.transcript:
            if segment.speaker == old:
                segment.speaker = new
                changed += 1
        return changed

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def save_version(self, description: str, changes: Optional[str] = None) -> Version:
        return self.history.save(self.transcript, description, changes)

    def restore_version(self, index: int) -> Version:
        """Copy version ``index`` into the live transcript.

        Raises:
            VersionIndexError: no such version; nothing changes.
        """
        snapshot = self.history.restore(index)
        self.transcript = snapshot
        self.selected_version = index
        logger.info("Session %s restored version %d", self.id, index)
        return self.history.get(index)

    def select_version(self, index: int) -> Version:
        """Point at a version for inspection without restoring it."""
        version = self.history.get(index)
        self.selected_version = index
        return version

    # ------------------------------------------------------------------
    # Refinement
    # ------------------------------------------------------------------

    async def refine(
        self,
        instruction: str,
        provider: Any,
        domain_context: Optional[str] = None,
        batch_size: int = BATCH_SIZE,
        context_overlap: int = CONTEXT_OVERLAP,
        max_concurrency: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
        on_status: Optional[StatusCallback] = None,
        call_log: Optional[ApiCallLog] = None,
    ) -> RefineResult:
        """Refine the live transcript and save the result as a new version.

        WHY: Wraps the batching core with the session's commit rules:
        the live transcript and the log move together, or not at all.

        RULES:
        - Raises RefineInProgressError if another refine is running
        - Exceptions from the provider or cancellation propagate and leave
          the transcript and history untouched
        - On success the merged transcript is renumbered 1..N through
          normalize_segments, replaces the live one, and a version is
          saved with the combined change notes
        """
        if self._refining:
            raise RefineInProgressError("A refinement is already running for this session")
        if not instruction or not instruction.strip():
            raise ValueError("Refine instruction must not be empty")

        self._refining = True
        started = time.monotonic()
        provider_name = getattr(provider, "name", type(provider).__name__)
        model = getattr(provider, "model", "unknown")
        try:
            result = await refine_transcript(
                clone_segments(self.transcript),
                instruction,
                provider,
                domain_context=domain_context,
                batch_size=batch_size,
                context_overlap=context_overlap,
                max_concurrency=max_concurrency,
                cancel_event=cancel_event,
                on_status=on_status,
            )
        except BaseException as exc:
            if call_log is not None:
                call_log.log(
                    provider_name, model, "refine",
                    int((time.monotonic() - started) * 1000),
                    success=False, error=str(exc) or type(exc).__name__,
                )
            raise
        finally:
            self._refining = False

        if call_log is not None:
            call_log.log(
                provider_name, model, "refine",
                int((time.monotonic() - started) * 1000),
                success=True, batches=result.batch_count,
            )
        # Batches may restart numbering or lose times; ids must stay unique.
        result.transcript = normalize_segments(result.transcript)
        self.transcript = result.transcript
        self.save_version("AI refine: {}".format(_shorten(instruction)), result.changes)
        return result


def _shorten(text: str, limit: int = 40) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit - 3] + "..."
