"""Batch partitioner and stitcher for full-transcript refinement.

WHY: Long transcripts exceed what a provider can reliably rewrite in
one call, and a single malformed answer should not cost the whole
edit. Splitting into bounded batches keeps each request small and lets
a bad batch degrade on its own.

HOW: ``partition`` slices the transcript into ordered batches.
``refine_transcript`` builds one prompt per batch (instruction,
optional domain context, batch position, starting segment number, and
the last few *original* segments of the preceding batch as read-only
reference), submits it, and runs the answer through the resilient
parser. Parsed batches contribute their recovered segments; batches
that fail to parse contribute their original segments unchanged.

RULES:
- Reference context always comes from the original, pre-refinement
  batch, so batches are independent of each other's results
- Provider errors abort the whole refinement; nothing is merged
- A parse failure never aborts; the batch falls back and adds no note
- Merged output and change notes follow batch order, whatever order the
  provider calls complete in
- Cancellation is checked before each batch is submitted
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, List, Optional, Sequence

from transcript_refiner.config import BATCH_SIZE, CONTEXT_OVERLAP, NO_CHANGES_NOTE
from transcript_refiner.core.ir import Batch, BatchOutcome, RefineResult, Segment, clone_segments
from transcript_refiner.core.parser import ResponseParseError, parse_response

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


class RefineCancelledError(Exception):
    """Raised when a refinement is cancelled between batches."""


def partition(segments: Sequence[Segment], batch_size: int = BATCH_SIZE) -> List[Batch]:
    """Split a transcript into ordered batches of at most batch_size segments.

    RULES:
    - Yields ceil(N / batch_size) batches; an empty transcript yields none
    - Concatenating batch segments reproduces the input order exactly
    - Raises ValueError for a non-positive batch_size
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive, got {}".format(batch_size))
    return [
        Batch(index=index, offset=offset, segments=list(segments[offset:offset + batch_size]))
        for index, offset in enumerate(range(0, len(segments), batch_size))
    ]


def _segments_json(segments: Sequence[Segment]) -> str:
    return json.dumps([s.to_dict() for s in segments], ensure_ascii=False, indent=2)


def build_batch_prompt(
    batch: Batch,
    total_batches: int,
    instruction: str,
    domain_context: Optional[str] = None,
    previous: Optional[Sequence[Segment]] = None,
) -> str:
    """Build the provider prompt for one batch.

    Args:
        batch: The batch to edit.
        total_batches: Number of batches in the refinement.
        instruction: The user's free-form edit instruction.
        domain_context: Optional background on the recording.
        previous: Reference segments from the end of the preceding batch.

    Returns:
        The full prompt text.
    """
    parts = ["You are a professional transcript editor. Edit the transcript "
             "excerpt below according to the user's instruction.", ""]
    if domain_context:
        parts.extend(["Background on the recording: {}".format(domain_context), ""])
    parts.append("User instruction: {}".format(instruction))
    parts.append("")
    parts.append(
        "This is batch {} of {}. Segment numbering starts at {}.".format(
            batch.index + 1, total_batches, batch.offset + 1
        )
    )
    if previous:
        parts.extend([
            "",
            "Continuity context (the end of the previous batch, for reference only, "
            "do not modify or return it):",
            _segments_json(previous),
        ])
    parts.extend([
        "",
        "Transcript excerpt to edit:",
        _segments_json(batch.segments),
        "",
        "Reply with the edited excerpt in the same JSON format. Keep every id, "
        "speaker, start, and end unchanged and only modify the text field.",
        "Format:",
        '{',
        '  "transcript": [...edited segments...],',
        '  "changes": "summary of the edits in this batch"',
        '}',
        "Reply with JSON only, no other text.",
    ])
    return "\n".join(parts)


def _contribution(batch: Batch, raw_response: str) -> BatchOutcome:
    try:
        parsed = parse_response(raw_response)
    except ResponseParseError as exc:
        logger.warning(
            "Batch %d could not be parsed, keeping original segments: %s",
            batch.index + 1, exc,
        )
        return BatchOutcome(
            batch_index=batch.index,
            segments=clone_segments(batch.segments),
            changes=None,
            parsed=False,
        )
    return BatchOutcome(
        batch_index=batch.index,
        segments=parsed.transcript,
        changes=parsed.changes,
        parsed=True,
        strategy=parsed.strategy,
    )


def merge_outcomes(outcomes: Sequence[BatchOutcome]) -> RefineResult:
    """Concatenate batch contributions and change notes in batch order."""
    ordered = sorted(outcomes, key=lambda o: o.batch_index)
    transcript: List[Segment] = []
    notes: List[str] = []
    for outcome in ordered:
        transcript.extend(outcome.segments)
        if outcome.changes:
            notes.append("[Batch {}] {}".format(outcome.batch_index + 1, outcome.changes))
    return RefineResult(
        transcript=transcript,
        changes="\n\n".join(notes) or NO_CHANGES_NOTE,
        batch_count=len(ordered),
        outcomes=list(ordered),
    )


async def refine_transcript(
    segments: Sequence[Segment],
    instruction: str,
    provider: Any,
    domain_context: Optional[str] = None,
    batch_size: int = BATCH_SIZE,
    context_overlap: int = CONTEXT_OVERLAP,
    max_concurrency: int = 1,
    cancel_event: Optional[asyncio.Event] = None,
    on_status: Optional[StatusCallback] = None,
) -> RefineResult:
    """Refine a full transcript batch by batch through a provider.

    WHY: This is the single entry point for AI-driven edits. It owns the
    batching protocol so callers only deal with a transcript in and a
    merged transcript out.

    HOW: Partitions the transcript, then submits each batch's prompt via
    ``provider.submit``. With max_concurrency == 1 (the default) batches
    run strictly in sequence; higher values bound parallel calls with a
    semaphore. Outcomes are merged in batch order.

    RULES:
    - provider must expose ``async submit(prompt: str) -> str``
    - Any exception raised by submit propagates unchanged
    - cancel_event set before a batch starts raises RefineCancelledError
    - The input segments are never mutated

    Args:
        segments: The live transcript to refine.
        instruction: Free-form edit instruction.
        provider: Object with an async ``submit`` method.
        domain_context: Optional background text for the provider.
        batch_size: Maximum segments per provider call.
        context_overlap: Reference segments carried from the previous batch.
        max_concurrency: Maximum provider calls in flight.
        cancel_event: Optional event that cancels the refinement.
        on_status: Optional callback for status updates.

    Returns:
        RefineResult with merged transcript, combined notes, batch count.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be positive, got {}".format(max_concurrency))
    original = clone_segments(segments)
    batches = partition(original, batch_size)
    total = len(batches)
    logger.info("Refining %d segments in %d batch(es)", len(original), total)

    def _previous(batch: Batch) -> List[Segment]:
        if batch.index == 0 or context_overlap <= 0:
            return []
        return batches[batch.index - 1].segments[-context_overlap:]

    async def _run(batch: Batch) -> BatchOutcome:
        if cancel_event is not None and cancel_event.is_set():
            raise RefineCancelledError(
                "Refinement cancelled before batch {} of {}".format(batch.index + 1, total)
            )
        if on_status:
            on_status("Processing batch {}/{} (segments {}-{})".format(
                batch.index + 1, total, batch.offset + 1, batch.offset + len(batch.segments),
            ))
        prompt = build_batch_prompt(
            batch, total, instruction, domain_context, _previous(batch)
        )
        raw_response = await provider.submit(prompt)
        return _contribution(batch, raw_response)

    if max_concurrency == 1:
        outcomes = [await _run(batch) for batch in batches]
    else:
        semaphore = asyncio.Semaphore(max_concurrency)

        async def _bounded(batch: Batch) -> BatchOutcome:
            async with semaphore:
                return await _run(batch)

        tasks = [asyncio.ensure_future(_bounded(batch)) for batch in batches]
        try:
            outcomes = list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    result = merge_outcomes(outcomes)
    degraded = sum(1 for o in result.outcomes if not o.parsed)
    if degraded:
        logger.warning("%d of %d batch(es) kept their original content", degraded, total)
    return result
