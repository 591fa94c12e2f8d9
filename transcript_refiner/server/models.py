"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation.

HOW: Each endpoint pair (request + response) has its own model. All
models include Field descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Response models never expose internal implementation details
- Segment payloads mirror core.ir.Segment field for field
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from transcript_refiner.config import BATCH_SIZE, CONTEXT_OVERLAP, DEFAULT_PROVIDER


class SegmentModel(BaseModel):
    """One transcript segment."""

    id: int = Field(description="Segment id, unique within the transcript.")
    speaker: str = Field(description="Speaker display label.")
    start: float = Field(description="Start time in seconds.")
    end: float = Field(description="End time in seconds.")
    text: str = Field(description="Utterance text.")


class SessionResponse(BaseModel):
    """Current state of an editing session."""

    id: str = Field(description="Unique session identifier.")
    name: str = Field(description="Name of the imported file.")
    transcript: List[SegmentModel] = Field(description="The live transcript.")
    speakers: List[str] = Field(description="Distinct speakers in first-appearance order.")
    version_count: int = Field(description="Number of saved versions.")
    selected_version: Optional[int] = Field(
        default=None,
        description="Index of the version last selected or restored.",
    )


class SegmentUpdateRequest(BaseModel):
    """Manual edit of one segment's text."""

    text: str = Field(description="Replacement text for the segment.")


class RefineRequest(BaseModel):
    """Instruction and provider settings for a refinement."""

    instruction: str = Field(min_length=1, description="Free-form edit instruction.")
    context: Optional[str] = Field(
        default=None,
        description="Optional background on the recording (names, topic, jargon).",
    )
    provider: str = Field(default=DEFAULT_PROVIDER, description="Provider name: 'openai' or 'gemini'.")
    api_key: Optional[str] = Field(
        default=None,
        description="Provider API key. Falls back to the server's configured key.",
    )
    model: Optional[str] = Field(default=None, description="Override the provider's default model.")
    enable_web_search: bool = Field(
        default=False,
        description="Enable search grounding (Gemini only).",
    )
    batch_size: int = Field(default=BATCH_SIZE, ge=1, description="Segments per provider call.")
    context_overlap: int = Field(
        default=CONTEXT_OVERLAP,
        ge=0,
        description="Reference segments carried from the previous batch.",
    )


class RefineResponse(BaseModel):
    """Result of a completed refinement."""

    transcript: List[SegmentModel] = Field(description="The merged, refined transcript.")
    changes: str = Field(description="Combined per-batch change notes.")
    batch_count: int = Field(description="Number of batches processed.")
    fallback_batches: List[int] = Field(
        description="1-based numbers of batches that kept their original content.",
    )
    version_index: int = Field(description="Index of the version saved for this refinement.")


class VersionInfo(BaseModel):
    """Display record for one version."""

    index: int = Field(description="Position in the version log.")
    timestamp: float = Field(description="Creation time (Unix epoch seconds).")
    description: str = Field(description="Short label.")
    changes: str = Field(description="Explanation of what changed.")


class VersionSaveRequest(BaseModel):
    """Explicit checkpoint requested by the user."""

    description: str = Field(min_length=1, description="Short label for the version.")
    changes: Optional[str] = Field(default=None, description="Optional explanation.")


class FormatInfo(BaseModel):
    """Description of an available interchange format."""

    key: str = Field(description="Format identifier used in API requests.")
    name: str = Field(description="Human-readable format name.")
    suffix: str = Field(description="File suffix produced (e.g. '.srt').")


class LogsResponse(BaseModel):
    """Recent provider calls and aggregate statistics."""

    logs: List[Dict[str, Any]] = Field(description="Recent calls, newest first.")
    stats: Dict[str, Any] = Field(description="Aggregate statistics.")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error message.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status ('ok').")
    version: str = Field(description="API version string.")
