"""FastAPI application exposing editing sessions over HTTP.

WHY: Browser front-ends and other tools need to import a transcript,
run AI refinements, browse and restore versions, and download the
result. FastAPI provides request validation, automatic OpenAPI docs,
and native async handlers for the provider calls.

HOW: A single FastAPI app over a module-level SessionStore. Each
session is an EditingSession; handlers translate its typed exceptions
into HTTP status codes. A lifespan task expires idle sessions.

RULES:
- Empty imports → 422, unknown session → 404, out-of-range version → 404
- Provider credential rejection → 401, other provider failures → 502
- A second refine on the same session while one runs → 409
- Failed refinements leave the session untouched
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response

from transcript_refiner import __version__
from transcript_refiner.core.history import VersionIndexError
from transcript_refiner.core.ir import Segment
from transcript_refiner.core.session import EditingSession, RefineInProgressError
from transcript_refiner.formatters import FORMATTERS, EmptyImportError, format_for_path
from transcript_refiner.providers import (
    ApiCallLog,
    ProviderAuthError,
    ProviderError,
    create_provider,
)
from transcript_refiner.server.models import (
    ErrorResponse,
    FormatInfo,
    HealthResponse,
    LogsResponse,
    RefineRequest,
    RefineResponse,
    SegmentModel,
    SegmentUpdateRequest,
    SessionResponse,
    VersionInfo,
    VersionSaveRequest,
)
from transcript_refiner.server.sessions import SessionStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

session_store = SessionStore()
call_log = ApiCallLog()


async def _periodic_cleanup() -> None:
    """Expire idle sessions every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        session_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Transcript Refiner API",
    description=(
        "REST API for editing speech transcripts: import subtitle or plain "
        "text files, refine them with natural-language instructions through "
        "a generative text provider, browse and restore versions, and export."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _segment_models(segments: List[Segment]) -> List[SegmentModel]:
    return [SegmentModel(**segment.to_dict()) for segment in segments]


def _session_to_response(session: EditingSession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        name=session.name,
        transcript=_segment_models(session.transcript),
        speakers=session.speakers,
        version_count=len(session.history),
        selected_version=session.selected_version,
    )


def _get_session_or_404(session_id: str) -> EditingSession:
    session = session_store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return session


# ---------------------------------------------------------------------------
# Endpoints: Sessions
# ---------------------------------------------------------------------------


@app.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=201,
    tags=["sessions"],
    summary="Import a transcript into a new editing session",
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported file type or encoding"},
        422: {"model": ErrorResponse, "description": "File contains no segments"},
        429: {"model": ErrorResponse, "description": "Too many sessions"},
    },
)
async def create_session(
    file: Annotated[
        UploadFile,
        File(description="Subtitle (.srt) or plain text (.txt) transcript file"),
    ],
) -> SessionResponse:
    filename = Path(file.filename or "transcript.txt").name
    fmt = format_for_path(filename)
    if fmt is None:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported: .srt, .txt".format(
                Path(filename).suffix
            ),
        )

    try:
        content = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File is not valid UTF-8 text")

    try:
        session = session_store.create_session(name=filename)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    try:
        session.import_text(content, fmt)
    except EmptyImportError as exc:
        session_store.delete_session(session.id)
        raise HTTPException(status_code=422, detail=str(exc))

    return _session_to_response(session)


@app.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Get the live transcript of a session",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def get_session(session_id: str) -> SessionResponse:
    return _session_to_response(_get_session_or_404(session_id))


@app.patch(
    "/sessions/{session_id}/segments/{segment_id}",
    response_model=SegmentModel,
    tags=["sessions"],
    summary="Edit one segment's text",
    responses={404: {"model": ErrorResponse, "description": "Session or segment not found"}},
)
async def update_segment(
    session_id: str,
    segment_id: int,
    body: SegmentUpdateRequest,
) -> SegmentModel:
    session = _get_session_or_404(session_id)
    try:
        segment = session.update_segment_text(segment_id, body.text)
    except KeyError:
        raise HTTPException(status_code=404, detail="Segment not found: {}".format(segment_id))
    return SegmentModel(**segment.to_dict())


@app.post(
    "/sessions/{session_id}/refine",
    response_model=RefineResponse,
    tags=["sessions"],
    summary="Refine the transcript with a natural-language instruction",
    responses={
        400: {"model": ErrorResponse, "description": "Unknown provider or missing API key"},
        401: {"model": ErrorResponse, "description": "Provider rejected the credentials"},
        404: {"model": ErrorResponse, "description": "Session not found"},
        409: {"model": ErrorResponse, "description": "A refinement is already running"},
        502: {"model": ErrorResponse, "description": "Provider request failed"},
    },
)
async def refine_session(session_id: str, body: RefineRequest) -> RefineResponse:
    session = _get_session_or_404(session_id)

    options = {"api_key": body.api_key, "model": body.model}
    if body.provider == "gemini":
        options["enable_web_search"] = body.enable_web_search
    try:
        provider = create_provider(body.provider, **options)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        async with provider:
            result = await session.refine(
                body.instruction,
                provider,
                domain_context=body.context,
                batch_size=body.batch_size,
                context_overlap=body.context_overlap,
                call_log=call_log,
            )
    except RefineInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ProviderAuthError as exc:
        raise HTTPException(status_code=401, detail=exc.message)
    except ProviderError as exc:
        logger.warning("Refine failed for session %s: %s", session_id, exc)
        raise HTTPException(status_code=502, detail=exc.message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return RefineResponse(
        transcript=_segment_models(result.transcript),
        changes=result.changes,
        batch_count=result.batch_count,
        fallback_batches=[o.batch_index + 1 for o in result.outcomes if not o.parsed],
        version_index=len(session.history) - 1,
    )


@app.delete(
    "/sessions/{session_id}",
    status_code=204,
    tags=["sessions"],
    summary="Delete an editing session",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def delete_session(session_id: str) -> Response:
    if not session_store.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Versions
# ---------------------------------------------------------------------------


@app.get(
    "/sessions/{session_id}/versions",
    response_model=List[VersionInfo],
    tags=["versions"],
    summary="List saved versions in creation order",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def list_versions(session_id: str) -> List[VersionInfo]:
    session = _get_session_or_404(session_id)
    return [VersionInfo(**entry) for entry in session.history.entries()]


@app.post(
    "/sessions/{session_id}/versions",
    response_model=VersionInfo,
    status_code=201,
    tags=["versions"],
    summary="Save the live transcript as a new version",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def save_version(session_id: str, body: VersionSaveRequest) -> VersionInfo:
    session = _get_session_or_404(session_id)
    version = session.save_version(body.description, body.changes)
    return VersionInfo(**version.summary(len(session.history) - 1))


@app.get(
    "/sessions/{session_id}/versions/{index}",
    response_model=VersionInfo,
    tags=["versions"],
    summary="Inspect a version without restoring it",
    responses={404: {"model": ErrorResponse, "description": "Session or version not found"}},
)
async def get_version(session_id: str, index: int) -> VersionInfo:
    session = _get_session_or_404(session_id)
    try:
        version = session.select_version(index)
    except VersionIndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return VersionInfo(**version.summary(index))


@app.post(
    "/sessions/{session_id}/versions/{index}/restore",
    response_model=SessionResponse,
    tags=["versions"],
    summary="Restore a version into the live transcript",
    responses={404: {"model": ErrorResponse, "description": "Session or version not found"}},
)
async def restore_version(session_id: str, index: int) -> SessionResponse:
    session = _get_session_or_404(session_id)
    try:
        session.restore_version(index)
    except VersionIndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return _session_to_response(session)


# ---------------------------------------------------------------------------
# Endpoints: Export & formats
# ---------------------------------------------------------------------------


@app.get(
    "/sessions/{session_id}/export/{fmt}",
    tags=["formats"],
    summary="Download the live transcript in an interchange format",
    responses={404: {"model": ErrorResponse, "description": "Session or format not found"}},
)
async def export_session(session_id: str, fmt: str) -> Response:
    session = _get_session_or_404(session_id)
    if fmt not in FORMATTERS:
        raise HTTPException(status_code=404, detail="Unknown format: {}".format(fmt))
    output = session.export(fmt)
    filename = "{}{}".format(Path(session.name).stem, output.suffix)
    return Response(
        content=output.content.encode("utf-8"),
        media_type="{}; charset=utf-8".format(output.media_type),
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@app.get(
    "/formats",
    response_model=List[FormatInfo],
    tags=["formats"],
    summary="List available interchange formats",
)
async def list_formats() -> List[FormatInfo]:
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        result.append(FormatInfo(
            key=key,
            name=formatter.name,
            suffix=formatter.format([])[0].suffix,
        ))
    return result


# ---------------------------------------------------------------------------
# Endpoints: Logs & health
# ---------------------------------------------------------------------------


@app.get(
    "/logs",
    response_model=LogsResponse,
    tags=["health"],
    summary="Recent provider calls and statistics",
)
async def get_logs() -> LogsResponse:
    return LogsResponse(logs=call_log.get_logs(), stats=call_log.get_stats())


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api(host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    """Entry point for the transcript-refiner-api console script."""
    import os

    import uvicorn
    uvicorn.run(app, host=host, port=port or int(os.getenv("PORT", "8000")))
