from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from songwriting.errors import CompositionError
from songwriting.logging_utils import (
    clear_request_context,
    configure_logging,
    current_request_id,
    log_event,
    new_request_id,
    request_elapsed_ms,
    set_request_context,
)
from songwriting.models import (
    ChordVoicingsResponse,
    ProgressionPreset,
    ResolveProgressionRequest,
    ResolveProgressionResponse,
    SongDocument,
    TimelineDropRequest,
    TimelineDropResponse,
    TimelineProjectionResponse,
    VoicingView,
)
from songwriting.services.bar_store import BarStore, lift_section
from songwriting.services.chord_catalog import (
    CHORD_PROGRESSIONS,
    chord_tab,
    format_chord_name,
    resolve_progression,
    voicings_for,
)
from songwriting.services.chord_sheet import render_chord_sheet_text
from songwriting.services.editor_session import EditorSession
from songwriting.services.pdf_export import build_song_pdf
from songwriting.services.position_mapper import pixel_to_beat
from songwriting.services.timeline import Timeline
from songwriting.settings import beats_per_bar, get_settings

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Songwriting Studio")


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    set_request_context(request_id=request_id, route=request.url.path, method=request.method)
    started = time.perf_counter()
    log_event(logger, "request_started")
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = request_elapsed_ms(started)
        log_event(logger, "request_completed", status_code=500, duration_ms=elapsed_ms)
        raise

    elapsed_ms = request_elapsed_ms(started)
    log_event(logger, "request_completed", status_code=response.status_code, duration_ms=elapsed_ms)
    response.headers["X-Request-ID"] = request_id
    clear_request_context()
    return response


@app.exception_handler(Exception)
async def global_exception_handler(_request: Request, exc: Exception):
    request_id = current_request_id()
    logger.exception(
        "unhandled_exception",
        extra={"event": "unhandled_exception", "request_id": request_id},
    )
    response = JSONResponse(
        status_code=500,
        content={
            "detail": "Something went wrong while processing your request. Please try again.",
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )
    clear_request_context()
    return response


def _handle_user_error(action: str, exc: CompositionError) -> HTTPException:
    log_event(logger, "request_failed", level=logging.WARNING, action=action, reason=str(exc))
    return HTTPException(
        status_code=422,
        detail={
            "message": f"{action} failed: {exc}",
            "request_id": current_request_id(),
        },
    )


def _lifted(song: SongDocument) -> SongDocument:
    return song.model_copy(update={"structure": [lift_section(section) for section in song.structure]})


@app.get("/api/chords/{name}/voicings", response_model=ChordVoicingsResponse)
def chord_voicings_endpoint(name: str):
    voicings = [VoicingView(**voicing.model_dump(), tab=chord_tab(voicing)) for voicing in voicings_for(name)]
    return ChordVoicingsResponse(chord=name, display_name=format_chord_name(name), voicings=voicings)


@app.get("/api/progressions/presets", response_model=list[ProgressionPreset])
def progression_presets_endpoint():
    return CHORD_PROGRESSIONS


@app.post("/api/progressions/resolve", response_model=ResolveProgressionResponse)
def resolve_progression_endpoint(payload: ResolveProgressionRequest):
    chords = resolve_progression(payload.key, payload.numerals)
    return ResolveProgressionResponse(key=payload.key, numerals=payload.numerals, chords=chords)


@app.post("/api/songs/open", response_model=SongDocument)
def open_song_endpoint(payload: SongDocument):
    song = _lifted(payload)
    log_event(logger, "song_opened", section_count=len(song.structure))
    return song


@app.post("/api/songs/prepare-save", response_model=SongDocument)
def prepare_save_endpoint(payload: SongDocument):
    session = EditorSession.open(payload)
    try:
        song = session.to_document()
    finally:
        session.close()
    log_event(logger, "song_prepared_for_save", section_count=len(song.structure))
    return song


@app.post("/api/timeline/project", response_model=TimelineProjectionResponse)
def timeline_project_endpoint(payload: SongDocument):
    bpb = beats_per_bar(payload.time_signature)
    timeline = Timeline(
        BarStore(payload.structure),
        bpb,
        key=payload.key,
        default_section_bars=get_settings().default_section_bars,
    )
    return TimelineProjectionResponse(beats_per_bar=bpb, total_beats=timeline.total_beats, items=timeline.items)


@app.post("/api/timeline/drop", response_model=TimelineDropResponse)
def timeline_drop_endpoint(payload: TimelineDropRequest):
    action = "Timeline drop"
    beat = payload.beat
    if beat is None:
        beat = float(pixel_to_beat(payload.pixel, get_settings().pixels_per_beat))
    session = EditorSession.open(payload.song)
    try:
        timeline = session.timeline
        item = timeline.drop(payload.track, beat, payload.payload)
        timeline.commit()
        song = session.to_document()
    except CompositionError as exc:
        raise _handle_user_error(action, exc) from exc
    finally:
        session.close()
    return TimelineDropResponse(song=song, item=item)


@app.post("/api/songs/chord-sheet", response_class=PlainTextResponse)
def chord_sheet_endpoint(payload: SongDocument):
    return PlainTextResponse(render_chord_sheet_text(payload))


@app.post("/api/songs/export-pdf")
def export_pdf_endpoint(payload: SongDocument):
    log_event(logger, "export_started", format="pdf")
    content = build_song_pdf(payload)
    log_event(logger, "export_completed", format="pdf", output_size_bytes=len(content))
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": "attachment; filename=song.pdf",
            "X-Request-ID": current_request_id(),
        },
    )
