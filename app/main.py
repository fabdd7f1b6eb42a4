import logging
import time
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pymongo.errors import PyMongoError # type: ignore

from .config import CORS_ORIGINS, LOG_LEVEL, RECORDINGS_DIR
from .database import ensure_indexes, events_collection, sessions_collection
from .documents import DOCUMENT_FORMATS, render_report
from .errors import NotFoundError, ValidationError, register_error_handlers
from .logging_config import setup_logging
from .media import belongs_to, captured_at_of, iter_file_range, media_type_for, parse_range, select_latest, session_id_of
from .models import EventKind, ObservationEvent, Session
from .report import build_report
from .schemas import (
    CreateSessionRequest,
    EndSessionRequest,
    EventResponse,
    LogEventRequest,
    PurgeResponse,
    RecordingListResponse,
    RecordingResponse,
    ReportResponse,
    SessionResponse,
    SessionWithEventsResponse,
)
from .storage import LocalStorage, get_storage
from .store import SessionEventStore

logger = logging.getLogger(__name__)


def get_store() -> SessionEventStore:
    return SessionEventStore(sessions_collection, events_collection)


@lru_cache(maxsize=1)
def get_recordings() -> LocalStorage:
    return get_storage(RECORDINGS_DIR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(LOG_LEVEL)
    try:
        await ensure_indexes()
    except PyMongoError as exc:
        logger.error("Could not ensure MongoDB indexes: %s", exc)
    yield


app = FastAPI(title="Proctoring Backend", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
)
register_error_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)
    logger.info("%s %s -> %d in %dms", request.method, request.url.path, response.status_code, duration_ms)
    return response


def _session_response(session: Session) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        name=session.display_name,
        started_at=session.started_at,
        ended_at=session.ended_at,
    )


def _event_response(event: ObservationEvent) -> EventResponse:
    return EventResponse(
        id=event.id,
        session_id=event.session_id,
        kind=event.kind,
        occurred_at=event.occurred_at,
    )


def _recording_response(name: str) -> RecordingResponse:
    return RecordingResponse(
        filename=name,
        url=f"/recordings/{name}",
        session_id=session_id_of(name),
        captured_at_ms=captured_at_of(name),
    )


def _attachment(filename: str) -> str:
    # Header values are latin-1; non-ASCII names travel in filename*
    fallback = "".join(c if c.isascii() and c.isprintable() and c not in '"\\' else "_" for c in filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


async def _stream_file(path: Path, range_header: Optional[str]) -> StreamingResponse:
    size = (await run_in_threadpool(path.stat)).st_size
    byte_range = parse_range(range_header, size)
    headers = {"Accept-Ranges": "bytes"}
    if byte_range is None:
        headers["Content-Length"] = str(size)
        return StreamingResponse(
            iter_file_range(path, 0, size),
            status_code=200,
            media_type=media_type_for(path.name),
            headers=headers,
        )
    headers["Content-Range"] = byte_range.content_range
    headers["Content-Length"] = str(byte_range.length)
    logger.debug("Serving %s %s", path.name, byte_range.content_range)
    return StreamingResponse(
        iter_file_range(path, byte_range.start, byte_range.length),
        status_code=206,
        media_type=media_type_for(path.name),
        headers=headers,
    )


@app.post("/sessions", response_model=SessionResponse)
async def create_session(payload: CreateSessionRequest, store: SessionEventStore = Depends(get_store)):
    session = await store.create_session(payload.session_id, payload.name)
    return _session_response(session)


@app.post("/sessions/end", response_model=SessionResponse)
async def end_session(payload: EndSessionRequest, store: SessionEventStore = Depends(get_store)):
    session = await store.end_session(payload.session_id)
    return _session_response(session)


@app.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(response: Response, store: SessionEventStore = Depends(get_store)):
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    sessions = await store.list_sessions()
    return [_session_response(s) for s in sessions]


@app.get("/sessions/{session_id}", response_model=SessionWithEventsResponse)
async def get_session(session_id: str, store: SessionEventStore = Depends(get_store)):
    session = await store.get_session(session_id)
    if session is None:
        raise NotFoundError(f"Session {session_id} not found")
    events = await store.fetch_events(session_id)
    return SessionWithEventsResponse(
        **_session_response(session).model_dump(),
        events=[_event_response(e) for e in events],
    )


@app.delete("/sessions/{session_id}", response_model=PurgeResponse)
async def purge_session(
    session_id: str,
    store: SessionEventStore = Depends(get_store),
    recordings: LocalStorage = Depends(get_recordings),
):
    sessions_deleted, events_deleted = await store.purge_session(session_id)
    recordings_deleted = await run_in_threadpool(recordings.purge_session, session_id)
    if not (sessions_deleted or events_deleted or recordings_deleted):
        raise NotFoundError(f"Session {session_id} not found")
    return PurgeResponse(
        session_id=session_id,
        sessions_deleted=sessions_deleted,
        events_deleted=events_deleted,
        recordings_deleted=recordings_deleted,
    )


@app.get("/sessions/{session_id}/recording")
async def stream_session_recording(
    session_id: str,
    range_header: Optional[str] = Header(None, alias="Range"),
    recordings: LocalStorage = Depends(get_recordings),
):
    names = await run_in_threadpool(recordings.list_names)
    latest = select_latest(names, session_id)
    if latest is None:
        raise NotFoundError(f"No recording found for session {session_id}")
    return await _stream_file(recordings.resolve(latest), range_header)


@app.post("/events", response_model=EventResponse)
async def log_event(payload: LogEventRequest, store: SessionEventStore = Depends(get_store)):
    if not EventKind.is_valid(payload.kind):
        raise ValidationError(f"Unknown event kind: {payload.kind!r}")
    event = await store.append_event(payload.session_id, payload.kind, payload.occurred_at)
    return _event_response(event)


@app.get("/reports/{session_id}", response_model=ReportResponse)
async def get_report(session_id: str, store: SessionEventStore = Depends(get_store)):
    session = await store.get_session(session_id)
    events = await store.fetch_events(session_id)
    return build_report(session_id, session, events)


@app.get("/reports/{session_id}/document")
async def download_report_document(
    session_id: str,
    fmt: str = Query("pdf", alias="format"),
    store: SessionEventStore = Depends(get_store),
):
    if fmt not in DOCUMENT_FORMATS:
        raise ValidationError(f"Unsupported report format: {fmt!r}")
    session = await store.get_session(session_id)
    events = await store.fetch_events(session_id)
    report = build_report(session_id, session, events)
    content = await run_in_threadpool(render_report, report, fmt)
    return Response(
        content=content,
        media_type=DOCUMENT_FORMATS[fmt],
        headers={"Content-Disposition": _attachment(f"report_{session_id}.{fmt}")},
    )


@app.post("/recordings", response_model=RecordingResponse)
async def upload_recording(
    session_id: str = Form(..., alias="sessionId"),
    file: UploadFile = File(...),
    recordings: LocalStorage = Depends(get_recordings),
):
    suffix = Path(file.filename).suffix.lower() if file.filename else ""
    name = await run_in_threadpool(recordings.save_recording, session_id, file.file, suffix or ".webm")
    return _recording_response(name)


@app.get("/recordings", response_model=RecordingListResponse)
async def list_recordings(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    recordings: LocalStorage = Depends(get_recordings),
):
    names = await run_in_threadpool(recordings.list_names)
    latest = None
    if session_id is not None:
        latest = select_latest(names, session_id)
        names = [n for n in names if belongs_to(n, session_id)]
    return RecordingListResponse(
        recordings=[_recording_response(n) for n in names],
        latest=_recording_response(latest) if latest else None,
    )


@app.get("/recordings/{name}")
async def stream_recording(
    name: str,
    range_header: Optional[str] = Header(None, alias="Range"),
    recordings: LocalStorage = Depends(get_recordings),
):
    return await _stream_file(recordings.resolve(name), range_header)


@app.get("/")
def root():
    return {"status": "ok", "message": "Proctoring backend running"}
