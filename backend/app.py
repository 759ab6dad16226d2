import logging
import os
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlmodel import Session

import gateway
import views
from auth import (
    Principal,
    clear_session_cookie,
    get_principal,
    get_principal_optional,
    resolve_token,
    set_session_cookie,
)
from config import Settings, get_settings
from db import create_db_and_tables, engine, get_session
from errors import DiaryError, ValidationError
from extraction import ExtractionClient
from models import DailyLog
from pipeline import Extractor, Transcriber, parse_log_date, process_submission, today_in
from schemas import (
    DailyLogResponse,
    LogsResponse,
    ProcessResponse,
    UpdateLogRequest,
    UpdateLogResponse,
)
from transcription import TranscriptionClient

# Configure logging
logging.basicConfig(level=getattr(logging, get_settings().log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
templates = Jinja2Templates(directory=os.path.join(BASE_DIR, "templates"))

LOGS_DEFAULT_DAYS = 7
DASHBOARD_DEFAULT_DAYS = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()

    # Unique index and row-level security policy
    try:
        from migrations.migrate_001_daily_logs_rls import migrate as migrate_001

        migrate_001(engine)
    except Exception as e:
        logger.error(f"Migration 001 failed: {str(e)}")

    logger.info("Database initialized")
    yield


settings = get_settings()

# Create FastAPI app
app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/static", StaticFiles(directory=os.path.join(BASE_DIR, "static")), name="static")


@app.exception_handler(DiaryError)
async def diary_error_handler(request: Request, exc: DiaryError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def validation_message(exc: RequestValidationError) -> str:
    """First request validation problem as 'field: reason'."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    msg = first.get("msg", "Invalid value")
    return f"{'.'.join(loc)}: {msg}" if loc else msg


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    message = validation_message(exc)
    logger.error(f"{request.method} {request.url.path} rejected: {message}")
    return JSONResponse(status_code=ValidationError.status_code, content={"error": message})


def get_transcriber(settings: Settings = Depends(get_settings)) -> Transcriber:
    return TranscriptionClient(settings.transcription())


def get_extractor(settings: Settings = Depends(get_settings)) -> Extractor:
    return ExtractionClient(settings.extraction())


def log_response(log: DailyLog) -> DailyLogResponse:
    return DailyLogResponse(
        id=log.id,
        user_id=log.user_id,
        log_date=log.log_date,
        transcript=log.transcript,
        extracted=log.extracted,
        created_at=log.created_at,
    )


def parse_range(date_from: str | None, date_to: str | None) -> tuple[date, date]:
    if not date_from or not date_to:
        raise ValidationError("from/to required")
    try:
        return date.fromisoformat(date_from), date.fromisoformat(date_to)
    except ValueError as e:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD") from e


# ---------------------------------------------------------------------------
# JSON API
# ---------------------------------------------------------------------------


@app.post("/api/process", response_model=ProcessResponse)
def process_audio(
    audio: UploadFile | None = File(None),
    log_date: str | None = Form(None),
    principal: Principal = Depends(get_principal),
    session: Session = Depends(get_session),
    transcriber: Transcriber = Depends(get_transcriber),
    extractor: Extractor = Depends(get_extractor),
    settings: Settings = Depends(get_settings),
):
    """Transcribe an uploaded recording, extract fields and save the day's log."""
    if audio is None:
        raise ValidationError("audio missing")

    target_date = parse_log_date(log_date, settings.app_timezone)
    submission = process_submission(
        session,
        principal.user_id,
        target_date,
        audio.file.read(),
        audio.content_type,
        transcriber,
        extractor,
    )
    return ProcessResponse(
        transcript=submission.transcript,
        extracted=submission.extracted,
        row=log_response(submission.row),
    )


@app.get("/api/logs", response_model=LogsResponse)
def get_logs(
    date_from: str | None = Query(None, alias="from", description="Start date (YYYY-MM-DD), inclusive"),
    date_to: str | None = Query(None, alias="to", description="End date (YYYY-MM-DD), inclusive"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    principal: Principal = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """Get the caller's logs in a date range."""
    logger.info(f"Logs request - from: {date_from}, to: {date_to}, order: {order}")
    start, end = parse_range(date_from, date_to)
    logs = gateway.list_by_date_range(
        session, principal.user_id, start, end, descending=(order == "desc")
    )
    return LogsResponse(data=[log_response(log) for log in logs])


@app.patch("/api/logs/{log_id}", response_model=UpdateLogResponse)
def update_log(
    log_id: str,
    request: UpdateLogRequest,
    principal: Principal = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """Replace the extracted payload of one log."""
    row = gateway.update_by_id(session, principal.user_id, log_id, request.extracted)
    return UpdateLogResponse(ok=True, row=log_response(row))


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse)
def record_page(
    request: Request,
    error: str | None = None,
    principal: Principal | None = Depends(get_principal_optional),
    settings: Settings = Depends(get_settings),
):
    """Recorder with log date picker."""
    return templates.TemplateResponse(
        request,
        "record.html",
        {
            "principal": principal,
            "log_date": today_in(settings.app_timezone).isoformat(),
            "mime_candidates": views.RECORDING_MIME_CANDIDATES,
            "chunk_ms": views.RECORDING_CHUNK_MS,
            "error": error,
        },
    )


@app.post("/session")
def sign_in(token: str = Form(""), session: Session = Depends(get_session)):
    """Exchange an API token for a signed, expiring session cookie."""
    principal = resolve_token(session, token.strip())
    if principal is None:
        return RedirectResponse("/?error=Unknown+token", status_code=303)
    response = RedirectResponse("/", status_code=303)
    return set_session_cookie(response, principal.user_id)


@app.post("/session/logout")
def sign_out():
    return clear_session_cookie(RedirectResponse("/", status_code=303))


@app.get("/logs", response_class=HTMLResponse)
def logs_page(
    request: Request,
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    principal: Principal | None = Depends(get_principal_optional),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Logs in a date range, most recent first."""
    default_from, default_to = views.default_range(today_in(settings.app_timezone), LOGS_DEFAULT_DAYS)
    context = {
        "date_from": date_from or default_from.isoformat(),
        "date_to": date_to or default_to.isoformat(),
        "cards": [],
        "error": None,
    }

    if principal is None:
        context["error"] = "Please sign in to see your logs."
    else:
        try:
            start, end = parse_range(context["date_from"], context["date_to"])
            logs = gateway.list_by_date_range(session, principal.user_id, start, end, descending=True)
            context["cards"] = [views.log_card(log) for log in logs]
        except DiaryError as e:
            context["error"] = e.message

    return templates.TemplateResponse(request, "logs.html", context)


def _edit_context(
    log_id: str,
    log_date: str,
    fields: dict,
    raw_json: str,
    error: str | None = None,
    saved: bool = False,
):
    return {
        "log_id": log_id,
        "log_date": log_date,
        "fields": fields,
        "raw_json": raw_json,
        "error": error,
        "saved": saved,
    }


@app.get("/logs/{log_id}/edit", response_class=HTMLResponse)
def edit_page(
    request: Request,
    log_id: str,
    principal: Principal | None = Depends(get_principal_optional),
    session: Session = Depends(get_session),
):
    """Form seeded from the current extracted payload."""
    if principal is None:
        return RedirectResponse("/?error=Please+sign+in+first.", status_code=303)
    try:
        log = gateway.get_by_id(session, principal.user_id, log_id)
    except DiaryError as e:
        context = _edit_context(log_id, "", views.form_fields(views.seed_form(None)), "{}", error=e.message)
        return templates.TemplateResponse(request, "edit.html", context, status_code=e.status_code)

    form = views.seed_form(log.extracted)
    context = _edit_context(
        log.id, log.log_date.isoformat(), views.form_fields(form), views.json_text(log.extracted)
    )
    return templates.TemplateResponse(request, "edit.html", context)


@app.post("/logs/{log_id}/edit", response_class=HTMLResponse)
async def save_edit(
    request: Request,
    log_id: str,
    principal: Principal | None = Depends(get_principal_optional),
    session: Session = Depends(get_session),
):
    """Save the form as the log's new extracted payload."""
    if principal is None:
        return RedirectResponse("/?error=Please+sign+in+first.", status_code=303)

    form_data = await request.form()
    submitted = {key: form_data.get(key) for key in form_data.keys()}
    log_date = submitted.get("log_date") or ""

    try:
        payload = views.form_to_payload(submitted)
        row = gateway.update_by_id(session, principal.user_id, log_id, payload)
    except DiaryError as e:
        # Re-render what the user typed so nothing is lost
        fields = {key: value for key, value in submitted.items() if key not in ("mode", "raw_json")}
        for checkbox in ("habits_yoga", "habits_workout", "habits_no_smoking"):
            fields[checkbox] = bool(submitted.get(checkbox))
        context = _edit_context(log_id, log_date, fields, submitted.get("raw_json") or "{}", error=e.message)
        return templates.TemplateResponse(request, "edit.html", context, status_code=e.status_code)

    # The submitted payload becomes what the page shows, no re-fetch
    context = _edit_context(
        row.id,
        row.log_date.isoformat(),
        views.form_fields(views.seed_form(payload)),
        views.json_text(payload),
        saved=True,
    )
    return templates.TemplateResponse(request, "edit.html", context)


@app.get("/dashboard", response_class=HTMLResponse)
def dashboard_page(
    request: Request,
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    principal: Principal | None = Depends(get_principal_optional),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Sleep, energy and focus over time."""
    default_from, default_to = views.default_range(today_in(settings.app_timezone), DASHBOARD_DEFAULT_DAYS)
    context = {
        "date_from": date_from or default_from.isoformat(),
        "date_to": date_to or default_to.isoformat(),
        "series": views.trend_series([]),
        "error": None,
    }

    if principal is None:
        context["error"] = "Please sign in to see your dashboard."
    else:
        try:
            start, end = parse_range(context["date_from"], context["date_to"])
            logs = gateway.list_by_date_range(session, principal.user_id, start, end)
            context["series"] = views.trend_series(logs)
        except DiaryError as e:
            context["error"] = e.message

    return templates.TemplateResponse(request, "dashboard.html", context)


@app.get("/health")
def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run("app:app", host=settings.host, port=settings.port, reload=not settings.is_production)
