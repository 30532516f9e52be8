"""KurdForest – movie/TV tracking FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging
from datetime import timedelta

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.database import Base, engine
from app.dependencies import get_request_context
from app.errors import AppError, AuthError
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import User, Movie, WatchlistEntry, AuditLog  # noqa: F401
from app.routers import auth, watchlist
from app.services.notifications import build_mailer
from app.services.registration_store import RegistrationStore
from app.services.sessions import RequestContext, SessionManager
from app.services.tmdb import TMDBClient

log = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.state.registration_store = RegistrationStore(
    ttl=timedelta(seconds=settings.verification_ttl_seconds),
    max_entries=settings.pending_max_entries,
)
app.state.session_manager = SessionManager(max_age=timedelta(days=settings.session_max_age_days))
app.state.mailer = build_mailer(settings)
app.state.metadata_provider = TMDBClient.from_settings(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(watchlist.router)


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError):
    if exc.expose:
        content = {"error": exc.message}
        if isinstance(exc, AuthError):
            content["reason"] = exc.reason
    else:
        log.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc.message, exc_info=exc)
        content = {"error": exc.public_message}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(SQLAlchemyError)
async def handle_store_error(request: Request, exc: SQLAlchemyError):
    log.error("%s %s failed: database error", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Server error."})


@app.on_event("startup")
def startup():
    mailer = app.state.mailer
    if settings.mail_backend == "console":
        log.warning("[Email] Console mail backend: verification codes are logged, not sent")
    elif not getattr(mailer, "configured", False):
        log.warning("[Mailgun] Not configured - registration will fail; set MAILGUN_API_KEY and MAILGUN_DOMAIN in .env and restart")
    else:
        log.info("[Mailgun] App using domain=%s from=%s", settings.mailgun_domain, settings.mailgun_from_email)
    if not settings.tmdb_api_key:
        log.warning("[TMDB] TMDB_API_KEY not set - adding new titles to watchlists will fail")
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        log.warning("Database startup failed (tables skipped). Check DATABASE_URL and network. Error: %s", e)

    if settings.scheduler_enabled:
        from apscheduler.schedulers.background import BackgroundScheduler
        from app.services.cleanup import run_cleanup_job

        scheduler = BackgroundScheduler()
        scheduler.add_job(
            run_cleanup_job,
            "interval",
            seconds=settings.pending_sweep_interval_seconds,
            args=[app.state.registration_store, app.state.session_manager],
            id="pending-registration-sweep",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        app.state.scheduler = scheduler


@app.on_event("shutdown")
def shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)


@app.get("/")
def root(ctx: RequestContext = Depends(get_request_context)):
    return {
        "app": settings.app_name,
        "status": "ok",
        "user": ctx.session.to_public() if ctx.session else None,
    }


@app.get("/health")
def health():
    return {"status": "healthy"}
