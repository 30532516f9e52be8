"""Shared dependencies: DB session, request context, services."""
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.config import get_settings
from app.database import get_db
from app.errors import AuthError
from app.services.registration_store import RegistrationStore
from app.services.sessions import RequestContext, SessionManager
from app.services.verification import VerificationService
from app.services.watchlist import WatchlistService

security = HTTPBearer(auto_error=False)


def get_registration_store(request: Request) -> RegistrationStore:
    return request.app.state.registration_store


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_mailer(request: Request):
    return request.app.state.mailer


def get_metadata_provider(request: Request):
    return request.app.state.metadata_provider


def get_request_context(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> RequestContext:
    """Build the caller's context from the session cookie (or a Bearer token for API clients)."""
    token = request.cookies.get(get_settings().session_cookie_name)
    if not token and credentials:
        token = (credentials.credentials or "").strip()
    return RequestContext(
        session=sessions.resolve(token),
        token=token,
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("user-agent") or "").strip() or None,
    )


def require_session(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not ctx.is_authenticated:
        raise AuthError()
    return ctx


def redirect_if_authenticated(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    """Logged-in callers have no business on the login/registration pages: send them home."""
    if ctx.is_authenticated:
        raise HTTPException(status_code=303, headers={"Location": "/"})
    return ctx


def get_verification_service(
    db: Session = Depends(get_db),
    store: RegistrationStore = Depends(get_registration_store),
    sessions: SessionManager = Depends(get_session_manager),
    mailer=Depends(get_mailer),
) -> VerificationService:
    return VerificationService(db, store, sessions, mailer)


def get_watchlist_service(
    db: Session = Depends(get_db),
    provider=Depends(get_metadata_provider),
) -> WatchlistService:
    return WatchlistService(db, provider)
