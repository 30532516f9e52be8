"""Registration, email verification, login and logout."""
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.dependencies import (
    get_registration_store,
    get_request_context,
    get_session_manager,
    get_verification_service,
    redirect_if_authenticated,
    require_session,
)
from app.errors import CodeMismatchError, TokenError
from app.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    SessionResponse,
    VerifyRequest,
)
from app.services.registration_store import RegistrationStore
from app.services.sessions import RequestContext, SessionManager
from app.services.verification import VerificationService

router = APIRouter(tags=["auth"])


def _set_session_cookie(response, token: str) -> None:
    s = get_settings()
    response.set_cookie(
        s.session_cookie_name,
        token,
        max_age=s.session_max_age_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=s.is_production,
    )


def _home_with_session(token: str) -> RedirectResponse:
    response = RedirectResponse("/", status_code=303)
    _set_session_cookie(response, token)
    return response


@router.get("/register")
def register_form(_: RequestContext = Depends(redirect_if_authenticated)):
    return {"form": "register"}


@router.post("/register")
def register(
    data: RegisterRequest,
    _: RequestContext = Depends(redirect_if_authenticated),
    service: VerificationService = Depends(get_verification_service),
):
    token = service.register(data.username, data.email, data.password)
    return RedirectResponse(f"/verify?{urlencode({'token': token})}", status_code=303)


@router.get("/verify")
def verify_form(token: str | None = None, store: RegistrationStore = Depends(get_registration_store)):
    if not token or store.get(token) is None:
        return RedirectResponse("/register", status_code=303)
    return {"form": "verify", "token": token}


@router.post("/verify")
def verify(
    data: VerifyRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: VerificationService = Depends(get_verification_service),
):
    try:
        result = service.verify(data.token, data.code, ctx=ctx)
    except TokenError as e:
        # Unknown or expired: the token is gone, the client has to register again
        return JSONResponse(status_code=e.status_code, content={"error": e.message, "token": None})
    except CodeMismatchError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message, "token": data.token})
    return _home_with_session(result.session_token)


@router.post("/verify/resend")
def resend_verification(
    data: ResendVerificationRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: VerificationService = Depends(get_verification_service),
):
    service.resend(data.token, ctx=ctx)
    return {"status": "ok", "message": "Verification code sent. Check your email."}


@router.get("/login")
def login_form(_: RequestContext = Depends(redirect_if_authenticated)):
    return {"form": "login"}


@router.post("/login")
def login(
    data: LoginRequest,
    ctx: RequestContext = Depends(redirect_if_authenticated),
    db: Session = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
):
    _, token = sessions.login(db, data.email, data.password, ctx)
    return _home_with_session(token)


@router.get("/logout")
def logout(
    ctx: RequestContext = Depends(get_request_context),
    sessions: SessionManager = Depends(get_session_manager),
):
    sessions.logout(ctx)
    response = RedirectResponse("/", status_code=303)
    response.delete_cookie(get_settings().session_cookie_name)
    return response


@router.get("/me", response_model=SessionResponse)
def me(ctx: RequestContext = Depends(require_session)):
    return SessionResponse(**ctx.session.to_public())
