import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..config import Settings, get_settings
from ..context import AppContext
from ..errors import SessionError, TrameError
from ..logging_config import setup_logging

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)


# Pydantic models for serialization and validation

class Credentials(BaseModel):
    username: str = Field(..., description="Account username (case-sensitive)")
    password: str = Field(..., description="Account password")

class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    created_at: datetime

class Token(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime

class NoteUpdate(BaseModel):
    content: str = Field(..., description="Full replacement text of the note")

class NoteOut(BaseModel):
    content: str
    updated_at: Optional[datetime] = None
    pending: bool = Field(False, description="True while the latest edit is not yet persisted")
    flush_failed: bool = Field(False, description="True if persisting the pending edit has failed")

class EditAccepted(BaseModel):
    status: str = "accepted"
    seq: int


# Dependencies

def get_context(request: Request) -> AppContext:
    return request.app.state.context

def get_token(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    ctx: AppContext = Depends(get_context),
) -> Optional[str]:
    """Bearer header first, session cookie second."""
    return bearer or request.cookies.get(ctx.settings.session_cookie_name)

def get_current_account_id(
    token: Optional[str] = Depends(get_token),
    ctx: AppContext = Depends(get_context),
) -> str:
    """Validates the session token and returns the owning account id."""
    try:
        return ctx.sessions.validate(token)
    except SessionError as exc:
        logger.info(f"Rejected session token: {type(exc).__name__}")
        raise


def _register_error_handlers(app: FastAPI):

    @app.exception_handler(TrameError)
    def trame_error_handler(request: Request, exc: TrameError):
        if exc.http_status >= 500:
            logger.error(
                f"{type(exc).__name__}: {exc.message}",
                extra={"error_code": exc.code, "path": request.url.path},
            )
        else:
            logger.info(
                f"{type(exc).__name__}: {exc.message}",
                extra={"error_code": exc.code, "path": request.url.path},
            )
        return JSONResponse(
            status_code=exc.http_status,
            content=exc.to_response(),
            headers=exc.headers(),
        )

    @app.exception_handler(HTTPException)
    def custom_http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Invalid request data.",
                "code": "VALIDATION_ERROR",
                "errors": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                    }
                    for e in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred.", "code": "INTERNAL_ERROR"},
        )


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Builds the FastAPI application.

    The AppContext is created when the app starts and closed (flushing any
    pending note edits) when it stops.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format)
        app.state.context = AppContext.create(settings)
        logger.info("trame API started")
        try:
            yield
        finally:
            logger.info("trame API shutting down")
            app.state.context.close()

    app = FastAPI(
        title="trame API",
        description="Single-account note service with debounced persistence.",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Authentication", "description": "Signup, login, logout and profile"},
            {"name": "Note", "description": "Read and edit the account's note"},
            {"name": "General", "description": "Liveness"},
        ],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    _register_error_handlers(app)

    # Health Check
    @app.get("/api/health", summary="Health Check", tags=["General"])
    def health_check():
        """Liveness only."""
        return {"status": "ok"}

    #####################
    # AUTH ENDPOINTS
    #####################

    # PUBLIC_INTERFACE
    @app.post("/api/signup", response_model=AccountOut, status_code=201, summary="Create the account", tags=["Authentication"])
    def signup(creds: Credentials, ctx: AppContext = Depends(get_context)):
        """
        Register an account.
        Returns the new account (never the password hash).
        """
        account_id = ctx.credentials.create_account(creds.username, creds.password)
        return ctx.credentials.get_account(account_id)

    # PUBLIC_INTERFACE
    @app.post("/api/login", response_model=Token, summary="Login and get a session token", tags=["Authentication"])
    def login(creds: Credentials, response: Response, ctx: AppContext = Depends(get_context)):
        """
        Exchange username/password for a session token.
        The token is returned in the body and also set as an HttpOnly cookie.
        """
        account_id = ctx.credentials.verify(creds.username, creds.password)
        issued = ctx.sessions.issue(account_id)
        response.set_cookie(
            ctx.settings.session_cookie_name,
            issued.token,
            max_age=ctx.settings.session_ttl_seconds,
            httponly=True,
            samesite="lax",
        )
        return Token(token=issued.token, expires_at=issued.expires_at)

    # PUBLIC_INTERFACE
    @app.post("/api/logout", summary="Revoke the current session", tags=["Authentication"])
    def logout(
        response: Response,
        token: Optional[str] = Depends(get_token),
        account_id: str = Depends(get_current_account_id),
        ctx: AppContext = Depends(get_context),
    ):
        """
        Persist any pending note edit, then revoke the session.
        The session is revoked even if the flush fails.
        """
        try:
            ctx.coordinator.force_flush(account_id)
        finally:
            ctx.sessions.revoke(token)
            logger.info("Logged out", extra={"account_id": account_id})
        response.delete_cookie(ctx.settings.session_cookie_name)
        return {"status": "logged_out"}

    # PUBLIC_INTERFACE
    @app.get("/api/me", response_model=AccountOut, summary="Get current account", tags=["Authentication"])
    def get_profile(account_id: str = Depends(get_current_account_id), ctx: AppContext = Depends(get_context)):
        """Details about the authenticated account."""
        return ctx.credentials.get_account(account_id)

    #####################
    # NOTE ENDPOINTS
    #####################

    # PUBLIC_INTERFACE
    @app.get("/api/note", response_model=NoteOut, summary="Get the note", tags=["Note"])
    def get_note(account_id: str = Depends(get_current_account_id), ctx: AppContext = Depends(get_context)):
        """
        Returns the latest accepted edit, whether or not it has been persisted yet.
        """
        snapshot = ctx.coordinator.read(account_id)
        return NoteOut(
            content=snapshot.content,
            updated_at=snapshot.updated_at,
            pending=snapshot.pending,
            flush_failed=snapshot.flush_failed,
        )

    # PUBLIC_INTERFACE
    @app.put("/api/note", response_model=EditAccepted, status_code=202, summary="Replace the note", tags=["Note"])
    def update_note(
        note_update: NoteUpdate,
        account_id: str = Depends(get_current_account_id),
        ctx: AppContext = Depends(get_context),
    ):
        """
        Accepts the edit into the debounce buffer; it is persisted after a
        quiet period, at logout, or at shutdown.
        """
        if len(note_update.content) > ctx.settings.max_note_length:
            raise HTTPException(
                status_code=400,
                detail=f"Note content exceeds {ctx.settings.max_note_length} characters.",
            )
        seq = ctx.coordinator.submit_edit(account_id, note_update.content)
        return EditAccepted(seq=seq)

    # Static frontend, mounted after the API routes so /api/* takes precedence
    if settings.static_dir and os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


app = create_app()
