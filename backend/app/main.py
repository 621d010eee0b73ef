"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings, get_settings
from app.db.session import dispose_engine, get_session_factory
from app.routers import conversations, realtime
from app.services.conversations import list_conversations
from app.services.errors import AuthenticationError, StorageError, ValidationError
from app.services.realtime import ChatChannel

logger = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _warm_backend_state(session_factory: sessionmaker[Session]) -> None:
    """Prime the DB connection and the inbox aggregate at process start."""

    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
            list_conversations(db, limit=1, offset=0)
    except Exception:
        logger.exception("Backend warm-up failed; continuing without startup pre-warm.")


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings: Settings = application.state.settings
    owns_engine = application.state.session_factory is None
    if owns_engine:
        application.state.session_factory = get_session_factory()
    application.state.chat_channel = ChatChannel(
        application.state.session_factory,
        refresh_after_seconds=settings.inbox_refresh_seconds,
    )
    _warm_backend_state(application.state.session_factory)
    logger.info("Application starting up")
    try:
        yield
    finally:
        logger.info("Application shutting down")
        if owns_engine:
            dispose_engine()
            application.state.session_factory = None


async def _validation_error_handler(_: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def _storage_error_handler(_: Request, exc: StorageError) -> JSONResponse:
    logger.error("chat.storage_error error=%s cause=%r", exc, exc.__cause__)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def _authentication_error_handler(_: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": str(exc)}, headers={"WWW-Authenticate": "Bearer"})


def create_app(
    *,
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> FastAPI:
    """Build the API; ``session_factory`` overrides the configured database."""

    settings = settings or get_settings()
    _configure_logging(settings)

    application = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    application.state.settings = settings
    application.state.session_factory = session_factory

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(ValidationError, _validation_error_handler)
    application.add_exception_handler(StorageError, _storage_error_handler)
    application.add_exception_handler(AuthenticationError, _authentication_error_handler)

    application.include_router(conversations.router, tags=["conversations"])
    application.include_router(realtime.router, tags=["realtime"])

    @application.get("/health")
    def health() -> dict[str, str]:
        """Simple health check endpoint."""

        return {"status": "ok"}

    return application


app = create_app()
