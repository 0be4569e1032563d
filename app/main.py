"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from app.auth import router as auth_router
from app.config import get_settings
from app.db import close_db, init_db
from app.review import close_engines
from app.review_routes import router as review_router

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_NAME = "sift-away"


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler.set_name(_HANDLER_NAME)
    root.addHandler(handler)
    root.setLevel(level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    settings = get_settings()
    configure_logging(settings.log_level)
    await init_db()
    logger.info("DB ready at %s", settings.db_abs_path)
    yield
    await close_engines()
    await close_db()
    logger.info("DB closed")


app = FastAPI(
    title="sift-away",
    version="0.1.0",
    lifespan=lifespan,
)

# Session middleware (signed cookie — stores PKCE verifier + user id).
app.add_middleware(SessionMiddleware, secret_key=get_settings().secret_key)

app.include_router(auth_router)
app.include_router(review_router)


@app.get("/health")
async def health():
    """Simple health-check endpoint."""
    return JSONResponse({"status": "ok", "version": app.version})
