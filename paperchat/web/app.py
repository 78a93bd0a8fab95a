"""FastAPI application for PaperChat."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from paperchat import __version__
from paperchat.config import Settings
from paperchat.exceptions import PaperChatError
from paperchat.web.helpers import error_body
from paperchat.web.routers import auth, chat, library, search
from paperchat.web.state import AppState

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: AppState = app.state.services
    logger.info("PaperChat %s using database %s", __version__, services.settings.db_path)
    yield


def create_app(
    settings: Optional[Settings] = None,
    state: Optional[AppState] = None,
) -> FastAPI:
    """Build the app around *state* (or services built from *settings*)."""
    app = FastAPI(title="PaperChat", version=__version__, lifespan=lifespan)
    app.state.services = state or AppState.from_settings(settings or Settings.load())

    @app.exception_handler(PaperChatError)
    async def handle_app_error(request: Request, exc: PaperChatError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            error_body(str(exc), getattr(exc, "details", None)),
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(error_body("Internal server error"), status_code=500)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    app.include_router(auth.router)
    app.include_router(library.router)
    app.include_router(chat.router)
    app.include_router(search.router)
    return app
