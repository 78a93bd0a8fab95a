"""Application services and request dependencies."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from paperchat.config import Settings
from paperchat.database.repository import Repository
from paperchat.exceptions import AuthenticationError
from paperchat.models.chat import User
from paperchat.services.arxiv_service import ArxivService
from paperchat.services.auth_service import AuthService
from paperchat.services.chat_service import CompletionClient, ConversationResponder

logger = logging.getLogger(__name__)

SESSION_COOKIE = "paperchat_session"


# ============================================================================
# Service container
# ============================================================================


@dataclass
class AppState:
    """All runtime services for one app instance.

    Built once per ``create_app`` call and stored on ``app.state.services``
    so tests can construct a fresh app around a temporary database.
    """

    settings: Settings
    repo: Repository
    auth: AuthService
    arxiv: ArxivService
    responder: ConversationResponder

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppState":
        repo = Repository(settings.db_path)
        completion = CompletionClient.from_settings(settings)
        if completion is None:
            logger.info("No active LLM profile; chat uses rule-based replies")
        return cls(
            settings=settings,
            repo=repo,
            auth=AuthService(repo, session_days=settings.session_days),
            arxiv=ArxivService(settings.arxiv_base_url, timeout=settings.http_timeout),
            responder=ConversationResponder(completion),
        )


# ============================================================================
# Dependencies
# ============================================================================


def get_state(request: Request) -> AppState:
    """Dependency: the service container of the running app."""
    return request.app.state.services


def session_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def current_user(request: Request) -> User:
    """Dependency: the authenticated user, or 401."""
    state = get_state(request)
    user = state.auth.resolve(session_token(request))
    if user is None:
        raise AuthenticationError("Not authenticated")
    return user
