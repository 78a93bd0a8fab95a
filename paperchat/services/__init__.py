"""Service layer."""

from paperchat.services.arxiv_service import ArxivService
from paperchat.services.auth_service import AuthService
from paperchat.services.chat_service import (
    ChatReply,
    CompletionClient,
    ConversationResponder,
)

__all__ = [
    "ArxivService",
    "AuthService",
    "ChatReply",
    "CompletionClient",
    "ConversationResponder",
]
