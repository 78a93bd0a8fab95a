"""Client-side state synchronizer and store adapter."""

from paperchat.client.context import CHAT_ERROR_MESSAGE, DEFAULT_BROWSE_QUERY, AppContext
from paperchat.client.store import ApiStore, PaperStore

__all__ = [
    "AppContext",
    "ApiStore",
    "PaperStore",
    "CHAT_ERROR_MESSAGE",
    "DEFAULT_BROWSE_QUERY",
]
