"""PaperChat - arXiv search, paper chat and personal library.

A FastAPI service that stores a user's library, recently viewed papers
and chat history, plus the client-side ``AppContext`` that keeps a UI's
view of that state in sync with the server.
"""

__version__ = "1.0.0"

from paperchat.config import Settings
from paperchat.models.chat import ChatMessage
from paperchat.models.paper import Paper

__all__ = ["ChatMessage", "Paper", "Settings", "__version__"]
