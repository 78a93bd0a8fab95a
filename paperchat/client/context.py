"""Client-side mirror of the signed-in user's papers and chats.

``AppContext`` holds what a UI shows: the active paper, the library,
recently viewed papers, chat history and browse results.  Every intent
updates this local state first and then persists through a
:class:`~paperchat.client.store.PaperStore`:

* Adding to the library waits for the store.  A failed save leaves the
  library as it was, and only one save can be in flight at a time
  (``is_saving`` covers all papers, not just the one being saved).
* Removals are applied locally right away.  A failed remote delete is
  logged and the local removal stands, so the view can disagree with
  the server until the next ``load()``.
* Placeholder messages (``ChatMessage.placeholder()``) exist only here
  and are never sent to the store.

Store failures are logged and never raised to the caller.  Listeners
added with ``subscribe`` are called after each state change.
"""

import asyncio
import logging
from typing import Callable, Optional

from paperchat.exceptions import StoreError, ValidationError
from paperchat.models.chat import BOT_ROLE, USER_ROLE, ChatMessage
from paperchat.models.paper import Paper, contains_link, unique_by_link, without_link
from paperchat.client.store import PaperStore

logger = logging.getLogger(__name__)

DEFAULT_BROWSE_QUERY = "large language models"
CHAT_ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."
SUMMARY_PROMPT = "Please provide a concise summary of the key findings for this paper."
SUMMARY_ERROR_MESSAGE = "Sorry, I was unable to generate a summary."

Listener = Callable[[], None]


class AppContext:
    """Optimistic, best-effort synchronizer between UI state and a store."""

    def __init__(self, store: PaperStore, authenticated: bool = True):
        self.store = store
        self.authenticated = authenticated
        self._listeners: list[Listener] = []
        self.reset()

    def reset(self) -> None:
        """Drop all cached state; the next ``load()`` refills it."""
        self.current_paper: Optional[Paper] = None
        self.saved_papers: list[Paper] = []
        self.recently_viewed_papers: list[Paper] = []
        self.chat_history_papers: list[Paper] = []
        self.chat_history: dict[str, list[ChatMessage]] = {}
        self.browse_query = DEFAULT_BROWSE_QUERY
        self.browse_papers: list[Paper] = []
        self.browse_searched = False
        self.is_loading = True
        self.is_saving = False
        self._notify()

    # ── Change notification ──────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every state change; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ── Initial load ─────────────────────────────────────────────────

    async def load(self) -> None:
        """Fetch library, history and recently viewed papers concurrently.

        Each list is installed only if its own fetch succeeded.
        """
        if not self.authenticated:
            self.is_loading = False
            self._notify()
            return
        try:
            library, history, recent = await asyncio.gather(
                self.store.fetch_library(),
                self.store.fetch_history(),
                self.store.fetch_recently_viewed(),
                return_exceptions=True,
            )
            if isinstance(library, BaseException):
                logger.error("Failed to load library: %s", library)
            else:
                self.saved_papers = unique_by_link(library)
            if isinstance(history, BaseException):
                logger.error("Failed to load chat history: %s", history)
            else:
                self.chat_history_papers = unique_by_link(history)
            if isinstance(recent, BaseException):
                logger.error("Failed to load recently viewed papers: %s", recent)
            else:
                self.recently_viewed_papers = unique_by_link(recent)
        finally:
            self.is_loading = False
            self._notify()

    # ── Current paper / recently viewed ──────────────────────────────

    async def set_current_paper(self, paper: Optional[Paper]) -> None:
        """Open *paper*; papers not yet chatted about move to the front of recently viewed."""
        self.current_paper = paper
        if paper is None or contains_link(self.chat_history_papers, paper.link):
            self._notify()
            return
        self.recently_viewed_papers = [paper, *without_link(self.recently_viewed_papers, paper.link)]
        self._notify()
        try:
            await self.store.record_view(paper)
        except StoreError as e:
            logger.warning("Failed to record view of %s: %s", paper.link, e)

    async def remove_paper_from_recently_viewed(self, link: str) -> None:
        self.recently_viewed_papers = without_link(self.recently_viewed_papers, link)
        self._notify()
        try:
            await self.store.remove_recently_viewed(link)
        except StoreError as e:
            logger.warning("Failed to remove %s from recently viewed: %s", link, e)

    # ── Library ──────────────────────────────────────────────────────

    def is_paper_in_library(self, link: str) -> bool:
        return contains_link(self.saved_papers, link)

    async def add_paper_to_library(self, paper: Paper) -> bool:
        """Save *paper* to the library.

        Returns:
            True if the store accepted it and it was added locally; False
            if it was already saved, another save is in flight, or the
            store call failed
        """
        if self.is_saving or self.is_paper_in_library(paper.link):
            return False
        self.is_saving = True
        self._notify()
        try:
            await self.store.save_to_library(paper)
        except StoreError as e:
            logger.error("Failed to save %s to library: %s", paper.link, e)
            return False
        else:
            if not self.is_paper_in_library(paper.link):
                self.saved_papers = [*self.saved_papers, paper]
            return True
        finally:
            self.is_saving = False
            self._notify()

    async def remove_paper_from_library(self, link: str) -> None:
        self.saved_papers = without_link(self.saved_papers, link)
        self._notify()
        try:
            await self.store.remove_from_library(link)
        except StoreError as e:
            logger.warning("Failed to remove %s from library: %s", link, e)

    # ── Chat history ─────────────────────────────────────────────────

    async def remove_paper_from_history(self, link: str) -> None:
        """Forget a paper's conversation, locally and in the store."""
        self.chat_history_papers = without_link(self.chat_history_papers, link)
        self.chat_history.pop(link, None)
        self._notify()
        try:
            await self.store.remove_history(link)
        except StoreError as e:
            logger.warning("Failed to remove %s from history: %s", link, e)

    def get_chat_for_paper(self, link: str) -> list[ChatMessage]:
        return list(self.chat_history.get(link, []))

    async def add_message_to_chat(
        self,
        paper: Paper,
        message: ChatMessage,
        persist: bool = True,
    ) -> None:
        """Append *message* to the paper's conversation.

        The first user message of a conversation moves the paper from
        recently viewed into history.  Transient messages are kept local.
        """
        starts_conversation = self._append_message(paper, message)
        if persist and not message.transient:
            try:
                await self.store.save_message(paper, message)
            except StoreError as e:
                logger.warning("Failed to save message for %s: %s", paper.link, e)
        if starts_conversation:
            await self._persist_first_message(paper)

    def _append_message(self, paper: Paper, message: ChatMessage) -> bool:
        """Apply the local side of adding *message*; True if it opens the conversation."""
        messages = self.chat_history.setdefault(paper.link, [])
        starts_conversation = message.is_user and not messages
        messages.append(message)
        if starts_conversation:
            if not contains_link(self.chat_history_papers, paper.link):
                self.chat_history_papers = [paper, *self.chat_history_papers]
            self.recently_viewed_papers = without_link(self.recently_viewed_papers, paper.link)
        self._notify()
        return starts_conversation

    async def _persist_first_message(self, paper: Paper) -> None:
        try:
            await self.store.add_history(paper)
        except StoreError as e:
            logger.warning("Failed to add %s to history: %s", paper.link, e)
        try:
            await self.store.remove_recently_viewed(paper.link)
        except StoreError as e:
            logger.warning("Failed to remove %s from recently viewed: %s", paper.link, e)

    def replace_last_chat_message(self, link: str, message: ChatMessage) -> None:
        """Overwrite the final message (usually the placeholder); no-op if there is none."""
        messages = self.chat_history.get(link)
        if not messages:
            return
        messages[-1] = message
        self._notify()

    async def load_chat_for_paper(self, paper: Paper) -> None:
        """Fetch the stored conversation unless one is already cached."""
        if self.chat_history.get(paper.link):
            return
        try:
            messages = await self.store.fetch_messages(paper.link)
        except StoreError as e:
            logger.error("Failed to load chat for %s: %s", paper.link, e)
            return
        # Messages added locally while the fetch was pending win.
        if not messages or self.chat_history.get(paper.link):
            return
        self.chat_history[paper.link] = list(messages)
        if not contains_link(self.chat_history_papers, paper.link):
            self.chat_history_papers = [paper, *self.chat_history_papers]
        self.recently_viewed_papers = without_link(self.recently_viewed_papers, paper.link)
        self._notify()

    async def send_message(self, paper: Paper, text: str) -> ChatMessage:
        """Ask a question and wait for the reply.

        Shows a placeholder while the reply is pending and replaces it
        with the answer, or with ``CHAT_ERROR_MESSAGE`` if the call fails.

        Raises:
            ValidationError: If *text* is blank
        """
        text = text.strip()
        if not text:
            raise ValidationError("Message content is required")
        return await self._exchange(paper, text, CHAT_ERROR_MESSAGE)

    async def request_summary(self, paper: Paper) -> Optional[ChatMessage]:
        """Open a new conversation with a summary request.

        Returns None without calling the store if the paper already has
        a conversation.
        """
        if self.chat_history.get(paper.link):
            return None
        return await self._exchange(paper, SUMMARY_PROMPT, SUMMARY_ERROR_MESSAGE)

    async def _exchange(self, paper: Paper, text: str, error_message: str) -> ChatMessage:
        # The chat endpoint persists both sides of the exchange.
        starts_conversation = self._append_message(paper, ChatMessage(role=USER_ROLE, content=text))
        self._append_message(paper, ChatMessage.placeholder())
        if not starts_conversation:
            return await self._ask(paper, text, error_message)
        reply, _ = await asyncio.gather(
            self._ask(paper, text, error_message),
            self._persist_first_message(paper),
        )
        return reply

    async def _ask(self, paper: Paper, text: str, error_message: str) -> ChatMessage:
        try:
            content = await self.store.send_chat(paper, text)
        except StoreError as e:
            logger.error("Chat request for %s failed: %s", paper.link, e)
            content = error_message
        reply = ChatMessage(role=BOT_ROLE, content=content)
        self.replace_last_chat_message(paper.link, reply)
        return reply

    # ── Browse ───────────────────────────────────────────────────────

    async def search(self, query: str, max_results: Optional[int] = None) -> list[Paper]:
        """Run a browse search and return the current browse results.

        On failure the previous results stay and are returned unchanged.
        """
        self.browse_query = query
        self.browse_searched = True
        self._notify()
        try:
            papers = await self.store.search(query, max_results)
        except StoreError as e:
            logger.error("Search for %r failed: %s", query, e)
            return self.browse_papers
        self.browse_papers = unique_by_link(papers)
        self._notify()
        return self.browse_papers
