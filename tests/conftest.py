from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Optional

# Ensure repository root is on the import path for local package imports during tests.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx
import pytest
from fastapi.testclient import TestClient

from paperchat.config import Settings
from paperchat.database.repository import Repository
from paperchat.exceptions import StoreError
from paperchat.models.chat import ChatMessage
from paperchat.models.paper import Paper
from paperchat.services.arxiv_service import ArxivService
from paperchat.services.auth_service import AuthService
from paperchat.services.chat_service import ConversationResponder
from paperchat.web.app import create_app
from paperchat.web.state import AppState

ARXIV_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <title>ArXiv Query</title>
  <entry>
    <id>http://arxiv.org/abs/1706.03762v7</id>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All
      You Need</title>
    <summary>  The dominant sequence transduction models are based on complex
      recurrent networks. We propose a new simple network architecture, the
      Transformer. Experiments show these models achieve superior results.  </summary>
    <author><name>Ashish Vaswani</name></author>
    <author><name>Noam Shazeer</name></author>
    <link href="http://arxiv.org/abs/1706.03762v7" rel="alternate" type="text/html"/>
    <link title="pdf" href="http://arxiv.org/pdf/1706.03762v7" rel="related" type="application/pdf"/>
    <category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
  <entry>
    <id>http://arxiv.org/abs/1810.04805v2</id>
    <published>2018-10-11T00:50:01Z</published>
    <title>BERT: Pre-training of Deep Bidirectional Transformers</title>
    <summary>We introduce a new language representation model called BERT.</summary>
    <author><name>Jacob Devlin</name></author>
    <category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
</feed>
"""

EMPTY_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom"><title>ArXiv Query</title></feed>
"""


def feed_transport(feed: str = ARXIV_FEED, status: int = 200, calls: Optional[list] = None):
    """MockTransport answering every request with *feed*."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status, text=feed)

    return httpx.MockTransport(handler)


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    monkeypatch.delenv("PAPERCHAT_LLM_API_KEY", raising=False)
    Settings.reset()
    yield
    Settings.reset()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(db_path=tmp_path / "test.db", metadata_dir=tmp_path / ".metadata")


@pytest.fixture
def repo(settings) -> Repository:
    return Repository(settings.db_path)


@pytest.fixture
def app_state(settings, repo) -> AppState:
    return AppState(
        settings=settings,
        repo=repo,
        auth=AuthService(repo, session_days=settings.session_days),
        arxiv=ArxivService(settings.arxiv_base_url, transport=feed_transport()),
        responder=ConversationResponder(),
    )


@pytest.fixture
def app(app_state):
    return create_app(state=app_state)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client) -> dict[str, str]:
    client.post(
        "/api/auth/signup",
        json={"name": "Ada", "email": "ada@example.com", "password": "secret123"},
    )
    response = client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": "secret123"}
    )
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def paper() -> Paper:
    return Paper(
        title="Attention Is All You Need",
        link="http://arxiv.org/abs/1706.03762v7",
        summary=(
            "The dominant sequence transduction models are based on complex recurrent "
            "networks. We propose a novel network architecture, the Transformer, based "
            "solely on attention. Experiments show the model achieves superior results "
            "in quality while being more efficient."
        ),
        authors=["Ashish Vaswani", "Noam Shazeer", "Niki Parmar", "Jakob Uszkoreit"],
    )


@pytest.fixture
def other_paper() -> Paper:
    return Paper(
        title="BERT: Pre-training of Deep Bidirectional Transformers",
        link="http://arxiv.org/abs/1810.04805v2",
        summary="We introduce a new language representation model called BERT.",
        authors=["Jacob Devlin"],
    )


class FakeStore:
    """In-memory ``PaperStore`` that records calls and can be told to fail.

    ``fail`` holds method names that raise ``StoreError``.  ``gates`` maps a
    method name to an ``asyncio.Event`` the call waits on before answering.
    """

    def __init__(self, **data: Any):
        self.library: list[Paper] = list(data.get("library", []))
        self.history: list[Paper] = list(data.get("history", []))
        self.recent: list[Paper] = list(data.get("recent", []))
        self.messages: dict[str, list[ChatMessage]] = dict(data.get("messages", {}))
        self.search_results: list[Paper] = list(data.get("search_results", []))
        self.reply = data.get("reply", "A helpful answer.")
        self.fail: set[str] = set()
        self.gates: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []

    async def _call(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.fail:
            raise StoreError(f"{name} failed", status=500)

    def called(self, name: str) -> list[Any]:
        return [arg for call, arg in self.calls if call == name]

    async def fetch_library(self) -> list[Paper]:
        await self._call("fetch_library")
        return list(self.library)

    async def fetch_history(self) -> list[Paper]:
        await self._call("fetch_history")
        return list(self.history)

    async def fetch_recently_viewed(self) -> list[Paper]:
        await self._call("fetch_recently_viewed")
        return list(self.recent)

    async def save_to_library(self, paper: Paper) -> bool:
        await self._call("save_to_library", paper)
        self.library.append(paper)
        return True

    async def remove_from_library(self, link: str) -> None:
        await self._call("remove_from_library", link)

    async def record_view(self, paper: Paper) -> None:
        await self._call("record_view", paper)

    async def remove_recently_viewed(self, link: str) -> None:
        await self._call("remove_recently_viewed", link)

    async def add_history(self, paper: Paper) -> None:
        await self._call("add_history", paper)

    async def remove_history(self, link: str) -> None:
        await self._call("remove_history", link)

    async def save_message(self, paper: Paper, message: ChatMessage) -> None:
        await self._call("save_message", message)

    async def fetch_messages(self, link: str) -> list[ChatMessage]:
        await self._call("fetch_messages", link)
        return list(self.messages.get(link, []))

    async def send_chat(self, paper: Paper, text: str) -> str:
        await self._call("send_chat", text)
        return self.reply

    async def search(self, query: str, max_results: Optional[int] = None) -> list[Paper]:
        await self._call("search", query)
        return list(self.search_results)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
