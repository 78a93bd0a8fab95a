"""Client-side store adapter: the web API seen as one coroutine per operation."""

import logging
from typing import Any, Optional, Protocol

import httpx

from paperchat.exceptions import StoreError
from paperchat.models.chat import ChatMessage
from paperchat.models.paper import Paper

logger = logging.getLogger(__name__)

TIMEOUT = 30.0


class PaperStore(Protocol):
    """Operations ``AppContext`` needs from a persistent store.

    Every method raises ``StoreError`` when the store cannot be reached
    or rejects the request.
    """

    async def fetch_library(self) -> list[Paper]: ...

    async def fetch_history(self) -> list[Paper]: ...

    async def fetch_recently_viewed(self) -> list[Paper]: ...

    async def save_to_library(self, paper: Paper) -> bool: ...

    async def remove_from_library(self, link: str) -> None: ...

    async def record_view(self, paper: Paper) -> None: ...

    async def remove_recently_viewed(self, link: str) -> None: ...

    async def add_history(self, paper: Paper) -> None: ...

    async def remove_history(self, link: str) -> None: ...

    async def save_message(self, paper: Paper, message: ChatMessage) -> None: ...

    async def fetch_messages(self, link: str) -> list[ChatMessage]: ...

    async def send_chat(self, paper: Paper, text: str) -> str: ...

    async def search(self, query: str, max_results: Optional[int] = None) -> list[Paper]: ...


class ApiStore:
    """``PaperStore`` backed by the PaperChat web API over httpx.

    Args:
        base_url: Root URL of the API server
        token: Session token sent as a bearer credential
        transport: Optional httpx transport (tests pass an ASGI transport)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e
        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.is_error:
            raise StoreError(
                f"{method} {path} returned {response.status_code}: {_error_message(response)}",
                status=response.status_code,
            )
        return response

    async def _papers(self, path: str) -> list[Paper]:
        response = await self._request("GET", path)
        return [Paper.from_dict(item) for item in response.json()]

    # ── Account ──────────────────────────────────────────────────────

    async def signup(self, name: str, email: str, password: str) -> None:
        await self._request(
            "POST", "/api/auth/signup", json={"name": name, "email": email, "password": password}
        )

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Sign in and keep the session token for later calls."""
        response = await self._request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        data = response.json()
        self.token = data["token"]
        return data["user"]

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout")
        self.token = None

    # ── Paper lists ──────────────────────────────────────────────────

    async def fetch_library(self) -> list[Paper]:
        return await self._papers("/api/library")

    async def fetch_history(self) -> list[Paper]:
        return await self._papers("/api/history")

    async def fetch_recently_viewed(self) -> list[Paper]:
        return await self._papers("/api/recently-viewed")

    async def save_to_library(self, paper: Paper) -> bool:
        """Returns True if newly saved, False if it was already there."""
        response = await self._request("POST", "/api/library", json=paper.to_dict())
        return response.status_code == 201

    async def remove_from_library(self, link: str) -> None:
        await self._request("DELETE", "/api/library", params={"paperLink": link})

    async def record_view(self, paper: Paper) -> None:
        await self._request("POST", "/api/recently-viewed", json=paper.to_dict())

    async def remove_recently_viewed(self, link: str) -> None:
        await self._request("DELETE", "/api/recently-viewed", params={"paperLink": link})

    async def add_history(self, paper: Paper) -> None:
        await self._request("POST", "/api/history", json=paper.to_dict())

    async def remove_history(self, link: str) -> None:
        await self._request("DELETE", "/api/history", params={"paperLink": link})

    # ── Chat ─────────────────────────────────────────────────────────

    async def save_message(self, paper: Paper, message: ChatMessage) -> None:
        await self._request(
            "POST",
            "/api/chat/messages",
            json={"paper": paper.to_dict(), "message": message.to_dict()},
        )

    async def fetch_messages(self, link: str) -> list[ChatMessage]:
        response = await self._request("GET", "/api/chat", params={"paperLink": link})
        return [ChatMessage.from_dict(item) for item in response.json()]

    async def send_chat(self, paper: Paper, text: str) -> str:
        """Ask a question about *paper*; the server persists both sides."""
        response = await self._request(
            "POST", "/api/chat", json={"paper": paper.to_dict(), "userMessage": text}
        )
        return response.json()["response"]

    # ── Search ───────────────────────────────────────────────────────

    async def search(self, query: str, max_results: Optional[int] = None) -> list[Paper]:
        """Search arXiv through the API.

        Without *max_results* this is the browse search (newest first);
        with it, the top *max_results* papers by relevance.
        """
        if max_results is None:
            response = await self._request("GET", "/api/search-arxiv", params={"query": query})
        else:
            response = await self._request(
                "GET", "/api/search", params={"q": query, "max": max_results}
            )
        return [Paper.from_dict(item) for item in response.json().get("papers", [])]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text[:200]
