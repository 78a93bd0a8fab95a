"""arXiv API client: search and fetch-by-id, normalized to ``Paper``."""

import logging
from typing import Any, Optional

import feedparser
import httpx

from paperchat.exceptions import UpstreamError, ValidationError
from paperchat.models.paper import Paper
from paperchat.utils.text import (
    clean_abstract,
    clean_title,
    ensure_list,
    extract_arxiv_id,
    normalize_whitespace,
    parse_published,
)

logger = logging.getLogger(__name__)

ARXIV_API_URL = "http://export.arxiv.org/api/query"
TIMEOUT = 20.0
SORT_OPTIONS = ("relevance", "submittedDate", "lastUpdatedDate")


class ArxivService:
    """Async client for the arXiv Atom query API."""

    def __init__(
        self,
        base_url: str = ARXIV_API_URL,
        timeout: float = TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the arXiv client.

        Args:
            base_url: Query endpoint
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    async def search(
        self,
        query: str,
        max_results: int = 15,
        sort_by: str = "submittedDate",
    ) -> list[Paper]:
        """Search arXiv across all fields.

        Args:
            query: Free-text query
            max_results: Maximum number of entries to return
            sort_by: 'relevance', 'submittedDate' or 'lastUpdatedDate'

        Returns:
            Papers in upstream order (most relevant / most recent first)

        Raises:
            ValidationError: If the query is empty
            UpstreamError: On HTTP or transport failure
        """
        query = normalize_whitespace(query)
        if not query:
            raise ValidationError("Search query is required")
        if sort_by not in SORT_OPTIONS:
            sort_by = "relevance"
        params = {
            "search_query": f"all:{query}",
            "start": 0,
            "max_results": max(1, int(max_results)),
            "sortBy": sort_by,
            "sortOrder": "descending",
        }
        return await self._query(params)

    async def get_by_id(self, arxiv_id: str) -> Optional[Paper]:
        """Fetch a single paper by arXiv id (or abs/pdf URL).

        Returns:
            The paper, or None if arXiv has no such entry
        """
        normalized = extract_arxiv_id(arxiv_id) or arxiv_id.strip()
        if not normalized:
            raise ValidationError("arXiv id is required")
        papers = await self._query({"id_list": normalized, "max_results": 1})
        return papers[0] if papers else None

    async def _query(self, params: dict[str, Any]) -> list[Paper]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(self.base_url, params=params)
        except httpx.HTTPError as e:
            logger.warning("arXiv request failed: %s", e)
            raise UpstreamError("Failed to fetch data from arXiv API.", details=str(e)) from e

        if response.status_code != 200:
            raise UpstreamError(
                "Failed to fetch data from arXiv API.",
                details=f"arXiv API responded with status {response.status_code}",
            )
        return parse_feed(response.text)


# ---------------------------------------------------------------------------
# Feed normalization
# ---------------------------------------------------------------------------

def parse_feed(xml_text: str) -> list[Paper]:
    """Parse an arXiv Atom feed into normalized papers.

    Entries without an id are skipped, as is the pseudo-entry arXiv
    returns for malformed queries.
    """
    parsed = feedparser.parse(xml_text)
    papers: list[Paper] = []
    for entry in ensure_list(parsed.get("entries")):
        paper = _entry_to_paper(entry)
        if paper is not None:
            papers.append(paper)
    return papers


def _entry_to_paper(entry: dict[str, Any]) -> Optional[Paper]:
    link = normalize_whitespace(entry.get("id"))
    if not link or "/api/errors" in link:
        return None
    return Paper(
        title=clean_title(entry.get("title")),
        link=link,
        summary=clean_abstract(entry.get("summary")),
        authors=_authors(entry),
        published=parse_published(entry),
        categories=[
            t.get("term") for t in ensure_list(entry.get("tags")) if t.get("term")
        ],
        pdf_url=_pdf_link(entry),
    )


def _authors(entry: dict[str, Any]) -> list[str]:
    """Author names as a list, whether the feed gave one author or many."""
    names: list[str] = []
    for author in ensure_list(entry.get("authors")):
        name = author.get("name") if isinstance(author, dict) else author
        name = normalize_whitespace(name)
        if name:
            names.append(name)
    if not names:
        single = normalize_whitespace(entry.get("author"))
        if single:
            names.append(single)
    return names or ["Unknown"]


def _pdf_link(entry: dict[str, Any]) -> Optional[str]:
    for link in ensure_list(entry.get("links")):
        if link.get("title") == "pdf" or link.get("type") == "application/pdf":
            return link.get("href")
    return None
