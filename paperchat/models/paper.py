"""Paper data model."""

from dataclasses import dataclass, field
from typing import Any, Optional

from paperchat.utils.text import ensure_list


@dataclass
class Paper:
    """Represents a research paper, identified by its ``link``."""

    title: str
    link: str
    summary: str = ""
    authors: list[str] = field(default_factory=list)

    # Extra arXiv metadata (not persisted by the store)
    published: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    pdf_url: Optional[str] = None

    @property
    def abstract(self) -> str:
        """Alias for ``summary``."""
        return self.summary

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON shape used by the web API."""
        data: dict[str, Any] = {
            "title": self.title,
            "authors": list(self.authors),
            "summary": self.summary,
            "link": self.link,
        }
        if self.published:
            data["published"] = self.published
        if self.categories:
            data["categories"] = list(self.categories)
        if self.pdf_url:
            data["pdf_url"] = self.pdf_url
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Paper":
        """Build a paper from its JSON shape.

        Accepts ``abstract`` in place of ``summary`` and a bare author
        string in place of a list.
        """
        summary = data.get("summary")
        if summary is None:
            summary = data.get("abstract") or ""
        return cls(
            title=str(data.get("title") or ""),
            link=str(data.get("link") or ""),
            summary=str(summary),
            authors=[str(a) for a in ensure_list(data.get("authors"))],
            published=data.get("published") or None,
            categories=[str(c) for c in ensure_list(data.get("categories"))],
            pdf_url=data.get("pdf_url") or None,
        )


def without_link(papers: list[Paper], link: str) -> list[Paper]:
    """Return *papers* minus any entry whose link equals *link*."""
    return [p for p in papers if p.link != link]


def contains_link(papers: list[Paper], link: str) -> bool:
    """True if any paper in *papers* has the given link."""
    return any(p.link == link for p in papers)


def unique_by_link(papers: list[Paper]) -> list[Paper]:
    """Drop later duplicates of the same link, keeping order."""
    seen: set[str] = set()
    result = []
    for paper in papers:
        if paper.link not in seen:
            seen.add(paper.link)
            result.append(paper)
    return result
