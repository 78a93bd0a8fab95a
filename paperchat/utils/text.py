"""Text processing utilities for arXiv metadata and chat replies."""

import html
import re
from typing import Any, Optional

# arXiv identifiers: new style (2401.01234v2) or old style (hep-th/9901001)
ARXIV_ID_RE = re.compile(
    r"(?:arxiv\.org/(?:abs|pdf)/)?(\d{4}\.\d{4,5}(?:v\d+)?|[a-z\-]+(?:\.[A-Z]{2})?/\d{7}(?:v\d+)?)",
    re.IGNORECASE,
)


def normalize_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace to single spaces and trim both ends."""
    if not text:
        return ""
    return " ".join(text.split())


def ensure_list(value: Any) -> list[Any]:
    """Coerce an XML-derived value into a list.

    Feeds often return a bare item where a list is expected when only one
    element is present (one author, one entry).  ``None`` becomes ``[]``.
    """
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    return [value]


def clean_title(text: Optional[str]) -> str:
    """Clean a title by removing HTML tags and normalizing whitespace.

    Args:
        text: Raw title string

    Returns:
        Cleaned title string, or "(no title)" if empty
    """
    if not text or not isinstance(text, str):
        return "(no title)"

    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    text = normalize_whitespace(text)

    return text or "(no title)"


def clean_abstract(text: Optional[str]) -> str:
    """Normalize an abstract: unescape entities, strip an "Abstract" prefix."""
    if not text:
        return ""
    text = html.unescape(text)
    text = re.sub(r"^\s*abstract[\s.:;—–-]*", "", text, flags=re.IGNORECASE)
    return normalize_whitespace(text)


def extract_arxiv_id(link: str) -> Optional[str]:
    """Extract the arXiv identifier from an abs/pdf URL or a bare id.

    >>> extract_arxiv_id("http://arxiv.org/abs/1706.03762v7")
    '1706.03762v7'
    """
    if not link:
        return None
    match = ARXIV_ID_RE.search(link.strip())
    return match.group(1) if match else None


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Cut *text* to *limit* characters, appending *suffix* when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def sentences(text: str, min_length: int = 0) -> list[str]:
    """Split on periods, keeping trimmed pieces longer than *min_length*."""
    return [s.strip() for s in text.split(".") if len(s.strip()) > min_length]


def parse_published(entry: dict[str, Any]) -> Optional[str]:
    """Parse publication date from a feed entry.

    Args:
        entry: Parsed feed entry dictionary

    Returns:
        ISO format date string (YYYY-MM-DD) if found, None otherwise
    """
    from dateutil import parser as dtparser

    for field in ["published", "updated"]:
        val = entry.get(field)
        if val:
            try:
                dt = dtparser.parse(val)
                return dt.date().isoformat()
            except (ValueError, OverflowError):
                pass

    return None
