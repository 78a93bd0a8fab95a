"""Utility functions."""

from paperchat.utils.text import (
    clean_abstract,
    clean_title,
    ensure_list,
    extract_arxiv_id,
    normalize_whitespace,
    parse_published,
)

__all__ = [
    "clean_abstract",
    "clean_title",
    "ensure_list",
    "extract_arxiv_id",
    "normalize_whitespace",
    "parse_published",
]
