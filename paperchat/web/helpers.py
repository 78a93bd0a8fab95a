"""Shared request payloads and response helpers for the API routers."""

from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from paperchat.exceptions import ValidationError
from paperchat.models.chat import ROLES, ChatMessage
from paperchat.models.paper import Paper

NO_STORE = {"Cache-Control": "no-store, max-age=0, must-revalidate"}


class PaperPayload(BaseModel):
    """Paper JSON as sent by clients (``abstract`` accepted for ``summary``)."""

    title: str = ""
    link: str = ""
    summary: Optional[str] = None
    abstract: Optional[str] = None
    authors: list[str] | str = Field(default_factory=list)

    def to_paper(self) -> Paper:
        """Convert to a ``Paper``; raises ValidationError without a link."""
        paper = Paper.from_dict(self.model_dump())
        if not paper.link:
            raise ValidationError("Paper link is required")
        if not paper.title:
            paper.title = paper.link
        return paper


class MessagePayload(BaseModel):
    """A chat message as sent by clients."""

    role: str
    content: str

    def to_message(self) -> ChatMessage:
        if self.role not in ROLES:
            raise ValidationError(f"Unknown role '{self.role}'")
        if not self.content.strip():
            raise ValidationError("Message content is required")
        return ChatMessage(role=self.role, content=self.content)


def require_link(paper_link: Optional[str]) -> str:
    """Validate the ``paperLink`` query parameter."""
    if not paper_link or not paper_link.strip():
        raise ValidationError("Paper link is required")
    return paper_link.strip()


def papers_response(papers: list[Paper]) -> JSONResponse:
    """Uncached JSON list of papers."""
    return JSONResponse([p.to_dict() for p in papers], headers=NO_STORE)


def error_body(message: str, details: Optional[str] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    return body
