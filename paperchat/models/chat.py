"""Chat, message and user models."""

from dataclasses import dataclass
from typing import Any, Optional

PLACEHOLDER_CONTENT = "..."

USER_ROLE = "user"
BOT_ROLE = "bot"
ASSISTANT_ROLE = "assistant"
ROLES = (USER_ROLE, BOT_ROLE, ASSISTANT_ROLE)


@dataclass
class ChatMessage:
    """A single message in a paper conversation.

    ``created_at`` is assigned by the store when the message is persisted.
    Transient messages (the "..." loading stand-in) only ever live in
    client state and are never sent to the store.
    """

    role: str
    content: str
    created_at: Optional[str] = None
    transient: bool = False

    @classmethod
    def placeholder(cls) -> "ChatMessage":
        """Loading stand-in shown while a reply is pending."""
        return cls(role=BOT_ROLE, content=PLACEHOLDER_CONTENT, transient=True)

    @property
    def is_user(self) -> bool:
        return self.role == USER_ROLE

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.created_at:
            data["created_at"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            role=str(data.get("role") or BOT_ROLE),
            content=str(data.get("content") or ""),
            created_at=data.get("created_at") or None,
        )


@dataclass
class Chat:
    """A named chat thread about one paper."""

    id: int
    user_id: int
    paper_id: str
    paper_title: str
    title: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "paper_id": self.paper_id,
            "paper_title": self.paper_title,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class User:
    """A registered account."""

    id: int
    email: str
    name: str
    password_hash: str = ""
    created_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}
