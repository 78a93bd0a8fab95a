"""Paper chat routes: per-paper conversations and saved chat threads."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from paperchat.exceptions import NotFoundError, ValidationError
from paperchat.models.chat import ASSISTANT_ROLE, BOT_ROLE, USER_ROLE, Chat, ChatMessage, User
from paperchat.models.paper import Paper
from paperchat.web.helpers import NO_STORE, MessagePayload, PaperPayload, require_link
from paperchat.web.state import AppState, current_user, get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class ExchangePayload(BaseModel):
    """A user question about a paper."""
    paper: PaperPayload
    userMessage: str = ""


class SaveMessagePayload(BaseModel):
    paper: PaperPayload
    message: MessagePayload


class NewChatPayload(BaseModel):
    paper_arxiv_id: str = ""
    paper_title: str = ""


class ThreadMessagePayload(BaseModel):
    content: str = ""
    paper_context: Optional[PaperPayload] = None


# ============================================================================
# Per-paper conversation
# ============================================================================


@router.get("/chat")
async def get_messages(
    paper_link: Optional[str] = Query(None, alias="paperLink"),
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Persisted messages for one paper, in conversation order."""
    messages = state.repo.list_messages(user.id, require_link(paper_link))
    return JSONResponse([m.to_dict() for m in messages], headers=NO_STORE)


@router.post("/chat")
async def exchange(
    body: ExchangePayload,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Persist a question, answer it and persist the answer.

    The paper moves into the user's history on the first question.
    """
    text = body.userMessage.strip()
    if not text:
        raise ValidationError("Message content is required")
    paper = body.paper.to_paper()

    history = state.repo.list_messages(user.id, paper.link)
    state.repo.save_message(user.id, paper, ChatMessage(role=USER_ROLE, content=text))
    state.repo.add_history(user.id, paper)

    reply = await state.responder.respond(text, paper, history)
    logger.info("Chat reply for %s: intent=%s source=%s", paper.link, reply.intent, reply.source)
    state.repo.save_message(user.id, paper, ChatMessage(role=BOT_ROLE, content=reply.content))
    return JSONResponse({"response": reply.content})


@router.post("/chat/messages")
async def save_message(
    body: SaveMessagePayload,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Persist a single message without generating a reply."""
    saved = state.repo.save_message(user.id, body.paper.to_paper(), body.message.to_message())
    return JSONResponse({"success": True, "message": saved.to_dict()}, status_code=201)


# ============================================================================
# Chat threads
# ============================================================================


def _owned_chat(state: AppState, user: User, chat_id: int) -> Chat:
    chat = state.repo.find_chat(user.id, chat_id)
    if chat is None:
        raise NotFoundError("Chat not found")
    return chat


def _thread_paper(chat: Chat, context: Optional[PaperPayload]) -> Paper:
    if context is not None and (context.link or context.title):
        data: dict[str, Any] = context.model_dump()
        data["link"] = data.get("link") or chat.paper_id
        data["title"] = data.get("title") or chat.paper_title
        return Paper.from_dict(data)
    return Paper(title=chat.paper_title, link=chat.paper_id)


@router.get("/chats")
async def list_chats(
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    chats = state.repo.list_chats(user.id)
    return JSONResponse({"chats": [c.to_dict() for c in chats]}, headers=NO_STORE)


@router.post("/chats")
async def create_chat(
    body: NewChatPayload,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    if not body.paper_arxiv_id or not body.paper_title:
        raise ValidationError("paper_arxiv_id and paper_title are required")
    chat = state.repo.create_chat(user.id, body.paper_arxiv_id, body.paper_title)
    return JSONResponse({"chat": chat.to_dict()}, status_code=201)


@router.get("/chats/{chat_id}")
async def get_chat(
    chat_id: int,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    chat = _owned_chat(state, user, chat_id)
    return JSONResponse({"chat": chat.to_dict(), "messages": state.repo.list_chat_messages(chat.id)})


@router.delete("/chats/{chat_id}")
async def delete_chat(
    chat_id: int,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Delete a chat and its messages."""
    if not state.repo.delete_chat(user.id, chat_id):
        raise NotFoundError("Chat not found")
    return JSONResponse({"success": True})


@router.get("/chats/{chat_id}/messages")
async def list_thread_messages(
    chat_id: int,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    chat = _owned_chat(state, user, chat_id)
    return JSONResponse({"messages": state.repo.list_chat_messages(chat.id)}, headers=NO_STORE)


@router.post("/chats/{chat_id}/messages")
async def post_thread_message(
    chat_id: int,
    body: ThreadMessagePayload,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Append a user message to a thread and answer it."""
    content = body.content.strip()
    if not content:
        raise ValidationError("Message content is required")
    chat = _owned_chat(state, user, chat_id)

    history = [
        ChatMessage(role=m["role"], content=m["content"], created_at=m["created_at"])
        for m in state.repo.list_chat_messages(chat.id)
    ]
    user_message = state.repo.add_chat_message(chat.id, USER_ROLE, content)
    reply = await state.responder.respond(content, _thread_paper(chat, body.paper_context), history)
    assistant_message = state.repo.add_chat_message(chat.id, ASSISTANT_ROLE, reply.content)
    return JSONResponse({"userMessage": user_message, "assistantMessage": assistant_message})
