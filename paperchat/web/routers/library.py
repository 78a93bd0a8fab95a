"""Per-user paper collections: library, recently viewed, history."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from paperchat.models.chat import User
from paperchat.web.helpers import PaperPayload, papers_response, require_link
from paperchat.web.state import AppState, current_user, get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ============================================================================
# Library
# ============================================================================


@router.get("/library")
async def list_library(
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Saved papers, sorted by title."""
    return papers_response(state.repo.list_library(user.id))


@router.post("/library")
async def add_to_library(
    body: PaperPayload,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Save a paper; saving it twice is not an error."""
    if state.repo.add_to_library(user.id, body.to_paper()):
        return JSONResponse({"success": True}, status_code=201)
    return JSONResponse({"message": "Already in library"}, status_code=200)


@router.delete("/library")
async def remove_from_library(
    paper_link: Optional[str] = Query(None, alias="paperLink"),
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    state.repo.remove_from_library(user.id, require_link(paper_link))
    return JSONResponse({"success": True})


# ============================================================================
# Recently viewed
# ============================================================================


@router.get("/recently-viewed")
async def list_recently_viewed(
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Recently opened papers, newest first."""
    return papers_response(state.repo.list_recently_viewed(user.id))


@router.post("/recently-viewed")
async def record_view(
    body: PaperPayload,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Upsert a view.  Papers already in history are not re-added."""
    paper = body.to_paper()
    if state.repo.is_in_history(user.id, paper.link):
        return JSONResponse({"success": True, "skipped": "in history"})
    state.repo.record_view(user.id, paper)
    return JSONResponse({"success": True}, status_code=201)


@router.delete("/recently-viewed")
async def remove_recently_viewed(
    paper_link: Optional[str] = Query(None, alias="paperLink"),
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    state.repo.remove_recently_viewed(user.id, require_link(paper_link))
    return JSONResponse({"success": True})


# ============================================================================
# History
# ============================================================================


@router.get("/history")
async def list_history(
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Papers the user has chatted about, latest activity first."""
    return papers_response(state.repo.list_history(user.id))


@router.post("/history")
async def add_history(
    body: PaperPayload,
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Record a history paper (drops it from recently viewed)."""
    created = state.repo.add_history(user.id, body.to_paper())
    return JSONResponse({"success": True}, status_code=201 if created else 200)


@router.delete("/history")
async def remove_history(
    paper_link: Optional[str] = Query(None, alias="paperLink"),
    user: User = Depends(current_user),
    state: AppState = Depends(get_state),
):
    """Forget a paper's history, including its chat messages."""
    link = require_link(paper_link)
    removed = state.repo.remove_history(user.id, link)
    logger.info("Removed %d history rows for %s", removed, link)
    return JSONResponse({"success": True})
