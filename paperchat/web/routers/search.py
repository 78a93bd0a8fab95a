"""arXiv search routes (no session required)."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from paperchat.exceptions import NotFoundError, ValidationError
from paperchat.web.state import AppState, get_state

router = APIRouter(prefix="/api")


@router.get("/search-arxiv")
async def search_arxiv(
    query: Optional[str] = Query(None),
    state: AppState = Depends(get_state),
):
    """Newest arXiv papers matching *query*."""
    if not query or not query.strip():
        raise ValidationError("Query parameter is required")
    papers = await state.arxiv.search(
        query, max_results=state.settings.arxiv_max_results, sort_by="submittedDate"
    )
    return JSONResponse({"papers": [p.to_dict() for p in papers]})


@router.get("/search")
async def search(
    q: Optional[str] = Query(None),
    max_results: int = Query(5, alias="max", ge=1, le=100),
    state: AppState = Depends(get_state),
):
    """Most relevant arXiv papers matching ``q``."""
    if not q or not q.strip():
        raise ValidationError("Query parameter 'q' is required")
    papers = await state.arxiv.search(q, max_results=max_results, sort_by="relevance")
    return JSONResponse({"papers": [p.to_dict() for p in papers]})


@router.get("/papers/{arxiv_id:path}")
async def get_paper(arxiv_id: str, state: AppState = Depends(get_state)):
    paper = await state.arxiv.get_by_id(arxiv_id)
    if paper is None:
        raise NotFoundError(f"Paper not found: {arxiv_id}")
    return JSONResponse(paper.to_dict())
