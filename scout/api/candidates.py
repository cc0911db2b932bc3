"""Candidate router -- list the pool and apply operator overrides."""

from typing import Optional

from fastapi import APIRouter, Query

from scout.api.dependencies import Candidates, SyncToken
from scout.api.schemas import CandidateListResponse, CandidateStatusRequest
from scout.schemas import Candidate

router = APIRouter()


@router.get("", response_model=CandidateListResponse)
async def list_candidates(
    candidates: Candidates,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
):
    """Candidates with expiry applied, optionally filtered by status."""
    items = candidates.list_candidates(status=status, limit=limit)
    return CandidateListResponse(total=len(items), candidates=items)


@router.post("/{candidate_id}/status", response_model=Candidate, dependencies=[SyncToken])
async def set_candidate_status(candidate_id: str, body: CandidateStatusRequest, candidates: Candidates):
    return candidates.set_status(candidate_id, body.status)
