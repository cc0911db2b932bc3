"""Root keyword router -- curated seeds used when a run names none."""

from fastapi import APIRouter

from scout.api.dependencies import DB, SyncToken
from scout.api.schemas import RootCreateRequest, RootListResponse
from scout.candidates import normalize_keyword
from scout.errors import NotFoundError
from scout.schemas import RootKeyword

router = APIRouter()


@router.get("", response_model=RootListResponse)
async def list_roots(db: DB, active_only: bool = True):
    roots = db.list_roots(active_only=active_only)
    return RootListResponse(total=len(roots), roots=roots)


@router.post("", status_code=201, response_model=RootKeyword, dependencies=[SyncToken])
async def create_root(body: RootCreateRequest, db: DB):
    return db.create_root(body.label.strip(), normalize_keyword(body.keyword), body.locale.strip().lower())


@router.post("/{root_id}/deactivate", response_model=RootKeyword, dependencies=[SyncToken])
async def deactivate_root(root_id: str, db: DB):
    root = db.set_root_active(root_id, False)
    if root is None:
        raise NotFoundError(f"Root keyword {root_id} not found")
    return root
