"""Overview router -- dashboard projection of snapshots and alerts."""

from fastapi import APIRouter

from scout.api.dependencies import Aggregator
from scout.schemas import Overview

router = APIRouter()


@router.get("/overview", response_model=Overview)
async def get_overview(aggregator: Aggregator):
    return aggregator.overview()
