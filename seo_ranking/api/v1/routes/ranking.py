"""
Ranking API Routes

Thin adapters over RankingStore: paginated leaderboard, full read, and
ranking a finished measurement.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from seo_ranking.core.config import get_settings
from seo_ranking.core.exceptions import RankingStoreError
from seo_ranking.core.redis import KVStoreDep
from seo_ranking.engines.base import MeasureResponse
from seo_ranking.models.ranking import PaginatedRankingData, RankingData, RankingEntry
from seo_ranking.ranking.store import RankingStore

logger = structlog.get_logger(__name__)
router = APIRouter()
settings = get_settings()


async def get_ranking_store(kv: KVStoreDep) -> RankingStore:
    return RankingStore(kv, max_entries=settings.RANKING_MAX_ENTRIES, page_size=settings.RANKING_PAGE_SIZE)


RankingStoreDep = Annotated[RankingStore, Depends(get_ranking_store)]


class UpdateRankingRequest(BaseModel):
    measurement: MeasureResponse


class UpdateRankingResponse(BaseModel):
    entry: RankingEntry | None
    success: bool = True


@router.get(
    "",
    response_model=PaginatedRankingData,
    summary="Get one page of the leaderboard",
)
async def get_paginated_ranking(
    store: RankingStoreDep,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1, le=100),
) -> PaginatedRankingData:
    return await store.get_paginated_ranking(page, page_size)


@router.get(
    "/all",
    response_model=RankingData,
    summary="Get the full leaderboard",
)
async def get_ranking(store: RankingStoreDep) -> RankingData:
    return await store.get_ranking()


@router.post(
    "",
    response_model=UpdateRankingResponse,
    summary="Rank a root-scope measurement",
)
async def update_ranking(request: UpdateRankingRequest, store: RankingStoreDep) -> UpdateRankingResponse:
    try:
        entry = await store.calculate_and_update_ranking(request.measurement)
    except RankingStoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return UpdateRankingResponse(entry=entry)
