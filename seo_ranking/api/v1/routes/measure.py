"""
Measure API Routes

No business logic lives here.
Routes validate input, call the measurement engine, map errors to HTTP.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from seo_ranking.core.exceptions import InvalidURLError, MeasurementError
from seo_ranking.engines.base import MeasureResponse, StrategyName
from seo_ranking.engines.measure.engine import measure_page_speed

logger = structlog.get_logger(__name__)
router = APIRouter()


class MeasureRequest(BaseModel):
    url: str = Field(..., max_length=2048)
    strategy: StrategyName = "mobile"


@router.post(
    "",
    response_model=MeasureResponse,
    summary="Audit a URL",
    description="Runs the liveness probe, PageSpeed Insights and HTML checks, and returns the SEO readiness report.",
)
async def measure(request: MeasureRequest) -> MeasureResponse:
    try:
        return await measure_page_speed(request.url, request.strategy)
    except InvalidURLError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MeasurementError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
