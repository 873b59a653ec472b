"""Health check endpoints for load balancer and monitoring."""

from fastapi import APIRouter
from pydantic import BaseModel

from seo_ranking.core.config import get_settings
from seo_ranking.core.exceptions import KVStoreError
from seo_ranking.core.redis import KVStoreDep
from seo_ranking.ranking.store import META_KEY

router = APIRouter()
settings = get_settings()


class HealthResponse(BaseModel):
    status: str
    version: str
    checks: dict[str, str]
    ranked_entries: int | None = None


@router.get("", response_model=HealthResponse, include_in_schema=False)
async def health_check(kv: KVStoreDep) -> HealthResponse:
    checks: dict[str, str] = {}
    ranked_entries: int | None = None

    # A meta read exercises the same path every paginated read starts with
    try:
        meta = await kv.get(META_KEY)
        ranked_entries = (meta or {}).get("totalEntries", 0)
        checks["kv"] = f"healthy ({settings.KV_BACKEND})"
    except KVStoreError as e:
        checks["kv"] = f"unhealthy: {e}"

    checks["pagespeed"] = "api key configured" if settings.PAGESPEED_API_KEY else "keyless (shared quota)"

    overall = "healthy" if all("unhealthy" not in v for v in checks.values()) else "degraded"

    return HealthResponse(
        status=overall,
        version=settings.APP_VERSION,
        checks=checks,
        ranked_entries=ranked_entries,
    )


@router.get("/ready", include_in_schema=False)
async def readiness() -> dict:
    """Kubernetes readiness probe."""
    return {"ready": True}


@router.get("/live", include_in_schema=False)
async def liveness() -> dict:
    """Kubernetes liveness probe."""
    return {"alive": True}
