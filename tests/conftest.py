"""
Shared fixtures: in-memory KV store, ranking entries and measurements.
"""

from datetime import datetime, timezone

import pytest

from seo_ranking.core.kv import MemoryKVStore
from seo_ranking.engines.base import (
    CanonicalInfo,
    ContentSummary,
    CoreWebVitals,
    Crawlability,
    FieldMetric,
    HeadingAnalysis,
    MeasureResponse,
    MobileFriendly,
    ResourceStatus,
)
from seo_ranking.engines.scoring.engine import calculate_seo_readiness
from seo_ranking.engines.signals.engine import build_meta_info
from seo_ranking.models.ranking import RankingEntry

MEASURED_AT = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

TEXT_BY_STATUS = {
    "within": ("Example Widgets", "Widgets for every team."),
    "long": ("t" * 61, "d" * 161),
    "missing": (None, None),
}


@pytest.fixture
def kv() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def entry_factory():
    def _make(root_url: str, score: int, **overrides) -> RankingEntry:
        fields = {
            "url": f"{root_url}/",
            "root_url": root_url,
            "score": score,
            "measured_at": MEASURED_AT,
            "performance_score": 80,
            "is_https": root_url.startswith("https://"),
        }
        fields.update(overrides)
        return RankingEntry(**fields)

    return _make


@pytest.fixture
def measurement_factory():
    """Builds reports whose readiness is scored from their own signals."""

    def _make(
        url: str = "https://example.com/",
        root_url: str = "https://example.com",
        scope: str = "root",
        word_count: int = 250,
        title_status: str = "within",
        description_status: str = "within",
        mobile_status: str = "pass",
        lcp_ms: float | None = 2100,
    ) -> MeasureResponse:
        is_https = root_url.startswith("https://")
        signals = {
            "crawlability": Crawlability(http_status=200, is_accessible=True),
            "canonical": CanonicalInfo(exists=True, url=url, points_to_self=True),
            "meta": build_meta_info(TEXT_BY_STATUS[title_status][0], TEXT_BY_STATUS[description_status][1]),
            "headings": HeadingAnalysis(
                h1_count=1,
                h1_text="Example Widgets",
                h2_count=2,
                has_unique_h1=True,
                h1_matches_title=title_status == "within",
                has_proper_structure=True,
            ),
            "core_web_vitals": CoreWebVitals(lcp=FieldMetric(value=lcp_ms), cls=FieldMetric(value=0.05)),
            "mobile_friendly": MobileFriendly(status=mobile_status),
        }
        return MeasureResponse(
            measured_at=MEASURED_AT,
            measured_url=url,
            scope=scope,
            root_url=root_url,
            is_https=is_https,
            performance_score=91,
            seo_readiness=calculate_seo_readiness(is_https=is_https, **signals),
            robots=ResourceStatus(url=f"{root_url}/robots.txt", exists=True, status=200, message="Available"),
            sitemap=ResourceStatus(url=f"{root_url}/sitemap.xml", exists=False, status=404, message="Status 404"),
            content_summary=ContentSummary(html_characters=5000, text_characters=1500, word_count=word_count),
            **signals,
        )

    return _make
