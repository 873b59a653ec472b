"""
Ranking models - the persisted and returned shapes of the leaderboard.

KV layout (all JSON, camelCase keys):
- index             [{url, score}, ...] descending by score, the ordering source of truth
- entry:<rootUrl>   RankingEntry, durable content for one site
- page:<n>          RankingPage, a denormalized read cache of pageSize entries
- meta              RankingMeta, where every paginated read starts
- seo_ranking       LegacyRanking, the old single-blob format (migrated, then deleted)
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from seo_ranking.engines.base import ReportModel, SEOReadiness


class CoreWebVitalsSummary(ReportModel):
    lcp: float | None = None
    cls: float | None = None
    fid: float | None = None


class RankingEntry(ReportModel):
    """Denormalized projection of one root-scope MeasureResponse."""
    url: str
    root_url: str
    score: int
    measured_at: datetime
    performance_score: int | None = None
    core_web_vitals: CoreWebVitalsSummary = Field(default_factory=CoreWebVitalsSummary)
    mobile_friendly: bool = False
    is_https: bool = False
    has_robots: bool = False
    has_sitemap: bool = False
    meta_score: int = 0
    content_score: int = 0
    # Absent on entries migrated from the legacy blob
    seo_readiness: SEOReadiness | None = None


class IndexItem(ReportModel):
    url: str
    score: int


class RankingPage(ReportModel):
    page: int
    entries: list[RankingEntry] = Field(default_factory=list)


class RankingMeta(ReportModel):
    total_entries: int
    total_pages: int
    page_size: int
    updated_at: datetime


class RankingData(ReportModel):
    entries: list[RankingEntry] = Field(default_factory=list)
    updated_at: datetime


class LegacyRanking(ReportModel):
    entries: list[RankingEntry] = Field(default_factory=list)
    updated_at: datetime | None = None


class PaginatedRankingData(ReportModel):
    entries: list[RankingEntry] = Field(default_factory=list)
    page: int
    page_size: int
    total_entries: int = 0
    total_pages: int = 0
    updated_at: datetime
