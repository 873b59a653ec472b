"""
Type contracts shared by the measurement engines.

Design principles:
- Reports are immutable values: engines build them once and hand them on
- Python attributes are snake_case; JSON (API + KV records) is camelCase
- Every score lives in [0, 100] and is validated on construction
- Readiness is derived, never asserted: a report whose scores disagree with
  its own signals is rejected
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class Strategy(str, Enum):
    MOBILE = "mobile"
    DESKTOP = "desktop"


class Scope(str, Enum):
    ROOT = "root"       # Site root: eligible for the ranking
    PAGE = "page"       # Any sub-page


class LengthStatus(str, Enum):
    MISSING = "missing"
    WITHIN = "within"
    LONG = "long"


class MobileFriendlyStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    UNKNOWN = "unknown"


# ─────────────────────────────────────────────
# Base model
# ─────────────────────────────────────────────

class ReportModel(BaseModel):
    """Frozen model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ─────────────────────────────────────────────
# Report sections
# ─────────────────────────────────────────────

class FieldMetric(ReportModel):
    """Lab value plus the real-user category bucket, if any."""
    value: float | None = None
    category: str | None = None


class CoreWebVitals(ReportModel):
    lcp: FieldMetric = Field(default_factory=FieldMetric)
    cls: FieldMetric = Field(default_factory=FieldMetric)
    fid: FieldMetric = Field(default_factory=FieldMetric)
    field_summary: str = ""
    lab_summary: str = ""


class MobileFriendly(ReportModel):
    status: MobileFriendlyStatus = MobileFriendlyStatus.UNKNOWN
    detail: str = ""
    message: str = ""


class ResourceStatus(ReportModel):
    url: str
    exists: bool
    status: int | None = None
    message: str = ""


class MetaInfo(ReportModel):
    title: str | None = None
    description: str | None = None
    title_length: int = 0
    description_length: int = 0
    title_limit: int = 60
    description_limit: int = 160
    title_status: LengthStatus = LengthStatus.MISSING
    description_status: LengthStatus = LengthStatus.MISSING


class HeadingAnalysis(ReportModel):
    h1_count: int = 0
    h1_text: str | None = None
    h2_count: int = 0
    h3_count: int = 0
    has_unique_h1: bool = False
    h1_matches_title: bool = False
    has_proper_structure: bool = False


class Crawlability(ReportModel):
    http_status: int | None = None
    is_blocked_by_robots: bool = False
    has_noindex: bool = False
    has_nofollow: bool = False
    requires_js_for_content: bool = False
    is_accessible: bool = False


class CanonicalInfo(ReportModel):
    exists: bool = False
    url: str | None = None
    points_to_self: bool = False
    has_parameter_pollution: bool = False


class SEOReadiness(ReportModel):
    crawlability: int = Field(ge=0, le=100)
    basic_on_page: int = Field(ge=0, le=100)
    tech_experience: int = Field(ge=0, le=100)
    seo_opportunity: int = Field(ge=0, le=100)
    overall: int = Field(ge=0, le=100)

    @model_validator(mode="after")
    def check_overall(self) -> "SEOReadiness":
        # Imported here: the scoring engine builds on these models
        from seo_ranking.engines.scoring.engine import combine_layers

        expected = combine_layers(self.crawlability, self.basic_on_page, self.tech_experience, self.seo_opportunity)
        if self.overall != expected:
            raise ValueError(f"overall {self.overall} does not match the weighted layer scores ({expected})")
        return self


class ContentSummary(ReportModel):
    html_characters: int = 0
    text_characters: int = 0
    word_count: int = 0


class LighthouseAudit(ReportModel):
    display_value: str | None = None
    numeric_value: float | None = None
    description: str | None = None
    score: float | None = None
    details: dict[str, Any] | None = None


class PerformanceMeta(ReportModel):
    """Lighthouse run context kept alongside the report."""
    fetch_time: str | None = None
    environment: dict[str, Any] | None = None
    config_settings: dict[str, Any] | None = None
    audits: dict[str, LighthouseAudit] | None = None


# ─────────────────────────────────────────────
# Report
# ─────────────────────────────────────────────

class MeasureResponse(ReportModel):
    """Immutable snapshot of one audit."""
    measured_at: datetime
    measured_url: str
    strategy: Strategy = Strategy.MOBILE
    scope: Scope
    root_url: str
    is_https: bool

    performance_score: int | None = Field(default=None, ge=0, le=100)
    performance_label: str = ""
    performance_detail: str = ""
    core_web_vitals: CoreWebVitals = Field(default_factory=CoreWebVitals)
    mobile_friendly: MobileFriendly = Field(default_factory=MobileFriendly)

    meta: MetaInfo = Field(default_factory=MetaInfo)
    headings: HeadingAnalysis = Field(default_factory=HeadingAnalysis)
    crawlability: Crawlability = Field(default_factory=Crawlability)
    canonical: CanonicalInfo = Field(default_factory=CanonicalInfo)
    seo_readiness: SEOReadiness

    robots: ResourceStatus
    sitemap: ResourceStatus
    content_summary: ContentSummary = Field(default_factory=ContentSummary)

    performance_meta: PerformanceMeta | None = None
    loading_experience: dict[str, Any] | None = None
    origin_loading_experience: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_readiness(self) -> "MeasureResponse":
        from seo_ranking.engines.scoring.engine import calculate_seo_readiness

        expected = calculate_seo_readiness(
            crawlability=self.crawlability,
            canonical=self.canonical,
            meta=self.meta,
            headings=self.headings,
            core_web_vitals=self.core_web_vitals,
            mobile_friendly=self.mobile_friendly,
            is_https=self.is_https,
        )
        if expected != self.seo_readiness:
            raise ValueError("seoReadiness does not match the scores derived from the report signals")
        return self


StrategyName = Literal["mobile", "desktop"]
