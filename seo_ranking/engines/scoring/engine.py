"""
Scoring Engine - Derives the SEO readiness score from extracted page signals.

Scoring Model (four layers, each additive points capped at 100):

  Crawlability       (40%)
    +20 HTTP 200 · +20 not blocked by robots.txt · +20 no noindex
    +15 not JS-dependent · +15 self-referencing canonical · +10 no tracking params

  Basic On-Page      (35%)
    title: +30 within limit / +15 too long · description: +20 within / +10 too long
    +25 unique H1 · +10 H1 matches title · +15 proper heading structure

  Tech & Experience  (15%)
    LCP: +30 under 4.0s / +15 under 6.0s · +20 CLS under 0.25
    mobile: +30 pass / +15 unknown · +20 HTTPS

  SEO Opportunity    (10%)
    +40 proper heading structure · +30 title and description present
    +30 canonical present

  overall = round(0.40·crawl + 0.35·on_page + 0.15·tech + 0.10·opportunity)

The weights and point values are fixed: ranking history depends on them.
Rounding is half-up so equal inputs always give equal integers.
"""

from __future__ import annotations

import math

import structlog

from seo_ranking.engines.base import (
    CanonicalInfo,
    CoreWebVitals,
    Crawlability,
    HeadingAnalysis,
    LengthStatus,
    MetaInfo,
    MobileFriendly,
    MobileFriendlyStatus,
    SEOReadiness,
)

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Layer Weights
# ─────────────────────────────────────────────

LAYER_WEIGHTS: dict[str, float] = {
    "crawlability": 0.40,
    "basic_on_page": 0.35,
    "tech_experience": 0.15,
    "seo_opportunity": 0.10,
}

MAX_LAYER_SCORE = 100

LCP_GOOD_MS = 4000
LCP_FAIR_MS = 6000
CLS_GOOD = 0.25


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, like JavaScript's Math.round."""
    return int(math.floor(value + 0.5))


def _cap(points: int) -> int:
    return max(0, min(MAX_LAYER_SCORE, points))


# ─────────────────────────────────────────────
# Layers
# ─────────────────────────────────────────────

def score_crawlability(crawlability: Crawlability, canonical: CanonicalInfo) -> int:
    points = 0
    if crawlability.http_status == 200:
        points += 20
    if not crawlability.is_blocked_by_robots:
        points += 20
    if not crawlability.has_noindex:
        points += 20
    if not crawlability.requires_js_for_content:
        points += 15
    if canonical.exists and canonical.points_to_self:
        points += 15
    if not canonical.has_parameter_pollution:
        points += 10
    return _cap(points)


def score_basic_on_page(meta: MetaInfo, headings: HeadingAnalysis) -> int:
    points = 0

    if meta.title_status == LengthStatus.WITHIN:
        points += 30
    elif meta.title_status == LengthStatus.LONG:
        points += 15

    if meta.description_status == LengthStatus.WITHIN:
        points += 20
    elif meta.description_status == LengthStatus.LONG:
        points += 10

    if headings.has_unique_h1:
        points += 25
    if headings.h1_matches_title:
        points += 10
    if headings.has_proper_structure:
        points += 15
    return _cap(points)


def score_tech_experience(
    core_web_vitals: CoreWebVitals,
    mobile_friendly: MobileFriendly,
    is_https: bool,
) -> int:
    points = 0

    lcp = core_web_vitals.lcp.value
    if lcp is not None:
        if lcp < LCP_GOOD_MS:
            points += 30
        elif lcp < LCP_FAIR_MS:
            points += 15

    cls = core_web_vitals.cls.value
    if cls is not None and cls < CLS_GOOD:
        points += 20

    if mobile_friendly.status == MobileFriendlyStatus.PASS:
        points += 30
    elif mobile_friendly.status == MobileFriendlyStatus.UNKNOWN:
        points += 15

    if is_https:
        points += 20
    return _cap(points)


def score_seo_opportunity(meta: MetaInfo, headings: HeadingAnalysis, canonical: CanonicalInfo) -> int:
    points = 0
    if headings.has_proper_structure:
        points += 40
    if meta.title and meta.description:
        points += 30
    if canonical.exists:
        points += 30
    return _cap(points)


def combine_layers(
    crawlability: int,
    basic_on_page: int,
    tech_experience: int,
    seo_opportunity: int,
) -> int:
    weighted = (
        crawlability * LAYER_WEIGHTS["crawlability"]
        + basic_on_page * LAYER_WEIGHTS["basic_on_page"]
        + tech_experience * LAYER_WEIGHTS["tech_experience"]
        + seo_opportunity * LAYER_WEIGHTS["seo_opportunity"]
    )
    return _cap(round_half_up(weighted))


# ─────────────────────────────────────────────
# Readiness
# ─────────────────────────────────────────────

def calculate_seo_readiness(
    *,
    crawlability: Crawlability,
    canonical: CanonicalInfo,
    meta: MetaInfo,
    headings: HeadingAnalysis,
    core_web_vitals: CoreWebVitals,
    mobile_friendly: MobileFriendly,
    is_https: bool,
) -> SEOReadiness:
    """Score all four layers and combine them. Pure and deterministic."""
    crawl_score = score_crawlability(crawlability, canonical)
    on_page_score = score_basic_on_page(meta, headings)
    tech_score = score_tech_experience(core_web_vitals, mobile_friendly, is_https)
    opportunity_score = score_seo_opportunity(meta, headings, canonical)

    readiness = SEOReadiness(
        crawlability=crawl_score,
        basic_on_page=on_page_score,
        tech_experience=tech_score,
        seo_opportunity=opportunity_score,
        overall=combine_layers(crawl_score, on_page_score, tech_score, opportunity_score),
    )
    logger.debug("SEO readiness scored", **readiness.model_dump())
    return readiness
