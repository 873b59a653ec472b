"""
Measurement Engine - Audits one URL and assembles a MeasureResponse.

Flow:
1. Normalize the URL (trim, default to https://)
2. Liveness probe: HEAD, falling back to GET only on 405
3. Derive root URL, scope and HTTPS flag
4. Fan out concurrently: PageSpeed Insights, HTML snapshot, robots.txt, sitemap probe
5. Extract HTML signals and evaluate robots.txt for the URL
6. Read lab values and field categories for LCP / CLS / FID
7. Classify mobile-friendliness
8. Score SEO readiness
9. Assemble the immutable report

Error policy:
- Invalid input, an unreachable site and PageSpeed failures are fatal
- Snapshot, robots.txt and sitemap fetches are best-effort: they log and
  return a failure-shaped result, never raise
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import httpx
import structlog

from seo_ranking.core.config import get_settings
from seo_ranking.core.exceptions import (
    InvalidURLError,
    PerformanceAPIError,
    ReachabilityError,
)
from seo_ranking.engines.base import (
    CoreWebVitals,
    Crawlability,
    FieldMetric,
    LighthouseAudit,
    MeasureResponse,
    MobileFriendly,
    MobileFriendlyStatus,
    PerformanceMeta,
    ResourceStatus,
    Scope,
    Strategy,
)
from seo_ranking.engines.robots.engine import is_blocked_by_robots
from seo_ranking.engines.scoring.engine import calculate_seo_readiness, round_half_up
from seo_ranking.engines.signals.engine import (
    analyze_headings,
    build_meta_info,
    check_noindex_nofollow,
    extract_canonical,
    extract_meta_description,
    extract_title,
    requires_js_for_content,
    serialize_url,
    strip_tags,
    summarize_content,
)

logger = structlog.get_logger(__name__)
settings = get_settings()


# ─────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────

FIELD_KEYS = {
    "lcp": "LARGEST_CONTENTFUL_PAINT_MS",
    "cls": "CUMULATIVE_LAYOUT_SHIFT_SCORE",
    "fid": "FIRST_INPUT_DELAY_MS",
}

LAB_AUDIT_KEYS = {
    "lcp": "largest-contentful-paint",
    "cls": "cumulative-layout-shift",
    "fid": "first-input-delay",
}

MOBILE_FRIENDLY_AUDIT = "mobile-friendly"

SITEMAP_CANDIDATES = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap-index.xml")

MOBILE_MESSAGES = {
    MobileFriendlyStatus.PASS: "Viewport and tap targets pass mobile-friendly checks.",
    MobileFriendlyStatus.FAIL: "Lighthouse detected mobile-specific issues that need attention.",
    MobileFriendlyStatus.UNKNOWN: "Mobile-friendly status is not available for this scan.",
}
MOBILE_DEFAULT_DETAIL = "Lighthouse evaluated viewport, tap targets, and text sizing for mobile experience."

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
# Code points a URL host may not contain (":" is allowed for IPv6 literals)
_FORBIDDEN_HOST_RE = re.compile(r"[\s#%/<>?@\\^|\[\]]")


# ─────────────────────────────────────────────
# URL Utilities
# ─────────────────────────────────────────────

def normalize_url(raw_url: str) -> str:
    """Trim, default the scheme to https and serialize. Raises InvalidURLError."""
    trimmed = (raw_url or "").strip()
    if not trimmed:
        raise InvalidURLError(raw_url or "", "Empty URL")

    prefixed = trimmed if _SCHEME_RE.match(trimmed) else f"https://{trimmed}"
    try:
        parts = urlsplit(prefixed)
        if not parts.netloc or not parts.hostname:
            raise ValueError("missing host")
        if _FORBIDDEN_HOST_RE.search(parts.hostname):
            raise ValueError(f"invalid host: {parts.hostname!r}")
        normalized = serialize_url(prefixed)
        httpx.URL(normalized)
    except (ValueError, httpx.InvalidURL) as exc:
        raise InvalidURLError(raw_url, f"Invalid URL: {trimmed}") from exc
    return normalized


def describe_url(url: str) -> tuple[str, Scope, bool]:
    """Return (root_url, scope, is_https) for a normalized URL."""
    parts = urlsplit(url)
    root_url = f"{parts.scheme}://{parts.netloc}"
    scope = Scope.ROOT if parts.path in ("", "/") else Scope.PAGE
    return root_url, scope, parts.scheme == "https"


# ─────────────────────────────────────────────
# Formatting
# ─────────────────────────────────────────────

def format_lab_metric(value: float | None, kind: str) -> str:
    if value is None:
        return "—"
    if kind == "cls":
        return f"{value:.2f}"
    if kind == "time":
        return f"{value / 1000:.1f}s"
    return f"{round_half_up(value)}ms"


def build_field_summary(lcp: FieldMetric, cls: FieldMetric, fid: FieldMetric) -> str:
    entries = [
        f"{label} {metric.category}"
        for label, metric in (("LCP", lcp), ("CLS", cls), ("FID", fid))
        if metric.category
    ]
    if not entries:
        return "Field data currently unavailable."
    return f"Field data: {' · '.join(entries)}"


def build_lab_summary(lcp: float | None, cls: float | None, fid: float | None) -> str:
    return (
        f"Lab data: LCP {format_lab_metric(lcp, 'time')} · "
        f"CLS {format_lab_metric(cls, 'cls')} · "
        f"FID {format_lab_metric(fid, 'fid')}"
    )


# ─────────────────────────────────────────────
# Lighthouse payload readers
# ─────────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_audit_value(audits: dict[str, Any] | None, key: str) -> float | None:
    audit = (audits or {}).get(key)
    if not isinstance(audit, dict) or not _is_number(audit.get("numericValue")):
        return None
    return float(audit["numericValue"])


def read_performance_score(lighthouse: dict[str, Any]) -> int | None:
    score = ((lighthouse.get("categories") or {}).get("performance") or {}).get("score")
    return round_half_up(score * 100) if _is_number(score) else None


def read_core_web_vitals(payload: dict[str, Any]) -> CoreWebVitals:
    audits = (payload.get("lighthouseResult") or {}).get("audits")
    field_data = (payload.get("loadingExperience") or {}).get("metrics") or {}

    metrics: dict[str, FieldMetric] = {}
    for name, audit_key in LAB_AUDIT_KEYS.items():
        field_metric = field_data.get(FIELD_KEYS[name]) or {}
        metrics[name] = FieldMetric(
            value=get_audit_value(audits, audit_key),
            category=field_metric.get("category"),
        )

    return CoreWebVitals(
        lcp=metrics["lcp"],
        cls=metrics["cls"],
        fid=metrics["fid"],
        field_summary=build_field_summary(metrics["lcp"], metrics["cls"], metrics["fid"]),
        lab_summary=build_lab_summary(metrics["lcp"].value, metrics["cls"].value, metrics["fid"].value),
    )


def read_mobile_friendly(lighthouse: dict[str, Any]) -> MobileFriendly:
    audit = (lighthouse.get("audits") or {}).get(MOBILE_FRIENDLY_AUDIT) or {}
    score = audit.get("score")

    status = MobileFriendlyStatus.UNKNOWN
    if _is_number(score) and score == 1:
        status = MobileFriendlyStatus.PASS
    elif _is_number(score) and score == 0:
        status = MobileFriendlyStatus.FAIL

    return MobileFriendly(
        status=status,
        detail=audit.get("displayValue") or audit.get("description") or MOBILE_DEFAULT_DETAIL,
        message=MOBILE_MESSAGES[status],
    )


def read_performance_meta(payload: dict[str, Any]) -> PerformanceMeta | None:
    lighthouse = payload.get("lighthouseResult")
    if not lighthouse:
        return None

    audits: dict[str, LighthouseAudit] | None = None
    if isinstance(lighthouse.get("audits"), dict):
        audits = {
            key: LighthouseAudit(
                display_value=audit.get("displayValue"),
                numeric_value=audit["numericValue"] if _is_number(audit.get("numericValue")) else None,
                description=audit.get("description"),
                score=audit["score"] if _is_number(audit.get("score")) else None,
                details=audit.get("details") if isinstance(audit.get("details"), dict) else None,
            )
            for key, audit in lighthouse["audits"].items()
            if isinstance(audit, dict)
        }

    return PerformanceMeta(
        fetch_time=lighthouse.get("fetchTime") or payload.get("analysisUTCTimestamp"),
        environment=lighthouse.get("environment"),
        config_settings=lighthouse.get("configSettings"),
        audits=audits,
    )


# ─────────────────────────────────────────────
# PageSpeed Insights client
# ─────────────────────────────────────────────

class PageSpeedClient:
    """Thin client for the PageSpeed Insights v5 runPagespeed endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str | None = None,
        endpoint: str | None = None,
        timeout: float | None = None,
    ):
        self.http_client = http_client
        self.api_key = settings.PAGESPEED_API_KEY if api_key is None else api_key
        self.endpoint = endpoint or settings.PAGESPEED_API_URL
        self.timeout = timeout or settings.PAGESPEED_TIMEOUT

    async def run(self, url: str, strategy: str) -> dict[str, Any]:
        # No category filter: every Lighthouse category and audit is returned
        params = {"url": url, "strategy": strategy}
        if self.api_key:
            params["key"] = self.api_key

        start = time.perf_counter()
        try:
            response = await self.http_client.get(self.endpoint, params=params, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.error("PageSpeed request failed", url=url, strategy=strategy, error=str(exc))
            raise PerformanceAPIError(f"PageSpeed Insights request failed: {exc}") from exc

        elapsed = (time.perf_counter() - start) * 1000
        if not response.is_success:
            detail = response.text or "Unknown error from PageSpeed Insights."
            logger.error(
                "PageSpeed returned an error",
                url=url,
                status_code=response.status_code,
                elapsed_ms=round(elapsed, 2),
            )
            raise PerformanceAPIError(detail, status_code=response.status_code)

        logger.info("PageSpeed run complete", url=url, strategy=strategy, elapsed_ms=round(elapsed, 2))
        try:
            return response.json()
        except ValueError as exc:
            raise PerformanceAPIError(f"PageSpeed Insights returned invalid JSON: {exc}") from exc


# ─────────────────────────────────────────────
# Best-effort fetch results
# ─────────────────────────────────────────────

@dataclass
class PageSnapshot:
    html: str = ""
    status: int | None = None
    ok: bool = False


@dataclass
class RobotsFetch:
    resource: ResourceStatus
    body: str = ""


# ─────────────────────────────────────────────
# Measurement Engine
# ─────────────────────────────────────────────

class MeasurementEngine:
    """
    Orchestrates one audit. Stateless between calls: everything it needs
    comes from the URL, the strategy and the injected HTTP client.
    """

    ENGINE_NAME = "measure"

    def __init__(self, http_client: httpx.AsyncClient, pagespeed: PageSpeedClient | None = None):
        self.http_client = http_client
        self.pagespeed = pagespeed or PageSpeedClient(http_client)
        self.logger = structlog.get_logger(self.__class__.__name__)

    async def execute(self, raw_url: str, strategy: str = Strategy.MOBILE.value) -> MeasureResponse:
        """
        Wrapper around run() that adds timing and logging.
        Fatal errors are logged and re-raised for the caller to present.
        """
        start = time.perf_counter()
        self.logger.info("Measurement starting", engine=self.ENGINE_NAME, url=raw_url, strategy=strategy)
        try:
            report = await self.run(raw_url, strategy)
        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000
            self.logger.error(
                "Measurement failed",
                engine=self.ENGINE_NAME,
                url=raw_url,
                error=str(exc),
                error_type=type(exc).__name__,
                elapsed_ms=round(elapsed, 2),
            )
            raise

        elapsed = (time.perf_counter() - start) * 1000
        self.logger.info(
            "Measurement complete",
            engine=self.ENGINE_NAME,
            url=report.measured_url,
            scope=report.scope,
            overall=report.seo_readiness.overall,
            performance_score=report.performance_score,
            elapsed_ms=round(elapsed, 2),
        )
        return report

    async def run(self, raw_url: str, strategy: str = Strategy.MOBILE.value) -> MeasureResponse:
        strategy = Strategy(strategy).value
        url = normalize_url(raw_url)

        await self.probe(url)

        root_url, scope, is_https = describe_url(url)

        payload, snapshot, robots, sitemap = await asyncio.gather(
            self.pagespeed.run(url, strategy),
            self.fetch_snapshot(url),
            self.fetch_robots(root_url),
            self.locate_sitemap(root_url),
        )

        return self.build_report(
            url=url,
            strategy=strategy,
            root_url=root_url,
            scope=scope,
            is_https=is_https,
            payload=payload,
            snapshot=snapshot,
            robots=robots,
            sitemap=sitemap,
        )

    # ── Fetchers ─────────────────────────────────

    async def probe(self, url: str) -> None:
        """Liveness probe. HEAD first; GET only when HEAD is not allowed."""
        try:
            response = await self.http_client.head(url)
            if response.is_success:
                return
            if response.status_code == 405:
                fallback = await self.http_client.get(url)
                if fallback.is_success:
                    return
            message = f"Received status {response.status_code}"
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            message = str(exc) or type(exc).__name__
        raise ReachabilityError(url, message)

    async def fetch_snapshot(self, url: str) -> PageSnapshot:
        try:
            response = await self.http_client.get(url)
            return PageSnapshot(html=response.text, status=response.status_code, ok=response.is_success)
        except Exception as exc:
            self.logger.warning("Failed to fetch page snapshot", url=url, error=str(exc))
            return PageSnapshot()

    async def check_resource(self, url: str) -> tuple[ResourceStatus, str]:
        try:
            response = await self.http_client.get(url)
        except Exception as exc:
            self.logger.debug("Resource check failed", url=url, error=str(exc))
            message = str(exc) or "Unable to evaluate resource"
            return ResourceStatus(url=url, exists=False, status=None, message=message), ""

        ok = response.is_success
        resource = ResourceStatus(
            url=url,
            exists=ok,
            status=response.status_code,
            message="Available" if ok else f"Status {response.status_code}",
        )
        return resource, response.text if ok else ""

    async def fetch_robots(self, root_url: str) -> RobotsFetch:
        resource, body = await self.check_resource(f"{root_url}/robots.txt")
        return RobotsFetch(resource=resource, body=body)

    async def locate_sitemap(self, root_url: str) -> ResourceStatus:
        """First existing candidate wins; otherwise the first probe's miss."""
        first: ResourceStatus | None = None
        for candidate in SITEMAP_CANDIDATES:
            resource, _ = await self.check_resource(f"{root_url}{candidate}")
            if first is None:
                first = resource
            if resource.exists:
                return resource
        return first or ResourceStatus(
            url=f"{root_url}{SITEMAP_CANDIDATES[0]}",
            exists=False,
            status=None,
            message="Sitemap not found",
        )

    # ── Assembly ─────────────────────────────────

    def build_report(
        self,
        *,
        url: str,
        strategy: str,
        root_url: str,
        scope: Scope,
        is_https: bool,
        payload: dict[str, Any],
        snapshot: PageSnapshot,
        robots: RobotsFetch,
        sitemap: ResourceStatus,
    ) -> MeasureResponse:
        html = snapshot.html or ""
        lighthouse = payload.get("lighthouseResult") or {}

        title = extract_title(html)
        meta = build_meta_info(title, extract_meta_description(html))
        headings = analyze_headings(html, title)
        canonical = extract_canonical(html, url)
        has_noindex, has_nofollow = check_noindex_nofollow(html)
        blocked = is_blocked_by_robots(robots.body, url)

        crawlability = Crawlability(
            http_status=snapshot.status,
            is_blocked_by_robots=blocked,
            has_noindex=has_noindex,
            has_nofollow=has_nofollow,
            requires_js_for_content=requires_js_for_content(html, strip_tags(html)),
            is_accessible=snapshot.ok and not blocked,
        )

        core_web_vitals = read_core_web_vitals(payload)
        mobile_friendly = read_mobile_friendly(lighthouse)

        seo_readiness = calculate_seo_readiness(
            crawlability=crawlability,
            canonical=canonical,
            meta=meta,
            headings=headings,
            core_web_vitals=core_web_vitals,
            mobile_friendly=mobile_friendly,
            is_https=is_https,
        )

        return MeasureResponse(
            measured_at=datetime.now(timezone.utc),
            measured_url=url,
            strategy=strategy,
            scope=scope,
            root_url=root_url,
            is_https=is_https,
            performance_score=read_performance_score(lighthouse),
            performance_label=f"Lighthouse ({strategy})",
            performance_detail=(
                f"Measured {url} with PageSpeed Insights ({strategy}). {core_web_vitals.field_summary}"
            ),
            core_web_vitals=core_web_vitals,
            mobile_friendly=mobile_friendly,
            meta=meta,
            headings=headings,
            crawlability=crawlability,
            canonical=canonical,
            seo_readiness=seo_readiness,
            robots=robots.resource,
            sitemap=sitemap,
            content_summary=summarize_content(html),
            performance_meta=read_performance_meta(payload),
            loading_experience=payload.get("loadingExperience"),
            origin_loading_experience=payload.get("originLoadingExperience"),
        )


def build_http_client(**kwargs: Any) -> httpx.AsyncClient:
    headers = {
        "User-Agent": settings.HTTP_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
    }
    return httpx.AsyncClient(
        headers=headers,
        follow_redirects=True,
        timeout=settings.HTTP_REQUEST_TIMEOUT,
        **kwargs,
    )


async def measure_page_speed(
    raw_url: str,
    strategy: str = Strategy.MOBILE.value,
    http_client: httpx.AsyncClient | None = None,
) -> MeasureResponse:
    """Audit a URL. Raises MeasurementError subclasses on fatal failures."""
    if http_client is not None:
        return await MeasurementEngine(http_client).execute(raw_url, strategy)

    async with build_http_client() as client:
        return await MeasurementEngine(client).execute(raw_url, strategy)
