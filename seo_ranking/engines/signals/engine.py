"""
HTML Signal Extractor

Extracts per-page SEO facts from raw HTML with regular expressions only
(no DOM, no network):
- Title and meta description (length classification)
- Canonical link (self-reference, tracking-parameter pollution)
- Meta robots noindex/nofollow
- Heading counts and H1/title agreement
- Visible text, word count and a client-rendering heuristic
"""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlsplit, urlunsplit

import structlog

from seo_ranking.engines.base import (
    CanonicalInfo,
    ContentSummary,
    HeadingAnalysis,
    LengthStatus,
    MetaInfo,
)

logger = structlog.get_logger(__name__)


# Thresholds
TITLE_LIMIT = 60
DESCRIPTION_LIMIT = 160
H1_TITLE_PREFIX_LENGTH = 20
JS_CONTENT_TEXT_THRESHOLD = 100

DEFAULT_PORTS = {"http": 80, "https": 443}

_TITLE_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)
_SCRIPT_BLOCK_RE = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_BLOCK_RE = re.compile(r"<style[\s\S]*?>[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_H1_BLOCK_RE = re.compile(r"<h1\b[^>]*>([\s\S]*?)</h1>", re.IGNORECASE)
_CLIENT_RENDER_SCRIPT_RE = re.compile(
    r"<script\b[^>]*>(?:(?!</script>)[\s\S])*?document\.(?:write|createElement)\b",
    re.IGNORECASE,
)
_TRACKING_PARAM_RE = re.compile(r"utm_|ref=|source=|campaign=", re.IGNORECASE)


def _meta_content_patterns(name: str) -> tuple[re.Pattern[str], re.Pattern[str]]:
    """Patterns for <meta name=... content=...> in both attribute orders."""
    escaped = re.escape(name)
    name_first = re.compile(
        rf"<meta\b[^>]*name=([\"']){escaped}\1[^>]*content=([\"'])([\s\S]*?)\2[^>]*>",
        re.IGNORECASE,
    )
    content_first = re.compile(
        rf"<meta\b[^>]*content=([\"'])([\s\S]*?)\1[^>]*name=([\"']){escaped}\3[^>]*>",
        re.IGNORECASE,
    )
    return name_first, content_first


_DESCRIPTION_RES = _meta_content_patterns("description")
_ROBOTS_RES = _meta_content_patterns("robots")

_CANONICAL_REL_FIRST_RE = re.compile(
    r"<link\b[^>]*rel=([\"'])canonical\1[^>]*href=([\"'])([\s\S]*?)\2[^>]*>",
    re.IGNORECASE,
)
_CANONICAL_HREF_FIRST_RE = re.compile(
    r"<link\b[^>]*href=([\"'])([\s\S]*?)\1[^>]*rel=([\"'])canonical\3[^>]*>",
    re.IGNORECASE,
)


def _heading_count_re(level: int) -> re.Pattern[str]:
    return re.compile(rf"<h{level}(?:\s[^>]*)?>", re.IGNORECASE)


_HEADING_COUNT_RES = {level: _heading_count_re(level) for level in (1, 2, 3)}


# ─────────────────────────────────────────────
# Text
# ─────────────────────────────────────────────

def strip_tags(html: str) -> str:
    """
    Visible text of a document. Script and style blocks go first so code is
    never counted as text, then every remaining tag; whitespace collapses.
    """
    text = _SCRIPT_BLOCK_RE.sub(" ", html)
    text = _STYLE_BLOCK_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def summarize_content(html: str) -> ContentSummary:
    text = strip_tags(html)
    return ContentSummary(
        html_characters=len(html),
        text_characters=len(text),
        word_count=len([word for word in text.split(" ") if word]),
    )


def requires_js_for_content(html: str, stripped_text: str | None = None) -> bool:
    """
    Coarse client-rendering signal: a script writes or builds DOM nodes and
    the server-rendered text is almost empty.
    """
    if stripped_text is None:
        stripped_text = strip_tags(html)
    if len(stripped_text) >= JS_CONTENT_TEXT_THRESHOLD:
        return False
    return bool(_CLIENT_RENDER_SCRIPT_RE.search(html))


# ─────────────────────────────────────────────
# Title / description
# ─────────────────────────────────────────────

def extract_title(html: str) -> str | None:
    match = _TITLE_RE.search(html)
    return match.group(1).strip() if match else None


def extract_meta_description(html: str) -> str | None:
    return _extract_meta_content(html, _DESCRIPTION_RES)


def _extract_meta_content(
    html: str,
    patterns: tuple[re.Pattern[str], re.Pattern[str]],
) -> str | None:
    name_first, content_first = patterns
    match = name_first.search(html)
    if match:
        return match.group(3).strip() or None
    match = content_first.search(html)
    if match:
        return match.group(2).strip() or None
    return None


def classify_length(value: str | None, limit: int) -> LengthStatus:
    if not value:
        return LengthStatus.MISSING
    if len(value) > limit:
        return LengthStatus.LONG
    return LengthStatus.WITHIN


def build_meta_info(title: str | None, description: str | None) -> MetaInfo:
    return MetaInfo(
        title=title,
        description=description,
        title_length=len(title) if title else 0,
        description_length=len(description) if description else 0,
        title_limit=TITLE_LIMIT,
        description_limit=DESCRIPTION_LIMIT,
        title_status=classify_length(title, TITLE_LIMIT),
        description_status=classify_length(description, DESCRIPTION_LIMIT),
    )


# ─────────────────────────────────────────────
# Canonical / robots meta
# ─────────────────────────────────────────────

def serialize_url(url: str) -> str:
    """
    Serialize like a WHATWG URL: lowercase scheme and host, drop the scheme's
    default port, '/' for an empty path. Userinfo keeps its case.
    Raises ValueError for an unparsable port.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    netloc = parts.netloc
    if netloc:
        host = parts.hostname or ""
        if ":" in host:
            host = f"[{host}]"
        port = parts.port
        if port is not None and port != DEFAULT_PORTS.get(scheme):
            host = f"{host}:{port}"
        userinfo, at, _ = netloc.rpartition("@")
        netloc = f"{userinfo}{at}{host}"
    path = (parts.path or "/") if parts.netloc else parts.path
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def extract_canonical(html: str, current_url: str) -> CanonicalInfo:
    match = _CANONICAL_REL_FIRST_RE.search(html)
    href = match.group(3) if match else None
    if href is None:
        match = _CANONICAL_HREF_FIRST_RE.search(html)
        href = match.group(2) if match else None

    if href is None:
        return CanonicalInfo(exists=False)

    href = href.strip()
    try:
        resolved = serialize_url(urljoin(current_url, href))
    except ValueError:
        logger.debug("Canonical URL could not be resolved", href=href, url=current_url)
        return CanonicalInfo(exists=True, url=href, points_to_self=False, has_parameter_pollution=False)

    return CanonicalInfo(
        exists=True,
        url=resolved,
        points_to_self=resolved == current_url,
        has_parameter_pollution=bool(_TRACKING_PARAM_RE.search(current_url)),
    )


def check_noindex_nofollow(html: str) -> tuple[bool, bool]:
    """Return (has_noindex, has_nofollow) from the meta robots tag."""
    content = _extract_meta_content(html, _ROBOTS_RES)
    if not content:
        return False, False
    content = content.lower()
    return "noindex" in content, "nofollow" in content


# ─────────────────────────────────────────────
# Headings
# ─────────────────────────────────────────────

def analyze_headings(html: str, title: str | None) -> HeadingAnalysis:
    h1_count = len(_HEADING_COUNT_RES[1].findall(html))
    h2_count = len(_HEADING_COUNT_RES[2].findall(html))
    h3_count = len(_HEADING_COUNT_RES[3].findall(html))

    h1_match = _H1_BLOCK_RE.search(html)
    h1_text = strip_tags(h1_match.group(1)) if h1_match else None
    h1_text = h1_text or None

    has_unique_h1 = h1_count == 1
    return HeadingAnalysis(
        h1_count=h1_count,
        h1_text=h1_text,
        h2_count=h2_count,
        h3_count=h3_count,
        has_unique_h1=has_unique_h1,
        h1_matches_title=h1_matches_title(h1_text, title),
        has_proper_structure=has_unique_h1 and (h2_count > 0 or h3_count > 0),
    )


def h1_matches_title(h1_text: str | None, title: str | None) -> bool:
    # Prefix containment in either direction; long or reordered titles miss.
    if not h1_text or not title:
        return False
    h1_lower = h1_text.lower()
    title_lower = title.lower()
    return (
        h1_lower[:H1_TITLE_PREFIX_LENGTH] in title_lower
        or title_lower[:H1_TITLE_PREFIX_LENGTH] in h1_lower
    )
