"""
Robots Policy Evaluator

Decides whether a URL is disallowed for the universal user-agent (`*`).

This is a simplified reading of robots.txt:
- Only `User-agent: *` groups are honoured
- `Disallow` values are plain path prefixes (no `*` / `$` wildcards)
- `Allow` lines are ignored
- The last `User-agent: *` group wins; entering one resets the verdict

Any failure is fail-open: a site is never reported as blocked because its
robots.txt could not be read.
"""

from __future__ import annotations

from urllib.parse import urlsplit

import structlog

logger = structlog.get_logger(__name__)


class RobotsPolicy:
    """Universal-agent disallow check over a robots.txt body."""

    UNIVERSAL_AGENT = "*"

    def __init__(self, body: str):
        self.body = body

    def is_disallowed(self, url: str) -> bool:
        path = urlsplit(url).path or "/"
        in_universal_block = False
        disallowed = False

        for raw_line in self.body.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            field, sep, value = line.partition(":")
            if not sep:
                continue
            field = field.strip().lower()
            value = value.strip()

            if field == "user-agent":
                in_universal_block = value == self.UNIVERSAL_AGENT
                if in_universal_block:
                    disallowed = False
            elif field == "disallow" and in_universal_block and value:
                if value == "/" or path.startswith(value):
                    disallowed = True

        return disallowed


def is_blocked_by_robots(robots_txt: str | None, url: str) -> bool:
    """Fail-open wrapper used by the measurement engine."""
    if not robots_txt:
        return False
    try:
        return RobotsPolicy(robots_txt).is_disallowed(url)
    except Exception as exc:
        logger.warning("robots.txt evaluation failed", url=url, error=str(exc))
        return False
