"""
Ranking Store - a paginated, capacity-bounded, score-sorted leaderboard on a
plain key/value backend.

Three tiers keep reads cheap on a store with no query or sort support:
- the index holds the order (url + score only)
- entry records hold the content, one per ranked site
- page records are rebuilt wholesale from the index on every write, so a
  paginated read costs one meta read plus one page read

Writes are read-modify-write with no locking. Concurrent updates may
interleave; each rebuild is derived from whichever index write landed last,
and every page record is valid on its own. `meta` is written after the
pages so readers only see page counts that exist.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError

from seo_ranking.core.exceptions import KVStoreError, RankingStoreError
from seo_ranking.core.kv import KVStore
from seo_ranking.engines.base import LengthStatus, MeasureResponse, MobileFriendlyStatus, Scope
from seo_ranking.engines.scoring.engine import round_half_up
from seo_ranking.models.ranking import (
    CoreWebVitalsSummary,
    IndexItem,
    LegacyRanking,
    PaginatedRankingData,
    RankingData,
    RankingEntry,
    RankingMeta,
    RankingPage,
)

logger = structlog.get_logger(__name__)


MAX_ENTRIES = 100
DEFAULT_PAGE_SIZE = 20
FULL_CONTENT_WORD_COUNT = 500

INDEX_KEY = "index"
META_KEY = "meta"
ENTRY_KEY_PREFIX = "entry:"
PAGE_KEY_PREFIX = "page:"
LEGACY_RANKING_KEY = "seo_ranking"

_INDEX_ADAPTER = TypeAdapter(list[IndexItem])

# Failures a read-modify-write can hit: backend errors and malformed records
STORE_ERRORS = (KVStoreError, ValidationError)


def entry_key(root_url: str) -> str:
    return f"{ENTRY_KEY_PREFIX}{root_url}"


def page_key(page: int) -> str:
    return f"{PAGE_KEY_PREFIX}{page}"


def count_pages(total_entries: int, page_size: int) -> int:
    return -(-total_entries // page_size)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _sorted_by_score(items: Iterable[IndexItem]) -> list[IndexItem]:
    # Stable: equal scores keep their prior relative order
    return sorted(items, key=lambda item: item.score, reverse=True)


# ─────────────────────────────────────────────
# Projection
# ─────────────────────────────────────────────

def calculate_score(measurement: MeasureResponse) -> int:
    """Ranking score for a measurement. Currently the readiness overall."""
    return measurement.seo_readiness.overall


def create_ranking_entry(measurement: MeasureResponse, score: int) -> RankingEntry:
    meta = measurement.meta
    both_within = meta.title_status == LengthStatus.WITHIN and meta.description_status == LengthStatus.WITHIN
    word_count = measurement.content_summary.word_count
    vitals = measurement.core_web_vitals

    return RankingEntry(
        url=measurement.measured_url,
        root_url=measurement.root_url,
        score=score,
        measured_at=measurement.measured_at,
        performance_score=measurement.performance_score,
        core_web_vitals=CoreWebVitalsSummary(
            lcp=vitals.lcp.value,
            cls=vitals.cls.value,
            fid=vitals.fid.value,
        ),
        mobile_friendly=measurement.mobile_friendly.status == MobileFriendlyStatus.PASS,
        is_https=measurement.is_https,
        has_robots=measurement.robots.exists,
        has_sitemap=measurement.sitemap.exists,
        meta_score=100 if both_within else 50,
        content_score=min(round_half_up(word_count / FULL_CONTENT_WORD_COUNT * 100), 100),
        seo_readiness=measurement.seo_readiness,
    )


# ─────────────────────────────────────────────
# Store
# ─────────────────────────────────────────────

class RankingStore:
    """Leaderboard operations over a KVStore."""

    def __init__(self, kv: KVStore, max_entries: int = MAX_ENTRIES, page_size: int = DEFAULT_PAGE_SIZE):
        self.kv = kv
        self.max_entries = max_entries
        self.page_size = page_size

    # ── Record access ────────────────────────────

    async def _read_index(self) -> list[IndexItem] | None:
        raw = await self.kv.get(INDEX_KEY)
        if raw is None:
            return None
        return _INDEX_ADAPTER.validate_python(raw)

    async def _write_index(self, items: list[IndexItem]) -> None:
        await self.kv.put(INDEX_KEY, _INDEX_ADAPTER.dump_json(items, by_alias=True).decode())

    async def _read_meta(self) -> RankingMeta | None:
        raw = await self.kv.get(META_KEY)
        return RankingMeta.model_validate(raw) if raw is not None else None

    async def _write_entry(self, entry: RankingEntry) -> None:
        await self.kv.put(entry_key(entry.root_url), entry.model_dump_json(by_alias=True))

    async def _read_entries(
        self,
        urls: list[str],
        known: dict[str, RankingEntry] | None = None,
    ) -> list[RankingEntry]:
        """Batch-read entries in the given order. `known` entries skip the read."""
        known = known or {}
        to_fetch = [entry_key(url) for url in urls if url not in known]
        records: dict[str, Any] = await self.kv.get_many(to_fetch) if to_fetch else {}

        entries: list[RankingEntry] = []
        for url in urls:
            if url in known:
                entries.append(known[url])
                continue
            raw = records.get(entry_key(url))
            if raw is None:
                logger.warning("Ranking entry record missing", url=url)
                continue
            entries.append(RankingEntry.model_validate(raw))
        return entries

    async def _rebuild_pages(
        self,
        index: list[IndexItem],
        page_size: int,
        previous_pages: int,
        known: dict[str, RankingEntry] | None = None,
    ) -> tuple[RankingMeta, list[RankingEntry]]:
        """Rewrite every page from the index, drop stale pages, then write meta."""
        entries = await self._read_entries([item.url for item in index], known)
        total_pages = count_pages(len(entries), page_size)

        for number in range(1, total_pages + 1):
            chunk = entries[(number - 1) * page_size : number * page_size]
            page = RankingPage(page=number, entries=chunk)
            await self.kv.put(page_key(number), page.model_dump_json(by_alias=True))

        for stale in range(total_pages + 1, previous_pages + 1):
            await self.kv.delete(page_key(stale))

        meta = RankingMeta(
            total_entries=len(entries),
            total_pages=total_pages,
            page_size=page_size,
            updated_at=_now(),
        )
        await self.kv.put(META_KEY, meta.model_dump_json(by_alias=True))

        logger.debug("Ranking pages rebuilt", total_entries=len(entries), total_pages=total_pages)
        return meta, entries

    # ── Legacy migration ─────────────────────────

    async def _migrate_legacy(self, page_size: int) -> tuple[RankingMeta, list[RankingEntry]] | None:
        raw = await self.kv.get(LEGACY_RANKING_KEY)
        if raw is None:
            return None

        if await self.kv.get(INDEX_KEY) is not None:
            # Another writer already migrated; the blob is just stale
            await self.kv.delete(LEGACY_RANKING_KEY)
            logger.info("Removed stale legacy ranking blob")
            return None

        legacy = LegacyRanking.model_validate(raw)
        by_url: dict[str, RankingEntry] = {}
        for entry in sorted(legacy.entries, key=lambda e: e.score, reverse=True):
            if entry.root_url not in by_url:
                by_url[entry.root_url] = entry
            if len(by_url) >= self.max_entries:
                break

        index = [IndexItem(url=url, score=entry.score) for url, entry in by_url.items()]
        for entry in by_url.values():
            await self._write_entry(entry)
        await self._write_index(index)

        previous = await self._read_meta()
        result = await self._rebuild_pages(
            index,
            page_size,
            previous.total_pages if previous else 0,
            known=by_url,
        )
        await self.kv.delete(LEGACY_RANKING_KEY)

        logger.info(
            "Migrated legacy ranking",
            legacy_entries=len(legacy.entries),
            migrated_entries=len(index),
        )
        return result

    async def migrate_legacy(self) -> bool:
        """Split the legacy blob into index/entry/page/meta records. Idempotent."""
        return await self._migrate_legacy(self.page_size) is not None

    # ── Writes ───────────────────────────────────

    async def update_ranking(self, entry: RankingEntry) -> RankingData:
        """Upsert an entry by root URL and rebuild the pages."""
        try:
            return await self._update(entry)
        except STORE_ERRORS as exc:
            logger.error(
                "Ranking update failed",
                root_url=entry.root_url,
                error=str(exc),
                exc_info=True,
            )
            await self._recover()
            raise RankingStoreError(f"Failed to update ranking for {entry.root_url}") from exc

    async def _recover(self) -> None:
        try:
            if await self.migrate_legacy():
                logger.info("Recovered ranking from legacy blob")
        except STORE_ERRORS as exc:
            logger.error("Legacy ranking recovery failed", error=str(exc))

    async def _update(self, entry: RankingEntry) -> RankingData:
        index = await self._read_index()
        meta = await self._read_meta()

        if index is None:
            migrated = await self._migrate_legacy(self.page_size)
            if migrated is not None:
                meta, migrated_entries = migrated
                index = [IndexItem(url=e.root_url, score=e.score) for e in migrated_entries]

        candidates = [item for item in (index or []) if item.url != entry.root_url]
        candidates.append(IndexItem(url=entry.root_url, score=entry.score))
        candidates = _sorted_by_score(candidates)

        kept = candidates[: self.max_entries]
        dropped = [item.url for item in candidates[self.max_entries :]]
        is_ranked = entry.root_url not in dropped

        if is_ranked:
            await self._write_entry(entry)
        await self._write_index(kept)

        new_meta, entries = await self._rebuild_pages(
            kept,
            self.page_size,
            meta.total_pages if meta else 0,
            known={entry.root_url: entry} if is_ranked else None,
        )

        for url in dropped:
            await self.kv.delete(entry_key(url))

        logger.info(
            "Ranking updated",
            root_url=entry.root_url,
            score=entry.score,
            ranked=is_ranked,
            total_entries=new_meta.total_entries,
            pruned=len(dropped),
        )
        return RankingData(entries=entries, updated_at=new_meta.updated_at)

    # ── Reads ────────────────────────────────────

    async def get_ranking(self) -> RankingData:
        """Full, unpaginated read. Returns an empty ranking on storage errors."""
        try:
            index = await self._read_index()
            if index is None:
                migrated = await self._migrate_legacy(self.page_size)
                if migrated is None:
                    return RankingData(entries=[], updated_at=_now())
                meta, entries = migrated
                return RankingData(entries=entries, updated_at=meta.updated_at)

            entries = await self._read_entries([item.url for item in index])
            meta = await self._read_meta()
            return RankingData(entries=entries, updated_at=meta.updated_at if meta else _now())

        except STORE_ERRORS as exc:
            logger.error("Failed to get ranking", error=str(exc))
            return RankingData(entries=[], updated_at=_now())

    async def get_paginated_ranking(self, page: int = 1, page_size: int | None = None) -> PaginatedRankingData:
        page = max(1, page)
        page_size = self.page_size if page_size is None else page_size
        if page_size < 1:
            raise ValueError("page_size must be positive")

        try:
            return await self._read_page(page, page_size)
        except STORE_ERRORS as exc:
            logger.error("Failed to get paginated ranking", page=page, page_size=page_size, error=str(exc))
            return PaginatedRankingData(entries=[], page=page, page_size=page_size, updated_at=_now())

    async def _read_page(self, page: int, page_size: int) -> PaginatedRankingData:
        meta = await self._read_meta()

        if meta is not None and meta.page_size == page_size:
            if page > meta.total_pages:
                return self._page_result([], page, meta)
            record = await self.kv.get(page_key(page))
            if record is not None:
                return self._page_result(RankingPage.model_validate(record).entries, page, meta)
            logger.info("Ranking page record missing, rebuilding", page=page)

        rebuilt = await self._rebuild_from_index(page_size, meta)
        if rebuilt is None:
            return PaginatedRankingData(entries=[], page=page, page_size=page_size, updated_at=_now())

        meta, entries = rebuilt
        start = (page - 1) * page_size
        return self._page_result(entries[start : start + page_size], page, meta)

    async def _rebuild_from_index(
        self,
        page_size: int,
        meta: RankingMeta | None,
    ) -> tuple[RankingMeta, list[RankingEntry]] | None:
        index = await self._read_index()
        if index is None:
            return await self._migrate_legacy(page_size)

        logger.info(
            "Rebuilding ranking pages",
            page_size=page_size,
            previous_page_size=meta.page_size if meta else None,
        )
        return await self._rebuild_pages(index, page_size, meta.total_pages if meta else 0)

    @staticmethod
    def _page_result(entries: list[RankingEntry], page: int, meta: RankingMeta) -> PaginatedRankingData:
        return PaginatedRankingData(
            entries=entries,
            page=page,
            page_size=meta.page_size,
            total_entries=meta.total_entries,
            total_pages=meta.total_pages,
            updated_at=meta.updated_at,
        )

    # ── Measurement entry point ──────────────────

    async def calculate_and_update_ranking(self, measurement: MeasureResponse) -> RankingEntry | None:
        """Rank a root-scope measurement. Sub-page audits never touch the store."""
        if measurement.scope != Scope.ROOT:
            logger.debug("Skipping ranking for page-scope measurement", url=measurement.measured_url)
            return None

        entry = create_ranking_entry(measurement, calculate_score(measurement))
        await self.update_ranking(entry)
        return entry
