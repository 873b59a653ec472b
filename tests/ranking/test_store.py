"""
Tests for the paginated ranking store.
Runs against the in-memory KV store.
"""

import json

import pytest
from pydantic import ValidationError

from seo_ranking.core.exceptions import KVStoreError, RankingStoreError
from seo_ranking.core.kv import MemoryKVStore
from seo_ranking.engines.base import MeasureResponse, SEOReadiness
from seo_ranking.ranking.store import (
    INDEX_KEY,
    LEGACY_RANKING_KEY,
    META_KEY,
    RankingStore,
    calculate_score,
    count_pages,
    create_ranking_entry,
    entry_key,
    page_key,
)


class FailingKVStore(MemoryKVStore):
    """Memory store whose reads and writes can be switched off."""

    def __init__(self, fail_reads: bool = False, fail_writes: bool = False):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def get(self, key):
        if self.fail_reads:
            raise KVStoreError("get", key, "backend unavailable")
        return await super().get(key)

    async def put(self, key, value):
        if self.fail_writes:
            raise KVStoreError("put", key, "backend unavailable")
        await super().put(key, value)


def read(kv: MemoryKVStore, key: str):
    return json.loads(kv.data[key])


# ─────────────────────────────────────────────
# Projection Tests
# ─────────────────────────────────────────────

class TestProjection:

    def test_score_is_readiness_overall(self, measurement_factory):
        measurement = measurement_factory(mobile_status="fail")
        assert measurement.seo_readiness.overall < 100
        assert calculate_score(measurement) == measurement.seo_readiness.overall

    def test_entry_fields(self, measurement_factory):
        measurement = measurement_factory(word_count=250)
        entry = create_ranking_entry(measurement, calculate_score(measurement))

        assert entry.url == "https://example.com/"
        assert entry.root_url == "https://example.com"
        assert entry.score == 100
        assert entry.performance_score == 91
        assert entry.is_https
        assert entry.has_robots
        assert not entry.has_sitemap
        assert entry.meta_score == 100
        assert entry.content_score == 50
        assert entry.seo_readiness == measurement.seo_readiness

    def test_meta_score_halves_when_any_length_off(self, measurement_factory):
        entry = create_ranking_entry(measurement_factory(title_status="long"), 50)
        assert entry.meta_score == 50

    def test_content_score_is_capped(self, measurement_factory):
        entry = create_ranking_entry(measurement_factory(word_count=1200), 50)
        assert entry.content_score == 100

    def test_count_pages(self):
        assert count_pages(0, 20) == 0
        assert count_pages(20, 20) == 1
        assert count_pages(21, 20) == 2


# ─────────────────────────────────────────────
# Update Tests
# ─────────────────────────────────────────────

class TestUpdateRanking:

    @pytest.mark.asyncio
    async def test_first_entry_creates_all_records(self, kv, entry_factory):
        store = RankingStore(kv)
        data = await store.update_ranking(entry_factory("https://a.com", 70))

        assert [e.root_url for e in data.entries] == ["https://a.com"]
        assert read(kv, INDEX_KEY) == [{"url": "https://a.com", "score": 70}]
        assert read(kv, entry_key("https://a.com"))["rootUrl"] == "https://a.com"
        assert read(kv, page_key(1))["page"] == 1
        meta = read(kv, META_KEY)
        assert meta["totalEntries"] == 1
        assert meta["totalPages"] == 1
        assert meta["pageSize"] == 20

    @pytest.mark.asyncio
    async def test_sorted_by_score_descending(self, kv, entry_factory):
        store = RankingStore(kv)
        for root_url, score in [("https://a.com", 50), ("https://b.com", 90), ("https://c.com", 70)]:
            await store.update_ranking(entry_factory(root_url, score))

        ranking = await store.get_ranking()
        assert [e.score for e in ranking.entries] == [90, 70, 50]

    @pytest.mark.asyncio
    async def test_upsert_by_root_url(self, kv, entry_factory):
        store = RankingStore(kv)
        await store.update_ranking(entry_factory("https://a.com", 50))
        await store.update_ranking(entry_factory("https://b.com", 60))
        await store.update_ranking(entry_factory("https://a.com", 80, url="https://a.com/"))

        ranking = await store.get_ranking()
        assert [(e.root_url, e.score) for e in ranking.entries] == [
            ("https://a.com", 80),
            ("https://b.com", 60),
        ]

    @pytest.mark.asyncio
    async def test_idempotent(self, kv, entry_factory):
        store = RankingStore(kv)
        await store.update_ranking(entry_factory("https://b.com", 60))
        entry = entry_factory("https://a.com", 75)

        await store.update_ranking(entry)
        first = dict(kv.data)
        await store.update_ranking(entry)

        assert set(kv.data) == set(first)
        for key in first:
            if key == META_KEY:
                continue
            assert kv.data[key] == first[key]
        first_meta = json.loads(first[META_KEY])
        second_meta = read(kv, META_KEY)
        first_meta.pop("updatedAt")
        second_meta.pop("updatedAt")
        assert first_meta == second_meta

    @pytest.mark.asyncio
    async def test_capacity_keeps_top_entries(self, kv, entry_factory):
        store = RankingStore(kv)
        # 37 is coprime with 150, so this visits every score once in mixed order
        scores = [(i * 37) % 150 for i in range(150)]
        for score in scores:
            await store.update_ranking(entry_factory(f"https://site{score}.com", score))

        ranking = await store.get_ranking()
        assert len(ranking.entries) == 100
        assert sorted(e.score for e in ranking.entries) == list(range(50, 150))
        assert [e.score for e in ranking.entries] == list(range(149, 49, -1))

        index = read(kv, INDEX_KEY)
        assert len(index) == 100
        assert {item["score"] for item in index} == set(range(50, 150))

        entry_keys = [key for key in kv.keys() if key.startswith("entry:")]
        assert len(entry_keys) == 100
        assert entry_key("https://site10.com") not in kv.data

        meta = read(kv, META_KEY)
        assert meta["totalEntries"] == 100
        assert meta["totalPages"] == 5

    @pytest.mark.asyncio
    async def test_entry_below_cutoff_is_not_stored(self, kv, entry_factory):
        store = RankingStore(kv, max_entries=2)
        await store.update_ranking(entry_factory("https://a.com", 90))
        await store.update_ranking(entry_factory("https://b.com", 80))
        data = await store.update_ranking(entry_factory("https://c.com", 10))

        assert [e.root_url for e in data.entries] == ["https://a.com", "https://b.com"]
        assert entry_key("https://c.com") not in kv.data

    @pytest.mark.asyncio
    async def test_write_failure_raises(self, entry_factory):
        kv = FailingKVStore(fail_writes=True)
        store = RankingStore(kv)

        with pytest.raises(RankingStoreError) as exc_info:
            await store.update_ranking(entry_factory("https://a.com", 70))
        assert isinstance(exc_info.value.__cause__, KVStoreError)

    @pytest.mark.asyncio
    async def test_page_scope_measurement_is_not_ranked(self, kv, measurement_factory):
        store = RankingStore(kv)
        measurement = measurement_factory(url="https://example.com/blog", scope="page")

        assert await store.calculate_and_update_ranking(measurement) is None
        assert kv.data == {}

    @pytest.mark.asyncio
    async def test_root_scope_measurement_is_ranked(self, kv, measurement_factory):
        store = RankingStore(kv)
        measurement = measurement_factory(lcp_ms=5000)
        entry = await store.calculate_and_update_ranking(measurement)

        assert entry.score == measurement.seo_readiness.overall
        ranking = await store.get_ranking()
        assert ranking.entries == [entry]


# ─────────────────────────────────────────────
# Read Tests
# ─────────────────────────────────────────────

class TestPaginatedReads:

    @pytest.mark.asyncio
    async def test_empty_store(self, kv):
        store = RankingStore(kv)
        result = await store.get_paginated_ranking()
        assert result.entries == []
        assert result.total_entries == 0
        assert result.total_pages == 0

        ranking = await store.get_ranking()
        assert ranking.entries == []

    @pytest.mark.asyncio
    async def test_pages_cover_full_ranking(self, kv, entry_factory):
        store = RankingStore(kv)
        for i in range(45):
            await store.update_ranking(entry_factory(f"https://site{i}.com", i))

        full = await store.get_ranking()
        collected = []
        for page in (1, 2, 3):
            result = await store.get_paginated_ranking(page, 20)
            assert result.total_entries == 45
            assert result.total_pages == 3
            assert result.page == page
            collected.extend(result.entries)

        assert len(collected) == 45
        assert [e.root_url for e in collected] == [e.root_url for e in full.entries]
        assert len({e.root_url for e in collected}) == 45

    @pytest.mark.asyncio
    async def test_page_past_end_is_empty(self, kv, entry_factory):
        store = RankingStore(kv)
        await store.update_ranking(entry_factory("https://a.com", 70))

        result = await store.get_paginated_ranking(5, 20)
        assert result.entries == []
        assert result.total_entries == 1
        assert result.total_pages == 1

    @pytest.mark.asyncio
    async def test_page_number_is_clamped(self, kv, entry_factory):
        store = RankingStore(kv)
        await store.update_ranking(entry_factory("https://a.com", 70))

        result = await store.get_paginated_ranking(0)
        assert result.page == 1
        assert len(result.entries) == 1

    @pytest.mark.asyncio
    async def test_negative_page_size_rejected(self, kv):
        with pytest.raises(ValueError):
            await RankingStore(kv).get_paginated_ranking(1, -5)

    @pytest.mark.asyncio
    async def test_zero_page_size_rejected(self, kv):
        with pytest.raises(ValueError):
            await RankingStore(kv).get_paginated_ranking(1, 0)

    @pytest.mark.asyncio
    async def test_omitted_page_size_uses_store_default(self, kv, entry_factory):
        store = RankingStore(kv, page_size=5)
        for i in range(7):
            await store.update_ranking(entry_factory(f"https://site{i}.com", i))

        result = await store.get_paginated_ranking(1)
        assert result.page_size == 5
        assert len(result.entries) == 5

    @pytest.mark.asyncio
    async def test_page_size_change_rebuilds_and_drops_stale_pages(self, kv, entry_factory):
        store = RankingStore(kv)
        for i in range(25):
            await store.update_ranking(entry_factory(f"https://site{i}.com", i))
        assert read(kv, META_KEY)["totalPages"] == 2

        result = await store.get_paginated_ranking(3, 10)
        assert len(result.entries) == 5
        assert result.page_size == 10
        assert read(kv, META_KEY)["pageSize"] == 10
        assert page_key(3) in kv.data

        result = await store.get_paginated_ranking(1, 20)
        assert len(result.entries) == 20
        assert read(kv, META_KEY)["totalPages"] == 2
        assert page_key(3) not in kv.data

    @pytest.mark.asyncio
    async def test_missing_page_record_is_rebuilt(self, kv, entry_factory):
        store = RankingStore(kv)
        for i in range(25):
            await store.update_ranking(entry_factory(f"https://site{i}.com", i))
        del kv.data[page_key(2)]

        result = await store.get_paginated_ranking(2, 20)
        assert [e.score for e in result.entries] == [4, 3, 2, 1, 0]
        assert page_key(2) in kv.data

    @pytest.mark.asyncio
    async def test_read_failure_returns_empty(self, entry_factory):
        kv = FailingKVStore()
        store = RankingStore(kv)
        await store.update_ranking(entry_factory("https://a.com", 70))
        kv.fail_reads = True

        assert (await store.get_ranking()).entries == []
        result = await store.get_paginated_ranking()
        assert result.entries == []
        assert result.total_entries == 0


# ─────────────────────────────────────────────
# Legacy Migration Tests
# ─────────────────────────────────────────────

class TestLegacyMigration:

    @pytest.fixture
    def legacy_kv(self, entry_factory) -> MemoryKVStore:
        entries = [
            entry_factory("https://a.com", 40),
            entry_factory("https://b.com", 90),
            entry_factory("https://a.com", 65, url="https://a.com/"),
        ]
        blob = {
            "entries": [e.to_json_dict() for e in entries],
            "updatedAt": "2026-09-01T00:00:00Z",
        }
        return MemoryKVStore({LEGACY_RANKING_KEY: json.dumps(blob)})

    @pytest.mark.asyncio
    async def test_migrates_and_deduplicates(self, legacy_kv):
        store = RankingStore(legacy_kv)
        assert await store.migrate_legacy()

        assert LEGACY_RANKING_KEY not in legacy_kv.data
        assert read(legacy_kv, INDEX_KEY) == [
            {"url": "https://b.com", "score": 90},
            {"url": "https://a.com", "score": 65},
        ]
        assert entry_key("https://a.com") in legacy_kv.data
        assert read(legacy_kv, META_KEY)["totalEntries"] == 2

    @pytest.mark.asyncio
    async def test_migration_is_idempotent(self, legacy_kv):
        store = RankingStore(legacy_kv)
        assert await store.migrate_legacy()
        snapshot = dict(legacy_kv.data)

        assert not await store.migrate_legacy()
        assert legacy_kv.data == snapshot

    @pytest.mark.asyncio
    async def test_paginated_read_triggers_migration(self, legacy_kv):
        result = await RankingStore(legacy_kv).get_paginated_ranking()
        assert [e.root_url for e in result.entries] == ["https://b.com", "https://a.com"]
        assert result.total_entries == 2
        assert LEGACY_RANKING_KEY not in legacy_kv.data

    @pytest.mark.asyncio
    async def test_update_merges_legacy_entries(self, legacy_kv, entry_factory):
        store = RankingStore(legacy_kv)
        data = await store.update_ranking(entry_factory("https://c.com", 75))

        assert [(e.root_url, e.score) for e in data.entries] == [
            ("https://b.com", 90),
            ("https://c.com", 75),
            ("https://a.com", 65),
        ]

    @pytest.mark.asyncio
    async def test_stale_blob_removed_when_index_exists(self, legacy_kv, entry_factory):
        legacy_kv.data[INDEX_KEY] = json.dumps([{"url": "https://z.com", "score": 10}])
        store = RankingStore(legacy_kv)

        assert not await store.migrate_legacy()
        assert LEGACY_RANKING_KEY not in legacy_kv.data
        assert read(legacy_kv, INDEX_KEY) == [{"url": "https://z.com", "score": 10}]


# ─────────────────────────────────────────────
# Report Integrity Tests
# ─────────────────────────────────────────────

class TestReportIntegrity:

    def test_overall_must_match_layers(self):
        with pytest.raises(ValidationError, match="weighted layer scores"):
            SEOReadiness(
                crawlability=0,
                basic_on_page=0,
                tech_experience=0,
                seo_opportunity=0,
                overall=100,
            )

    def test_readiness_must_match_report_signals(self, measurement_factory):
        payload = measurement_factory(mobile_status="fail", lcp_ms=None).to_json_dict()
        # Consistent on its own, but claims layer scores the signals do not earn
        payload["seoReadiness"] = {
            "crawlability": 100,
            "basicOnPage": 100,
            "techExperience": 100,
            "seoOpportunity": 100,
            "overall": 100,
        }

        with pytest.raises(ValidationError, match="derived from the report signals"):
            MeasureResponse.model_validate(payload)

    def test_empty_report_claiming_top_score_is_rejected(self, measurement_factory):
        payload = measurement_factory().to_json_dict()
        payload["meta"] = {}
        payload["headings"] = {}
        payload["canonical"] = {}
        payload["seoReadiness"] = {
            "crawlability": 0,
            "basicOnPage": 0,
            "techExperience": 0,
            "seoOpportunity": 0,
            "overall": 100,
        }

        with pytest.raises(ValidationError):
            MeasureResponse.model_validate(payload)

    @pytest.mark.asyncio
    async def test_valid_report_round_trips_and_ranks(self, kv, measurement_factory):
        measurement = MeasureResponse.model_validate(measurement_factory(lcp_ms=4500).to_json_dict())
        entry = await RankingStore(kv).calculate_and_update_ranking(measurement)

        assert entry.score == measurement.seo_readiness.overall
        assert entry.score < 100
