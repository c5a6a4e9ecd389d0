"""Unit tests for BookingCache."""

import asyncio

import pytest

from services.cache import BookingCache, LookupResult, SourceOutcome, run_periodic_sweep


class TestRecordSets:
    def test_miss_on_empty_cache(self, cache):
        assert cache.get_record_set("A") is None

    def test_put_then_get(self, cache):
        records = [{"id": "RRP-1"}]
        cache.put_record_set("A", records)

        assert cache.get_record_set("A") == records

    def test_entry_live_until_ttl_then_evicted(self, cache, clock):
        cache.put_record_set("A", [{"id": "RRP-1"}])

        clock.advance(300)
        assert cache.get_record_set("A") == [{"id": "RRP-1"}]

        clock.advance(1)
        assert cache.get_record_set("A") is None
        # Stale read evicts the entry
        assert cache.stats()["record_set_count"] == 0

    def test_put_after_expiry_is_readable(self, cache, clock):
        cache.put_record_set("A", [{"id": "RRP-1"}])
        clock.advance(301)
        assert cache.get_record_set("A") is None

        cache.put_record_set("A", [{"id": "RRP-2"}])
        assert cache.get_record_set("A") == [{"id": "RRP-2"}]

    def test_second_put_replaces_first(self, cache):
        cache.put_record_set("A", [{"id": "RRP-1"}, {"id": "RRP-2"}])
        cache.put_record_set("A", [{"id": "RRP-9"}])

        assert cache.get_record_set("A") == [{"id": "RRP-9"}]
        assert cache.stats()["record_set_count"] == 1

    def test_stored_set_is_isolated_from_callers(self, cache):
        records = [{"id": "RRP-1"}]
        cache.put_record_set("A", records)
        records.append({"id": "RRP-2"})
        cache.get_record_set("A").clear()

        assert cache.get_record_set("A") == [{"id": "RRP-1"}]

    def test_empty_record_set_is_a_hit(self, cache):
        cache.put_record_set("A", [])
        assert cache.get_record_set("A") == []


class TestLookupResults:
    def test_negative_result_is_cached(self, cache):
        result = LookupResult(match=None, per_source_outcomes=(SourceOutcome("A", False, 2),))
        cache.put_lookup_result("multi_RRP-9999", result)

        assert cache.get_lookup_result("multi_RRP-9999") is result

    def test_lookup_ttl_is_two_minutes(self, cache, clock):
        cache.put_lookup_result("A:RRP-1", LookupResult(match={"id": "RRP-1"}))

        clock.advance(120)
        assert cache.get_lookup_result("A:RRP-1") is not None
        clock.advance(1)
        assert cache.get_lookup_result("A:RRP-1") is None

    def test_tables_are_independent(self, cache):
        cache.put_record_set("A", [{"id": "RRP-1"}])
        assert cache.get_lookup_result("A") is None

    def test_to_dict_omits_missing_error(self):
        result = LookupResult(
            match=None,
            per_source_outcomes=(SourceOutcome("A", False, 2), SourceOutcome("B", False, 0, error="down")),
            search_duration_ms="12ms",
        )

        assert result.to_dict() == {
            "match": None,
            "source_of_match": None,
            "per_source_outcomes": [
                {"source": "A", "found": False, "record_count": 2},
                {"source": "B", "found": False, "record_count": 0, "error": "down"},
            ],
            "search_duration_ms": "12ms",
        }


class TestSweep:
    def test_sweep_on_empty_cache(self, cache):
        assert cache.sweep_expired() == 0
        assert cache.sweep_expired() == 0

    def test_sweep_removes_only_expired_entries(self, cache, clock):
        cache.put_record_set("old", [{"id": "1"}])
        cache.put_lookup_result("old-lookup", LookupResult(match=None))
        clock.advance(200)
        cache.put_record_set("fresh", [{"id": "2"}])
        cache.put_lookup_result("fresh-lookup", LookupResult(match=None))

        # Only the old lookup (200s > 120s) is past its TTL
        assert cache.sweep_expired() == 1
        assert cache.stats()["record_set_count"] == 2
        assert cache.get_lookup_result("fresh-lookup") is not None

        clock.advance(150)
        assert cache.sweep_expired() == 2
        assert cache.get_record_set("old") is None
        assert cache.get_record_set("fresh") == [{"id": "2"}]
        assert cache.stats()["lookup_count"] == 0

    @pytest.mark.asyncio
    async def test_periodic_sweep_runs_until_cancelled(self, cache, clock):
        cache.put_record_set("A", [{"id": "1"}])
        clock.advance(301)

        task = asyncio.create_task(run_periodic_sweep(cache, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert cache.stats()["record_set_count"] == 0


class TestStatsAndClear:
    def test_stats_reports_live_ages(self, cache, clock):
        cache.put_record_set("A", [])
        clock.advance(10)
        cache.put_record_set("B", [])
        cache.put_lookup_result("multi_X", LookupResult(match=None))
        clock.advance(32.7)

        assert cache.stats() == {
            "record_set_count": 2,
            "lookup_count": 1,
            "oldest_record_set_age_seconds": 42,
            "oldest_lookup_age_seconds": 32,
        }

    def test_stats_does_not_evict(self, cache, clock):
        cache.put_record_set("A", [])
        clock.advance(1000)

        assert cache.stats()["record_set_count"] == 1
        assert cache.stats()["oldest_record_set_age_seconds"] == 1000

    def test_clear_all(self, cache):
        cache.put_record_set("A", [{"id": "1"}])
        cache.put_lookup_result("multi_1", LookupResult(match={"id": "1"}))

        cache.clear_all()

        assert cache.get_record_set("A") is None
        assert cache.get_lookup_result("multi_1") is None
        assert cache.stats()["record_set_count"] == 0

    def test_custom_ttls(self, clock):
        cache = BookingCache(record_set_ttl=10, lookup_ttl=5, clock=clock)
        cache.put_record_set("A", [])
        cache.put_lookup_result("k", LookupResult(match=None))
        clock.advance(6)

        assert cache.get_record_set("A") == []
        assert cache.get_lookup_result("k") is None
