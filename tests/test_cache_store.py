"""
Unittest suite for the disk-backed lookup cache.

A fake clock drives expiry so no test sleeps.  Records are written to a
temporary directory which is removed after each test.
"""

from __future__ import annotations

import json
import os
import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest import mock

from talentflow.cache import CachePolicy, CacheStore, ExpiryMode, make_key


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestCacheStore(unittest.TestCase):
    """Behaviour of get/put, expiry policies, self-healing and maintenance."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.cache_dir = Path(self.temp_dir.name) / "cache"
        self.clock = FakeClock()
        self.store = CacheStore(self.cache_dir, CachePolicy(ttl_seconds=3600), clock=self.clock)
        self.key = make_key("serpapi_scholar", {"q": "Ada Lovelace"})

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_put_then_get_returns_payload(self) -> None:
        payload = {"profiles": {"authors": [{"name": "Ada", "author_id": "x1"}]}}
        self.assertTrue(self.store.put(self.key, payload))
        self.assertEqual(self.store.get(self.key), payload)

    def test_missing_key_is_none(self) -> None:
        self.assertIsNone(self.store.get(self.key))

    def test_put_replaces_previous_entry(self) -> None:
        self.store.put(self.key, {"v": 1})
        self.store.put(self.key, {"v": 2})
        self.assertEqual(self.store.get(self.key), {"v": 2})
        self.assertEqual(len(list(self.cache_dir.glob("*.json"))), 1)

    def test_record_layout_on_disk(self) -> None:
        self.store.put(self.key, [1, 2, 3])
        record = json.loads((self.cache_dir / f"{self.key}.json").read_text(encoding="utf-8"))
        self.assertEqual(record["key"], self.key)
        self.assertEqual(record["payload"], [1, 2, 3])
        self.assertEqual(record["created_at"], self.clock.now)

    def test_entry_expires_after_ttl(self) -> None:
        self.store.put(self.key, {"v": 1})
        self.clock.advance(3599)
        self.assertEqual(self.store.get(self.key), {"v": 1})
        self.clock.advance(1)
        self.assertIsNone(self.store.get(self.key))

    def test_never_expire_policy_ignores_age(self) -> None:
        self.store.put(self.key, {"v": 1})
        self.clock.advance(10 * 365 * 24 * 3600)
        self.assertIsNone(self.store.get(self.key))
        self.store.set_policy(CachePolicy(ttl_seconds=3600, mode=ExpiryMode.NEVER))
        self.assertEqual(self.store.get(self.key), {"v": 1})

    def test_always_expired_policy_misses_fresh_entries(self) -> None:
        store = CacheStore(self.cache_dir, CachePolicy(mode=ExpiryMode.ALWAYS), clock=self.clock)
        store.put(self.key, {"v": 1})
        self.assertIsNone(store.get(self.key))

    def test_zero_hours_means_never_expire(self) -> None:
        policy = CachePolicy.from_hours(0)
        self.assertIs(policy.mode, ExpiryMode.NEVER)
        self.assertFalse(policy.is_expired(0, 1e12))
        self.assertIs(CachePolicy.from_hours(0, ExpiryMode.ALWAYS).mode, ExpiryMode.ALWAYS)
        self.assertEqual(CachePolicy.from_hours(2).ttl_seconds, 7200)

    def test_corrupt_record_is_removed_and_heals_on_next_put(self) -> None:
        self.store.put(self.key, {"v": 1})
        path = self.cache_dir / f"{self.key}.json"
        path.write_text("{not json", encoding="utf-8")
        with self.assertLogs("talentflow.cache.store", level="WARNING"):
            self.assertIsNone(self.store.get(self.key))
        self.assertFalse(path.exists())
        self.assertIsNone(self.store.get(self.key))
        self.assertTrue(self.store.put(self.key, {"v": 2}))
        self.assertEqual(self.store.get(self.key), {"v": 2})

    def test_record_without_timestamp_counts_as_corrupt(self) -> None:
        path = self.cache_dir / f"{self.key}.json"
        path.write_text(json.dumps({"payload": {"v": 1}}), encoding="utf-8")
        self.assertIsNone(self.store.get(self.key))
        self.assertFalse(path.exists())

    def test_unserialisable_payload_is_skipped(self) -> None:
        self.assertFalse(self.store.put(self.key, {"v": object()}))
        self.assertIsNone(self.store.get(self.key))

    def test_unsafe_key_is_a_miss(self) -> None:
        self.assertIsNone(self.store.get("../etc/passwd"))
        self.assertFalse(self.store.put("../etc/passwd", {"v": 1}))

    def test_write_failure_is_logged_not_raised(self) -> None:
        with mock.patch("talentflow.cache.store.os.replace", side_effect=OSError("disk full")):
            with self.assertLogs("talentflow.cache.store", level="WARNING"):
                self.assertFalse(self.store.put(self.key, {"v": 1}))
        self.assertIsNone(self.store.get(self.key))
        leftovers = [p for p in os.listdir(self.cache_dir) if p.startswith(".tmp-")]
        self.assertEqual(leftovers, [])

    def test_stats_counts_valid_and_expired(self) -> None:
        self.store.put(make_key("pdl", "a"), {"v": 1})
        self.clock.advance(7200)
        self.store.put(make_key("pdl", "b"), {"v": 2})
        self.store.put(make_key("github", "c"), {"v": 3})
        stats = self.store.stats()
        self.assertEqual(stats.entries, 3)
        self.assertEqual(stats.valid, 2)
        self.assertEqual(stats.expired, 1)
        self.assertGreater(stats.total_bytes, 0)
        self.assertIsInstance(stats.total_mb, float)

    def test_invalidate_expired_removes_only_stale_and_corrupt(self) -> None:
        stale = make_key("pdl", "old")
        self.store.put(stale, {"v": 1})
        self.clock.advance(7200)
        fresh = make_key("pdl", "new")
        self.store.put(fresh, {"v": 2})
        (self.cache_dir / f"{make_key('pdl', 'bad')}.json").write_text("garbage", encoding="utf-8")
        self.assertEqual(self.store.invalidate_expired(), 2)
        self.assertEqual(self.store.get(fresh), {"v": 2})
        self.assertEqual(self.store.stats().entries, 1)

    def test_clear_all_with_and_without_prefix(self) -> None:
        self.store.put(make_key("pdl", "a"), {"v": 1})
        self.store.put(make_key("pdl", "b"), {"v": 2})
        self.store.put(make_key("github", "c"), {"v": 3})
        self.assertEqual(self.store.clear_all(prefix="pdl"), 2)
        self.assertEqual(self.store.stats().entries, 1)
        self.assertEqual(self.store.clear_all(), 1)
        self.assertEqual(self.store.stats().entries, 0)

    def test_invalidate_single_key(self) -> None:
        self.store.put(self.key, {"v": 1})
        self.assertTrue(self.store.invalidate(self.key))
        self.assertFalse(self.store.invalidate(self.key))

    def test_concurrent_put_and_get_on_one_key(self) -> None:
        payloads = [{"writer": n, "authors": ["x" * 512] * (n % 7 + 1)} for n in range(16)]
        seen = []

        def write(payload):
            for _ in range(10):
                self.store.put(self.key, payload)

        def read(_):
            for _ in range(25):
                seen.append(self.store.get(self.key))

        with mock.patch("talentflow.cache.store.logger") as log:
            with ThreadPoolExecutor(max_workers=8) as pool:
                jobs = [pool.submit(write, p) for p in payloads] + [pool.submit(read, n) for n in range(8)]
                for job in jobs:
                    job.result()
            final = self.store.get(self.key)

        log.warning.assert_not_called()
        self.assertEqual(len(seen), 200)
        for value in seen:
            self.assertTrue(value is None or value in payloads, value)
        self.assertIn(final, payloads)
        self.assertEqual([p.name for p in self.cache_dir.iterdir()], [f"{self.key}.json"])


if __name__ == "__main__":
    unittest.main()
