# tests/test_research_cache.py

import threading
import time

import pytest

from src.content_pipeline.research_cache import CacheEntry, ResearchCache


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResearchCache(ttl_seconds=60, max_entries=3, clock=clock)


def test_make_key_is_normalized_and_order_independent():
    a = ResearchCache.make_key("  Remote   Work ", ["SEO", "tools", "seo"])
    b = ResearchCache.make_key("remote work", ["tools", "seo"])
    assert a == b == '["remote work", ["seo", "tools"]]'


def test_make_key_without_keywords():
    assert ResearchCache.make_key("Topic", None) == '["topic", []]'


def test_make_key_keeps_separators_inside_keywords_distinct():
    assert ResearchCache.make_key("seo", ["a,b"]) != ResearchCache.make_key("seo", ["a", "b"])
    assert ResearchCache.make_key("seo:a", []) != ResearchCache.make_key("seo", ["a"])


def test_get_within_ttl(cache, make_summary):
    summaries = [make_summary()]
    cache.put("k", summaries)
    assert cache.get("k") == summaries


def test_read_after_ttl_is_a_miss_and_evicts(cache, clock, make_summary):
    cache.put("k", [make_summary()])
    clock.advance(60)

    assert cache.get("k") is None
    assert len(cache) == 0


def test_entry_expiry_boundary():
    entry = CacheEntry(key="k", summaries=(), created_at=0.0, ttl=10.0)
    assert not entry.is_expired(9.99)
    assert entry.is_expired(10.0)


def test_capacity_is_bounded_lru(cache, make_summary):
    for key in ("a", "b", "c"):
        cache.put(key, [make_summary()])
    cache.get("a")
    cache.put("d", [make_summary()])

    assert len(cache) == 3
    assert "b" not in cache
    assert "a" in cache and "d" in cache


def test_sweep_removes_only_expired(cache, clock, make_summary):
    cache.put("old", [make_summary()])
    clock.advance(30)
    cache.put("new", [make_summary()])
    clock.advance(30)

    assert cache.sweep() == 1
    assert "new" in cache


def test_get_or_compute_caches_non_empty_results(cache, make_summary):
    calls = []

    def compute():
        calls.append(1)
        return [make_summary()]

    first = cache.get_or_compute("k", compute)
    second = cache.get_or_compute("k", compute)

    assert first == second
    assert len(calls) == 1


def test_get_or_compute_does_not_cache_empty_results(cache):
    calls = []

    def compute():
        calls.append(1)
        return []

    cache.get_or_compute("k", compute)
    cache.get_or_compute("k", compute)

    assert len(calls) == 2
    assert "k" not in cache


def test_get_or_compute_recomputes_after_expiry(cache, clock, make_summary):
    calls = []

    def compute():
        calls.append(1)
        return [make_summary()]

    cache.get_or_compute("k", compute)
    clock.advance(61)
    cache.get_or_compute("k", compute)

    assert len(calls) == 2


def test_compute_errors_propagate_and_are_not_cached(cache):
    def boom():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        cache.get_or_compute("k", boom)
    assert "k" not in cache


def test_single_flight_coalesces_concurrent_cold_requests(make_summary):
    cache = ResearchCache(ttl_seconds=60, single_flight=True)
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_compute():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return [make_summary()]

    results = []

    def worker():
        results.append(cache.get_or_compute("k", slow_compute))

    leader = threading.Thread(target=worker)
    leader.start()
    assert started.wait(timeout=5)

    followers = [threading.Thread(target=worker) for _ in range(3)]
    for thread in followers:
        thread.start()
    time.sleep(0.05)
    release.set()

    for thread in [leader] + followers:
        thread.join(timeout=5)

    assert len(calls) == 1
    assert len(results) == 4
    assert all(result == results[0] for result in results)


def test_single_flight_followers_see_leader_errors():
    cache = ResearchCache(ttl_seconds=60, single_flight=True)
    started = threading.Event()
    release = threading.Event()
    errors = []

    def failing_compute():
        started.set()
        release.wait(timeout=5)
        raise RuntimeError("boom")

    def worker():
        try:
            cache.get_or_compute("k", failing_compute)
        except RuntimeError as e:
            errors.append(str(e))

    leader = threading.Thread(target=worker)
    leader.start()
    assert started.wait(timeout=5)
    follower = threading.Thread(target=worker)
    follower.start()
    time.sleep(0.05)
    release.set()
    leader.join(timeout=5)
    follower.join(timeout=5)

    assert errors == ["boom", "boom"]


def test_without_single_flight_each_caller_computes(make_summary):
    cache = ResearchCache(ttl_seconds=60, single_flight=False)
    barrier = threading.Barrier(2)
    calls = []

    def compute():
        calls.append(1)
        barrier.wait(timeout=5)
        return [make_summary()]

    threads = [threading.Thread(target=cache.get_or_compute, args=("k", compute)) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(calls) == 2
