"""
Scoped Counter Store Tests — atomic check-then-increment and pruning.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from verigate.admission.limiter import AdmissionLimiter
from verigate.admission.schemas import AdmissionRequest, BlockEntry, Dimension, EndpointClass
from verigate.admission.store import InMemoryCounterStore, active_blocks


class TestInMemoryCounterStore:
    def test_hit_counts_and_refuses(self):
        store = InMemoryCounterStore()
        assert store.hit("k", 0.0, 2, 60) == (True, 1)
        assert store.hit("k", 1.0, 2, 60) == (True, 2)
        assert store.hit("k", 2.0, 2, 60) == (False, 2)
        assert store.count("k", 2.0) == 2

    def test_refused_hit_not_recorded(self):
        store = InMemoryCounterStore()
        store.hit("k", 0.0, 1, 60)
        for _ in range(10):
            store.hit("k", 1.0, 1, 60)
        assert store.count("k", 1.0) == 1

    def test_events_expire_with_window(self):
        store = InMemoryCounterStore()
        store.hit("k", 0.0, 1, 60)
        assert store.hit("k", 60.0, 1, 60) == (True, 1)

    def test_blocks_replace_per_class(self):
        store = InMemoryCounterStore()
        first = BlockEntry(Dimension.IP, "h", "a", expires_at=10.0, endpoint_class=EndpointClass.FUNDING)
        second = BlockEntry(Dimension.IP, "h", "b", expires_at=20.0, endpoint_class=EndpointClass.FUNDING)
        other = BlockEntry(Dimension.IP, "h", "c", expires_at=30.0, endpoint_class=EndpointClass.CONSENT)
        for entry in (first, second, other):
            store.put_block(entry)
        reasons = sorted(b.reason for b in store.find_blocks(Dimension.IP, "h"))
        assert reasons == ["b", "c"]

    def test_prune_expired(self):
        store = InMemoryCounterStore()
        store.hit("old", 0.0, 5, 60)
        store.hit("new", 100.0, 5, 60)
        store.put_block(BlockEntry(Dimension.USER_ID, "h", "x", expires_at=50.0))
        store.put_block(BlockEntry(Dimension.USER_ID, "h2", "y", expires_at=500.0))

        windows, blocks = store.prune(120.0)
        assert (windows, blocks) == (1, 1)
        assert store.window_count() == 1
        assert [b.reason for b in active_blocks(store.all_blocks(), 120.0)] == ["y"]

    def test_hit_after_prune_uses_fresh_window(self):
        store = InMemoryCounterStore()
        store.hit("k", 0.0, 1, 60)
        store.prune(100.0)
        assert store.hit("k", 100.0, 1, 60) == (True, 1)


class TestConcurrency:
    def test_concurrent_hits_never_exceed_limit(self):
        store = InMemoryCounterStore()
        limit = 50
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            return sum(1 for _ in range(100) if store.hit("shared", 1.0, limit, 60)[0])

        with ThreadPoolExecutor(max_workers=8) as pool:
            admitted = sum(pool.map(lambda _: worker(), range(8)))

        assert admitted == limit
        assert store.count("shared", 1.0) == limit

    def test_concurrent_prune_and_hits(self):
        """Pruning alongside live traffic never loses an admitted event."""
        store = InMemoryCounterStore()
        stop = threading.Event()

        def pruner():
            while not stop.is_set():
                store.prune(5.0)

        thread = threading.Thread(target=pruner)
        thread.start()
        try:
            admitted = sum(1 for _ in range(2000) if store.hit("live", 5.0, 10_000, 60)[0])
        finally:
            stop.set()
            thread.join()

        assert admitted == 2000
        assert store.count("live", 5.0) == 2000

    def test_concurrent_funding_burst(self, clock):
        """A burst of parallel funding requests admits exactly the ip:funding limit."""
        limiter = AdmissionLimiter(clock=clock, hash_salt="s")
        request = AdmissionRequest(ip="203.0.113.77", path="/wallet/fund")

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: limiter.check(request), range(64)))

        assert sum(r.allowed for r in results) == 5
        assert all(r.reason is not None for r in results if not r.allowed)
