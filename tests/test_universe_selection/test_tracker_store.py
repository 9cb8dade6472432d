"""Unit tests for TrackerStore get-or-create semantics."""

import threading

import pytest

from universe_selection.store import TrackerStore


@pytest.fixture
def store():
    return TrackerStore()


class TestGetOrCreate:
    def test_creates_on_first_call(self, store):
        tracker = store.get_or_create('AAPL', 3, 5)
        assert tracker.entity_id == 'AAPL'
        assert tracker.fast.window_length == 3
        assert tracker.slow.window_length == 5
        assert 'AAPL' in store
        assert len(store) == 1

    def test_returns_same_instance(self, store):
        first = store.get_or_create('AAPL', 3, 5)
        second = store.get_or_create('AAPL', 3, 5)
        assert first is second
        assert len(store) == 1

    def test_existing_configuration_wins(self, store):
        first = store.get_or_create('AAPL', 3, 5)
        second = store.get_or_create('AAPL', 12, 26)
        assert second is first
        assert second.fast.window_length == 3
        assert second.slow.window_length == 5

    def test_invalid_window_inserts_nothing(self, store):
        with pytest.raises(ValueError):
            store.get_or_create('AAPL', 0, 5)
        assert 'AAPL' not in store
        assert store.get('AAPL') is None

    def test_non_string_keys(self, store):
        key = ('SPY', 'ARCA')
        tracker = store.get_or_create(key, 2, 4)
        assert store.get(key) is tracker


class TestSnapshot:
    def test_creation_order(self, store):
        for sym in ['MSFT', 'AAPL', 'NVDA']:
            store.get_or_create(sym, 3, 5)
        assert [k for k, _ in store.snapshot()] == ['MSFT', 'AAPL', 'NVDA']

    def test_snapshot_is_a_copy(self, store):
        store.get_or_create('MSFT', 3, 5)
        snap = store.snapshot()
        store.get_or_create('AAPL', 3, 5)
        assert len(snap) == 1
        assert len(store) == 2


class TestConfiguration:
    def test_shard_count_must_be_positive(self):
        with pytest.raises(ValueError):
            TrackerStore(shard_count=0)

    def test_single_shard_works(self):
        store = TrackerStore(shard_count=1)
        assert store.get_or_create('A', 3, 5) is store.get_or_create('A', 3, 5)


class TestThreadSafety:
    def test_concurrent_creation_same_key(self, store):
        barrier = threading.Barrier(16)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            tracker = store.get_or_create('HOT', 3, 5)
            with lock:
                results.append(tracker)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 16
        assert len({id(t) for t in results}) == 1
        assert len(store) == 1

    def test_concurrent_creation_many_keys(self, store):
        keys = [f'SYM{i}' for i in range(200)]
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            for k in keys:
                store.get_or_create(k, 3, 5)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 200
        assert sorted(k for k, _ in store.snapshot()) == sorted(keys)


class TestLookupOrCreate:
    def test_reports_creation_once(self, store):
        first, created_first = store.lookup_or_create('AAPL', 3, 5)
        second, created_second = store.lookup_or_create('AAPL', 3, 5)
        assert created_first is True
        assert created_second is False
        assert first is second

    def test_only_one_thread_reports_creation(self, store):
        barrier = threading.Barrier(16)
        flags = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            _, created = store.lookup_or_create('HOT', 3, 5)
            with lock:
                flags.append(created)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert flags.count(True) == 1
