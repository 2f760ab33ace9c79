"""
Tests for the load-once dataset cache.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from config import ServerConfig
from dataset_loader import Meta
from errors import LoadFailureError, MalformedAddressError, UnsupportedVersionError
from tree_cache import DEFAULT_DATASET_ALIAS, DatasetAddress, ReadWriteLock, TreeCache


class CountingLoader:
    """Stub loader returning a fresh object per call and recording addresses."""

    def __init__(self, fail_for=()):
        self.addresses = []
        self.fail_for = set(fail_for)
        self._lock = threading.Lock()

    def __call__(self, address):
        with self._lock:
            self.addresses.append(address)
        if address in self.fail_for:
            raise LoadFailureError(address, "missing")
        return {"address": address}

    @property
    def calls(self):
        return len(self.addresses)


# ==============================================================================
# Addresses
# ==============================================================================


class TestDatasetAddress:
    """Tests for the prefix/key/suffix join rule."""

    @pytest.mark.parametrize(
        "prefix,suffix",
        [("a/", "/b"), ("a", "b"), ("a/", "b"), ("a", "/b")],
    )
    def test_one_separator_per_seam(self, prefix, suffix):
        assert DatasetAddress(prefix, suffix).resolve("k") == "a/k/b"

    def test_empty_parts_are_left_out(self):
        assert DatasetAddress("", "").resolve("k") == "k"
        assert DatasetAddress("data", "").resolve("k") == "data/k"
        assert DatasetAddress("", "octree").resolve("k") == "k/octree"

    def test_absolute_prefix(self):
        assert DatasetAddress("/mnt/points/", "meta").resolve("city") == "/mnt/points/city/meta"

    @pytest.mark.parametrize("key", ["", "a/b", "..", ".", "a\\b"])
    def test_malformed_keys(self, key):
        with pytest.raises(MalformedAddressError):
            DatasetAddress("a", "b").resolve(key)


# ==============================================================================
# Cache
# ==============================================================================


class TestTreeCache:
    """Tests for TreeCache.get_or_load."""

    @pytest.fixture
    def loader(self):
        return CountingLoader(fail_for={"data/broken"})

    @pytest.fixture
    def cache(self, loader):
        return TreeCache(loader, prefix="data", default_dataset="city", capacity=2)

    def test_first_request_loads_once(self, cache, loader):
        handle = cache.get_or_load("x")
        assert loader.addresses == ["data/x"]
        assert handle == {"address": "data/x"}

    def test_second_request_is_a_hit(self, cache, loader):
        first = cache.get_or_load("x")
        second = cache.get_or_load("x")
        assert loader.calls == 1
        assert second is first

    def test_default_alias(self, cache, loader):
        aliased = cache.get_or_load(DEFAULT_DATASET_ALIAS)
        direct = cache.get_or_load("city")
        assert aliased is direct
        assert loader.addresses == ["data/city"]
        assert DEFAULT_DATASET_ALIAS in cache
        assert cache.keys() == ["city"]

    def test_alias_without_default(self, loader):
        cache = TreeCache(loader, prefix="data")
        with pytest.raises(MalformedAddressError):
            cache.get_or_load(DEFAULT_DATASET_ALIAS)
        assert loader.calls == 0

    def test_alias_is_resolved_once(self, loader):
        cache = TreeCache(loader, prefix="data", default_dataset=DEFAULT_DATASET_ALIAS)
        cache.get_or_load(DEFAULT_DATASET_ALIAS)
        assert loader.addresses == ["data/init_id"]

    def test_failure_leaves_cache_unchanged(self, cache, loader):
        with pytest.raises(LoadFailureError):
            cache.get_or_load("broken")
        assert len(cache) == 0
        assert "broken" not in cache

        with pytest.raises(LoadFailureError):
            cache.get_or_load("broken")
        assert loader.calls == 2

    def test_foreign_loader_errors_become_load_failures(self):
        def loader(address):
            raise FileNotFoundError(address)

        cache = TreeCache(loader, prefix="data")
        with pytest.raises(LoadFailureError) as excinfo:
            cache.get_or_load("gone")
        assert excinfo.value.address == "data/gone"
        assert isinstance(excinfo.value.__cause__, FileNotFoundError)

    def test_loader_returning_nothing(self):
        cache = TreeCache(lambda address: None)
        with pytest.raises(LoadFailureError):
            cache.get_or_load("x")
        assert len(cache) == 0

    def test_unsupported_version_propagates(self):
        def loader(address):
            raise UnsupportedVersionError(1, (3, 2))

        cache = TreeCache(loader)
        with pytest.raises(UnsupportedVersionError):
            cache.get_or_load("old")

    def test_grows_past_capacity(self, cache, loader, caplog):
        for key in ["a", "b", "c"]:
            cache.get_or_load(key)
        assert len(cache) == 3
        assert "more than its capacity" in caplog.text

    def test_invalid_capacity(self, loader):
        with pytest.raises(ValueError):
            TreeCache(loader, capacity=0)

    def test_from_config(self, loader):
        config = ServerConfig(data_prefix="/srv/", data_suffix="/meta", default_dataset="city")
        cache = TreeCache.from_config(config, loader)
        cache.get_or_load(DEFAULT_DATASET_ALIAS)
        assert loader.addresses == ["/srv/city/meta"]

    def test_with_meta_loader(self, meta_record, write_dataset, tmp_path):
        write_dataset("tiny", meta_record)
        cache = TreeCache.from_config(ServerConfig(data_prefix=str(tmp_path), default_dataset="tiny"))
        meta = cache.get_or_load(DEFAULT_DATASET_ALIAS)
        assert isinstance(meta, Meta)
        assert cache.get_or_load("tiny") is meta

        with pytest.raises(LoadFailureError):
            cache.get_or_load("missing")


# ==============================================================================
# Concurrency
# ==============================================================================


class TestTreeCacheConcurrency:
    """Tests for concurrent readers and concurrent first loads."""

    def test_concurrent_hits_share_one_handle(self):
        loader = CountingLoader()
        cache = TreeCache(loader)
        first = cache.get_or_load("x")

        with ThreadPoolExecutor(max_workers=8) as pool:
            handles = list(pool.map(lambda _: cache.get_or_load("x"), range(64)))

        assert all(h is first for h in handles)
        assert loader.calls == 1

    def test_concurrent_first_loads_are_safe(self):
        barrier = threading.Barrier(4)

        def slow_loader(address):
            barrier.wait(timeout=5)
            return {"address": address}

        cache = TreeCache(slow_loader)
        with ThreadPoolExecutor(max_workers=4) as pool:
            handles = list(pool.map(lambda _: cache.get_or_load("x"), range(4)))

        # Every thread missed and loaded; one of the loads won the table.
        assert len(cache) == 1
        assert all(h == {"address": "x"} for h in handles)
        assert cache.get_or_load("x") in handles


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()
        barrier = threading.Barrier(3)

        def reader():
            with lock.read_locked():
                # Deadlocks (and times out) unless all three hold the lock.
                barrier.wait(timeout=5)
            return True

        with ThreadPoolExecutor(max_workers=3) as pool:
            assert all(pool.map(lambda _: reader(), range(3)))

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        writer_inside = threading.Event()

        def writer():
            with lock.write_locked():
                writer_inside.set()
                events.append("write-start")
                threading.Event().wait(0.05)
                events.append("write-end")

        def reader():
            writer_inside.wait(timeout=5)
            with lock.read_locked():
                events.append("read")

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert events == ["write-start", "write-end", "read"]
