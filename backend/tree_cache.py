"""
Shared table of loaded spatial indexes, keyed by dataset.

Lookups take a shared read lock, so any number of request threads can hit the
cache at once. A miss loads the dataset outside of any lock and then takes the
write lock only to insert it. Two threads missing the same key at the same
time may therefore both load it; the last insert wins and both handles stay
valid.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List

from config import ServerConfig
from dataset_loader import load_meta
from errors import LoadFailureError, MalformedAddressError, SpatialCoreError

logger = logging.getLogger(__name__)

# Requests for this key are served from the configured default dataset.
DEFAULT_DATASET_ALIAS = "init_id"

Loader = Callable[[str], Any]


# =========================
# READ/WRITE LOCK
# =========================

class ReadWriteLock:
    """Many concurrent readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# =========================
# ADDRESSES
# =========================

@dataclass(frozen=True)
class DatasetAddress:
    prefix: str
    suffix: str

    def resolve(self, key: str) -> str:
        """
        Join prefix, key and suffix with exactly one '/' at each seam.

        Empty prefix or suffix parts are left out.
        """
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise MalformedAddressError(f"Invalid dataset key {key!r}")

        address = key
        if self.prefix:
            join_prefix = "" if self.prefix.endswith("/") else "/"
            address = f"{self.prefix}{join_prefix}{address}"
        if self.suffix:
            join_suffix = "" if self.suffix.startswith("/") else "/"
            address = f"{address}{join_suffix}{self.suffix}"
        return address


# =========================
# TREE CACHE
# =========================

class TreeCache:
    """
    Load-once cache of spatial-index handles.

    Entries are never evicted; `capacity` only sizes expectations and a
    warning is logged once the table outgrows it.
    """

    def __init__(
        self,
        loader: Loader,
        prefix: str = "",
        suffix: str = "",
        default_dataset: str = "",
        capacity: int = 16,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.loader = loader
        self.address = DatasetAddress(prefix, suffix)
        self.default_dataset = default_dataset
        self.capacity = capacity
        self._lock = ReadWriteLock()
        self._handles: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: ServerConfig, loader: Loader = load_meta) -> "TreeCache":
        return cls(
            loader,
            prefix=config.data_prefix,
            suffix=config.data_suffix,
            default_dataset=config.default_dataset,
            capacity=config.cache_capacity,
        )

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._handles)

    def __contains__(self, key: str) -> bool:
        with self._lock.read_locked():
            return self.resolve_key(key) in self._handles

    def keys(self) -> List[str]:
        with self._lock.read_locked():
            return list(self._handles)

    def resolve_key(self, key: str) -> str:
        # One level of indirection only.
        if key == DEFAULT_DATASET_ALIAS:
            return self.default_dataset
        return key

    def get_or_load(self, key: str) -> Any:
        """
        Return the handle for dataset `key`, loading it on first request.

        Raises MalformedAddressError for keys that can't be addressed and
        LoadFailureError when the loader fails; the cache is left unchanged.
        """
        key = self.resolve_key(key)

        with self._lock.read_locked():
            handle = self._handles.get(key)
        if handle is not None:
            logger.debug("Cache hit for dataset %r", key)
            return handle

        address = self.address.resolve(key)
        logger.info("📦 Loading dataset %r from %s", key, address)
        handle = self._load(address)

        with self._lock.write_locked():
            if key in self._handles:
                logger.warning("Dataset %r was loaded concurrently, replacing it", key)
            self._handles[key] = handle
            size = len(self._handles)
        logger.info("✅ Dataset %r cached (%d entries)", key, size)
        if size > self.capacity:
            logger.warning(
                "Tree cache holds %d datasets, more than its capacity of %d",
                size,
                self.capacity,
            )
        return handle

    def _load(self, address: str) -> Any:
        try:
            handle = self.loader(address)
        except SpatialCoreError:
            raise
        except (OSError, ValueError) as e:
            raise LoadFailureError(address, str(e)) from e
        if handle is None:
            raise LoadFailureError(address, "loader returned nothing")
        return handle
