from __future__ import annotations

from collections import OrderedDict
from concurrent.futures import Future
import logging
import threading
from typing import TYPE_CHECKING, Callable

from services.github import RepositoryIdentity

if TYPE_CHECKING:
    from services.ingestion import RepositorySnapshot

_LOGGER = logging.getLogger(__name__)


class SnapshotCache:
    """In-process LRU store of repository snapshots keyed by ``owner/repo``.

    ``get_or_load`` is single-flight: while one caller is loading an identity,
    other callers for the same identity wait on the same future instead of
    starting their own walk. A failed load is not cached.
    """

    def __init__(self, capacity: int = 64) -> None:
        if capacity <= 0:
            raise ValueError("Cache capacity must be positive.")
        self._capacity = capacity
        self._entries: OrderedDict[str, RepositorySnapshot] = OrderedDict()
        self._in_flight: dict[str, Future] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, identity: RepositoryIdentity) -> RepositorySnapshot | None:
        with self._lock:
            snapshot = self._entries.get(identity.key)
            if snapshot is not None:
                self._entries.move_to_end(identity.key)
            return snapshot

    def put(self, identity: RepositoryIdentity, snapshot: RepositorySnapshot) -> None:
        with self._lock:
            self._store(identity.key, snapshot)

    def invalidate(self, identity: RepositoryIdentity) -> bool:
        with self._lock:
            return self._entries.pop(identity.key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, RepositoryIdentity):
            return False
        with self._lock:
            return identity.key in self._entries

    def get_or_load(
        self,
        identity: RepositoryIdentity,
        loader: Callable[[RepositoryIdentity], RepositorySnapshot],
    ) -> RepositorySnapshot:
        key = identity.key
        with self._lock:
            snapshot = self._entries.get(key)
            if snapshot is not None:
                self._entries.move_to_end(key)
                return snapshot
            pending = self._in_flight.get(key)
            owner = pending is None
            if owner:
                pending = Future()
                self._in_flight[key] = pending
        if not owner:
            _LOGGER.info("Waiting on in-flight ingestion of %s", key)
            return pending.result()

        try:
            snapshot = loader(identity)
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            pending.set_exception(exc)
            raise
        with self._lock:
            self._store(key, snapshot)
            self._in_flight.pop(key, None)
        pending.set_result(snapshot)
        return snapshot

    def _store(self, key: str, snapshot: RepositorySnapshot) -> None:
        self._entries[key] = snapshot
        self._entries.move_to_end(key)
        while len(self._entries) > self._capacity:
            evicted, _ = self._entries.popitem(last=False)
            _LOGGER.info("Evicted %s from snapshot cache", evicted)
