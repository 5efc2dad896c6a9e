"""
Keyed state stores owned by a single engine instance.

Each store partitions its entries by key and guards them with a sharded lock:
one re-entrant lock per hash bucket, so evaluations of unrelated keys never
contend on a global mutex. Detectors append and mutate; only the retention
scheduler deletes.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Iterator, List, Optional, Set, Tuple, TypeVar

V = TypeVar("V")


class KeyedStore(Generic[V]):
    """Dictionary of per-key profiles with one lock per hash bucket."""

    def __init__(self, name: str, shards: int = 64):
        self.name = name
        self._items: Dict[str, V] = {}
        self._shards = [threading.RLock() for _ in range(max(1, shards))]
        # Guards structural changes (insert/delete) of the underlying dict
        self._index_lock = threading.Lock()

    def lock_for(self, key: str) -> threading.RLock:
        return self._shards[hash(key) % len(self._shards)]

    def get(self, key: str) -> Optional[V]:
        return self._items.get(key)

    def get_or_create(self, key: str, factory: Callable[[], V]) -> V:
        item = self._items.get(key)
        if item is not None:
            return item
        with self._index_lock:
            item = self._items.get(key)
            if item is None:
                item = factory()
                self._items[key] = item
            return item

    def delete(self, key: str) -> Optional[V]:
        with self._index_lock:
            return self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._index_lock:
            return list(self._items.keys())

    def items(self) -> Iterator[Tuple[str, V]]:
        """Iterate a snapshot of the keys, taking each key's lock while yielding."""
        for key in self.keys():
            with self.lock_for(key):
                item = self._items.get(key)
                if item is not None:
                    yield key, item

    def clear(self) -> None:
        with self._index_lock:
            self._items.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class CredentialPairIndex:
    """Secondary index: credential pair -> source IPs that tried it."""

    def __init__(self):
        self._pairs: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def add(self, credential_pair: str, source_ip: str) -> Set[str]:
        """Record the pair for the IP and return the other IPs that tried it."""
        with self._lock:
            ips = self._pairs.setdefault(credential_pair, set())
            ips.add(source_ip)
            return ips - {source_ip}

    def ips_for(self, credential_pair: str) -> Set[str]:
        with self._lock:
            return set(self._pairs.get(credential_pair, ()))

    def discard(self, credential_pair: str, source_ip: str) -> None:
        with self._lock:
            ips = self._pairs.get(credential_pair)
            if ips is None:
                return
            ips.discard(source_ip)
            if not ips:
                del self._pairs[credential_pair]

    def snapshot(self) -> Dict[str, List[str]]:
        with self._lock:
            return {pair: sorted(ips) for pair, ips in self._pairs.items()}

    def clear(self) -> None:
        with self._lock:
            self._pairs.clear()

    def __len__(self) -> int:
        return len(self._pairs)


@dataclass
class EngineState:
    """All keyed stores of one engine; constructed at startup, dropped at shutdown."""
    brute_force: KeyedStore
    credential_stuffing: KeyedStore
    sessions: KeyedStore
    ip_sessions: KeyedStore
    clusters: KeyedStore
    credential_pairs: CredentialPairIndex

    @classmethod
    def create(cls, shards: int = 64) -> "EngineState":
        return cls(
            brute_force=KeyedStore("brute_force", shards),
            credential_stuffing=KeyedStore("credential_stuffing", shards),
            sessions=KeyedStore("sessions", shards),
            ip_sessions=KeyedStore("ip_sessions", shards),
            clusters=KeyedStore("clusters", shards),
            credential_pairs=CredentialPairIndex(),
        )

    def stores(self) -> Dict[str, KeyedStore]:
        return {
            "brute_force": self.brute_force,
            "credential_stuffing": self.credential_stuffing,
            "sessions": self.sessions,
            "ip_sessions": self.ip_sessions,
            "clusters": self.clusters,
        }
