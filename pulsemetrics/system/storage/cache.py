"""
Key-value storage and query caching

``KeyValueStore`` is the interface injected wherever the dashboard keeps state:
the query cache, the local fallback subscription and the tracked competitor
list. ``MemoryStore`` keeps values in process; ``JsonFileStore`` persists them
to a JSON file (the server-side stand-in for browser local storage).
"""
import json
import logging
import os
import time
from concurrent.futures import Future
from threading import Lock
from typing import Any, Callable, Dict, Optional, Sequence

logger = logging.getLogger(__name__)


class KeyValueStore:
    """get / set (optional TTL in seconds) / delete"""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Thread-safe in-process store"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: Dict[str, tuple] = {}
        self._lock = Lock()

    def get(self, key, default=None):
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return default
            expires_at, value = item
            if expires_at is not None and self._clock() > expires_at:
                del self._items[key]
                return default
            return value

    def set(self, key, value, ttl=None):
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._items[key] = (expires_at, value)

    def delete(self, key):
        with self._lock:
            self._items.pop(key, None)


class JsonFileStore(KeyValueStore):
    """
    Store backed by a single JSON file. Values must be JSON-serializable.

    Every write rewrites the whole file through a temp file + rename.
    """

    def __init__(self, path: str, clock: Callable[[], float] = time.time):
        self.path = path
        self._clock = clock
        self._lock = Lock()

    def _load(self) -> Dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.error(f"Could not read local store {self.path}: {e}")
            return {}

    def _save(self, data: Dict) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

    def get(self, key, default=None):
        with self._lock:
            entry = self._load().get(key)
        if not isinstance(entry, dict):
            return default
        expires_at = entry.get('expires_at')
        if expires_at is not None and self._clock() > expires_at:
            self.delete(key)
            return default
        return entry.get('value', default)

    def set(self, key, value, ttl=None):
        with self._lock:
            data = self._load()
            data[key] = {
                'value': value,
                'expires_at': self._clock() + ttl if ttl is not None else None,
            }
            self._save(data)

    def delete(self, key):
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)


def create_local_store(path: Optional[str] = None) -> KeyValueStore:
    """JSON file store when a path is given, in-memory store otherwise."""
    if path:
        logger.info(f"Using JSON file local store at {path}")
        return JsonFileStore(path)
    return MemoryStore()


def cache_key(operation: str, params: Sequence[Any] = ()) -> str:
    """e.g. cache_key('videos', ['khaby', 30]) -> 'videos:khaby:30'"""
    return ':'.join([operation] + [str(p) for p in params])


class QueryCache:
    """
    Read-through cache keyed by (operation, parameters) with a fixed TTL.

    Concurrent misses for the same key share one in-flight fetch.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, ttl: float = 300):
        self.store = store if store is not None else MemoryStore()
        self.ttl = ttl
        self._in_flight: Dict[str, Future] = {}
        self._lock = Lock()

    def get_or_fetch(self, operation: str, params: Sequence[Any], fetcher: Callable[[], Any]) -> Any:
        key = cache_key(operation, params)

        cached = self.store.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        with self._lock:
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            logger.debug(f"Joining in-flight fetch for {key}")
            return future.result()

        try:
            value = fetcher()
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            if value is not None:
                self.store.set(key, value, ttl=self.ttl)
            future.set_result(value)
            return value
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def invalidate(self, operation: str, params: Sequence[Any] = ()) -> None:
        self.store.delete(cache_key(operation, params))
