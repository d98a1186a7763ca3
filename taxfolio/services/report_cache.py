# taxfolio/services/report_cache.py
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from taxfolio import config as global_config

logger = logging.getLogger(__name__)


class ReportCache:
    """
    Advisory key/value cache for derived reports.
    A miss must only cost latency: callers recompute from persisted transactions.
    """
    def get(self, key: str) -> Tuple[Any, bool]:
        raise NotImplementedError("Subclasses must implement get")

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        raise NotImplementedError("Subclasses must implement set")

    def delete(self, key: str) -> None:
        raise NotImplementedError("Subclasses must implement delete")


class InMemoryReportCache(ReportCache):
    """Thread-safe process-local cache with per-entry expiry."""

    def __init__(self, default_ttl_seconds: float = global_config.REPORT_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Tuple[Any, bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logger.debug(f"Cache entry '{key}' expired.")
                return None, False
            return value, True

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullReportCache(ReportCache):
    """Never stores anything. Every lookup is a miss."""

    def get(self, key: str) -> Tuple[Any, bool]:
        return None, False

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        pass

    def delete(self, key: str) -> None:
        pass
