"""
Short-lived cache for expected-schedule snapshots.

Building a week's expected entries reads three tables; repeated audits of the
same week within the TTL reuse the previous snapshot.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from models import AuditConfig

logger = logging.getLogger(__name__)


class SnapshotCache:
    """
    TTL cache keyed by prefix + period id (e.g. 'auditDataset|2026/01/19').
    A ttl of 0 disables caching entirely.
    """

    def __init__(self, ttl_sec: int = 900, prefix: str = "auditDataset|", clock: Callable[[], float] = time.monotonic):
        self.ttl_sec = ttl_sec
        self.prefix = prefix
        self.clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    @classmethod
    def from_config(cls, config: AuditConfig, clock: Callable[[], float] = time.monotonic) -> "SnapshotCache":
        return cls(ttl_sec=config.cache_ttl_sec, prefix=config.cache_key_prefix, clock=clock)

    def key_for(self, period_id: str) -> str:
        return f"{self.prefix}{period_id}"

    def get(self, period_id: str) -> Optional[Any]:
        key = self.key_for(period_id)
        hit = self._entries.get(key)
        if hit is None:
            return None
        stored_at, value = hit
        if self.clock() - stored_at >= self.ttl_sec:
            del self._entries[key]
            logger.debug(f"Cache expired: {key}")
            return None
        logger.debug(f"Cache hit: {key}")
        return value

    def put(self, period_id: str, value: Any) -> None:
        if self.ttl_sec <= 0:
            return
        self._entries[self.key_for(period_id)] = (self.clock(), value)

    def get_or_build(self, period_id: str, build: Callable[[], Any]) -> Any:
        value = self.get(period_id)
        if value is None:
            value = build()
            self.put(period_id, value)
        return value

    def invalidate(self, period_id: Optional[str] = None) -> None:
        """Drop one period, or everything when period_id is None."""
        if period_id is None:
            self._entries.clear()
        else:
            self._entries.pop(self.key_for(period_id), None)

    def __len__(self) -> int:
        return len(self._entries)
