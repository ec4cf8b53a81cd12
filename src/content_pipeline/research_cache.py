# src/content_pipeline/research_cache.py
"""
Bounded TTL cache for ranked research summaries.

Entries expire lazily: a read that finds an entry at or past its TTL evicts it
and reports a miss. Capacity is bounded by an LRU policy. Concurrent requests
for the same cold key can be coalesced into a single computation.
"""
import json
import time
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from cachetools import LRUCache

from .models import ResearchSummary
from .utils import normalize_whitespace

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_ENTRIES = 256


@dataclass(frozen=True)
class CacheEntry:
    key: str
    summaries: Tuple[ResearchSummary, ...]
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class ResearchCache:
    """Process-wide memo of research results keyed by topic and keywords"""

    def __init__(self,
                 ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 max_entries: int = DEFAULT_MAX_ENTRIES,
                 single_flight: bool = True,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.single_flight = single_flight
        self._clock = clock
        self._entries: LRUCache = LRUCache(maxsize=max_entries)
        self._lock = threading.RLock()
        self._in_flight: Dict[str, Future] = {}

    @staticmethod
    def make_key(topic: str, keywords: Optional[Sequence[str]] = None) -> str:
        """Pure key from the normalized topic and sorted, normalized keywords"""
        normalized_topic = normalize_whitespace(topic).lower()
        normalized_keywords = sorted({
            normalize_whitespace(keyword).lower()
            for keyword in (keywords or [])
            if normalize_whitespace(keyword)
        })
        return json.dumps([normalized_topic, normalized_keywords], ensure_ascii=False)

    def get(self, key: str) -> Optional[List[ResearchSummary]]:
        """Return cached summaries, or None on a miss (including expiry)"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug(f"Research cache entry expired: {key}")
                return None
            return list(entry.summaries)

    def put(self, key: str, summaries: Sequence[ResearchSummary]) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                summaries=tuple(summaries),
                created_at=self._clock(),
                ttl=self.ttl_seconds,
            )

    def get_or_compute(self,
                       key: str,
                       compute: Callable[[], List[ResearchSummary]]) -> List[ResearchSummary]:
        """
        Read-through access.

        On a miss, compute() runs and a non-empty result is stored under key.
        With single_flight enabled, callers arriving while a computation for
        the same key is running wait for it instead of starting their own.
        """
        with self._lock:
            cached = self.get(key)
            if cached is not None:
                logger.info(f"Research cache hit: {key}")
                return cached

            if self.single_flight and key in self._in_flight:
                pending = self._in_flight[key]
                leader = False
            else:
                pending = Future()
                leader = True
                if self.single_flight:
                    self._in_flight[key] = pending

        if not leader:
            logger.info(f"Waiting for in-flight research: {key}")
            return list(pending.result())

        try:
            summaries = compute()
        except BaseException as e:
            pending.set_exception(e)
            raise
        else:
            if summaries:
                self.put(key, summaries)
            pending.set_result(list(summaries))
            return summaries
        finally:
            if self.single_flight:
                with self._lock:
                    self._in_flight.pop(key, None)

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Swept {len(expired)} expired research cache entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
