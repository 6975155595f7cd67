"""In-memory TTL cache for generative model responses.

Calls to the language model (and to image or video generators) are slow,
expensive and non-deterministic. The cache memoizes completed results under a
key derived from a normalized form of the request, so identical requests
inside the TTL window reuse the earlier result.

The cache is an optimization only: every failure inside it is logged and
reported as a miss, never raised to the caller.

Eviction:
- Entries expire when ``now - created_at > ttl``; expired entries are dropped
  on read and by a periodic background sweep.
- At capacity, the single oldest-created entry is evicted before a new key is
  inserted (insertion age, not recency of use).
"""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


# Fields injected for tracing that must never change a cache key
NONDETERMINISTIC_FIELDS = frozenset({"timestamp", "requestId", "sessionId"})

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60

# TTL presets per kind of cached response
STORYBOARD_TTL_SECONDS = 2 * 60 * 60
LLM_RESPONSE_TTL_SECONDS = 30 * 60


@dataclass
class CacheEntry:
    """A cached value with its expiry metadata.

    Attributes:
        key: Cache key the entry is stored under
        value: Cached value (opaque to the cache)
        created_at: Clock reading when the entry was written, in seconds
        ttl: Time to live in seconds
        tags: Labels used for bulk invalidation
        provider: Optional provider that produced the value
        model: Optional model that produced the value
    """
    key: str
    value: Any
    created_at: float
    ttl: float
    tags: List[str] = field(default_factory=list)
    provider: Optional[str] = None
    model: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


def normalize_params(params: Any) -> Any:
    """Normalize request parameters so equivalent requests compare equal.

    Dict keys are sorted and tracing fields dropped; lists keep their order.
    Pydantic models are dumped by alias first so ``request_id`` becomes
    ``requestId`` and is dropped like any other tracing field.
    """
    if isinstance(params, BaseModel):
        params = params.model_dump(mode="json", by_alias=True)

    if isinstance(params, (list, tuple)):
        return [normalize_params(item) for item in params]

    if isinstance(params, dict):
        return {
            key: normalize_params(params[key])
            for key in sorted(params, key=str)
            if key not in NONDETERMINISTIC_FIELDS
        }

    return params


def generate_key(namespace: str, params: Any) -> str:
    """Derive a bounded-length cache key from a namespace and request params.

    Examples:
        >>> generate_key("storyboard", {"b": 1, "a": 2}) == generate_key("storyboard", {"a": 2, "b": 1})
        True
        >>> generate_key("storyboard", {"a": 1}) == generate_key("storyboard", {"a": 1, "requestId": "x"})
        True
    """
    normalized = normalize_params(params)
    serialized = json.dumps(normalized, separators=(",", ":"), ensure_ascii=False, default=str)
    digest = hashlib.blake2b(serialized.encode("utf-8"), digest_size=8).hexdigest()
    return f"{namespace}:{digest}"


class ResponseCache:
    """Thread-safe in-memory response cache with TTL and tag invalidation.

    Example:
        >>> cache = ResponseCache()
        >>> key = cache.generate_key("storyboard", {"brand": "Acme"})
        >>> cache.set(key, {"scenes": []}, tags=["storyboard"])
        >>> cache.get(key)
        {'scenes': []}
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        """Initialize the cache.

        Args:
            max_entries: Capacity before oldest-created eviction kicks in
            default_ttl_seconds: TTL used when set() is called without one
            clock: Source of the current time in seconds
        """
        self.max_entries = max_entries
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop_sweeper = threading.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def generate_key(self, namespace: str, params: Any) -> str:
        """See module-level generate_key()."""
        return generate_key(namespace, params)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for key, or None on miss or expiry."""
        try:
            now = self._clock()
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None and entry.is_expired(now):
                    del self._entries[key]
                    entry = None

            if entry is None:
                logger.info(f"Cache miss: {key[:20]}")
                return None

            logger.info(
                f"Cache hit: {key[:20]} (provider={entry.provider}, model={entry.model})"
            )
            return entry.value
        except Exception as e:
            logger.error(f"Cache get failed for {key[:20]}: {e}")
            return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        tags: Optional[Iterable[str]] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None
    ) -> None:
        """Store value under key, replacing any existing entry.

        Args:
            key: Cache key (usually from generate_key)
            value: Value to cache
            ttl: Time to live in seconds (defaults to default_ttl_seconds)
            tags: Labels for invalidate_by_tags()
            provider: Provider that produced the value
            model: Model that produced the value
        """
        try:
            entry = CacheEntry(
                key=key,
                value=value,
                created_at=self._clock(),
                ttl=self.default_ttl_seconds if ttl is None else ttl,
                tags=list(tags or []),
                provider=provider,
                model=model,
            )
            with self._lock:
                if key not in self._entries and len(self._entries) >= self.max_entries:
                    self._evict_oldest()
                self._entries[key] = entry

            logger.info(
                f"Cache set: {key[:20]} (ttl={entry.ttl}s, tags={entry.tags}, "
                f"provider={provider}, model={model})"
            )
        except Exception as e:
            logger.error(f"Cache set failed for {key[:20]}: {e}")

    def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        """Remove every entry sharing at least one tag. Returns the count removed."""
        wanted = set(tags)
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if wanted.intersection(entry.tags)]
            for key in doomed:
                del self._entries[key]

        logger.info(f"Cache invalidated {len(doomed)} entries for tags {sorted(wanted)}")
        return len(doomed)

    def clear_provider(self, provider: str) -> int:
        """Remove every entry produced by provider. Returns the count removed."""
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.provider == provider]
            for key in doomed:
                del self._entries[key]

        logger.info(f"Cache cleared {len(doomed)} entries for provider {provider}")
        return len(doomed)

    def clean_expired(self) -> int:
        """Remove expired entries. Returns the count removed.

        The scan runs over a snapshot so concurrent get/set calls only wait
        for the snapshot copy and the individual deletes.
        """
        now = self._clock()
        with self._lock:
            snapshot = list(self._entries.items())

        expired = [(key, entry) for key, entry in snapshot if entry.is_expired(now)]

        removed = 0
        for key, entry in expired:
            with self._lock:
                # Skip keys rewritten since the snapshot was taken
                if self._entries.get(key) is entry:
                    del self._entries[key]
                    removed += 1

        if removed:
            logger.info(f"Cache sweep removed {removed} expired entries")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        """Summarize cache contents."""
        with self._lock:
            entries = list(self._entries.values())

        providers = sorted({entry.provider for entry in entries if entry.provider})
        tags = sorted({tag for entry in entries for tag in entry.tags})
        return {
            "entries": len(entries),
            "max_entries": self.max_entries,
            "providers": providers,
            "tags": tags,
        }

    def start_sweeper(self, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS) -> None:
        """Start a daemon thread that calls clean_expired() every interval."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return

        self._stop_sweeper.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval_seconds,),
            name="response-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        """Stop the sweeper thread if it is running."""
        self._stop_sweeper.set()
        if self._sweeper is not None:
            self._sweeper.join()
            self._sweeper = None

    def _sweep_loop(self, interval_seconds: float) -> None:
        while not self._stop_sweeper.wait(interval_seconds):
            try:
                self.clean_expired()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}")

    def _evict_oldest(self) -> None:
        """Drop the oldest-created entry. Caller must hold the lock."""
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest_key]
        logger.info(f"Cache evicted oldest entry {oldest_key[:20]}")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - stops the sweeper thread."""
        self.stop_sweeper()
        return False
