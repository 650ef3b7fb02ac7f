"""
Short-TTL response cache.

Process-wide memo of (question, drug) -> composed answer payload. Entries are
pure derivations, so losing them only costs latency. Expired entries are
evicted lazily: on read for the key being read, and in bulk on every write.
There is no background sweeper.
"""
import copy
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from formulary.resolver.drug_hints import normalize_drug_name
from formulary.utils.hashing import compute_string_hash, short_hash

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "\x1f"


def make_cache_key(question: str, drug: Optional[str] = None) -> str:
    """
    sha256 of the lower-cased trimmed question and the normalized drug.

    Example:
        make_cache_key(" Side effects? ", "PARACETAMOL") == make_cache_key("side effects?", "paracetamol")
    """
    normalized_question = (question or "").strip().lower()
    return compute_string_hash(normalized_question + KEY_SEPARATOR + normalize_drug_name(drug or ""))


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Dict[str, Any]
    expires_at: float


class ResponseCache:
    """
    Thread-safe TTL cache.

    Entries are replaced whole under a lock, so readers never see a partial
    write. Concurrent writers to one key race harmlessly.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            ttl_seconds: Lifetime of an entry
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, question: str, drug: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Cached payload, or None on miss or expiry."""
        key = make_cache_key(question, drug)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                logger.debug("Cache entry expired", extra={"cache_key": short_hash(key)})
                return None

        logger.debug("Cache hit", extra={"cache_key": short_hash(key)})
        return copy.deepcopy(entry.payload)

    def set(self, question: str, drug: Optional[str], payload: Dict[str, Any]) -> str:
        """Store a payload; returns the cache key."""
        key = make_cache_key(question, drug)
        entry = CacheEntry(key=key, payload=copy.deepcopy(payload), expires_at=self._clock() + self.ttl_seconds)

        with self._lock:
            self._purge_expired()
            self._entries[key] = entry

        logger.debug("Cache write", extra={"cache_key": short_hash(key)})
        return key

    def store(
        self,
        question: str,
        request_drug: Optional[str],
        resolved_drug: Optional[str],
        payload: Dict[str, Any],
    ) -> List[str]:
        """
        Write under the request key and, if different, the resolved-drug key.

        A follow-up ("side effects?" with no drug) then also serves a later
        "side effects?" that names the drug explicitly.
        """
        keys = [self.set(question, request_drug, payload)]

        if resolved_drug and normalize_drug_name(resolved_drug) != normalize_drug_name(request_drug):
            keys.append(self.set(question, resolved_drug, payload))

        return keys

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self):
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired cache entries")
