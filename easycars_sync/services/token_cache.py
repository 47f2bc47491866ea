"""Process-wide cache of EasyCars bearer tokens.

One TokenCache is built at process start (API app or Celery worker) and
passed to every EasyCarsApiClient. Entries are keyed per dealership and
credential identity, so parallel syncs for different dealerships never share
an entry. Two syncs for the same dealership may both refresh; the later write
simply wins.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, NamedTuple, Optional


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TokenKey(NamedTuple):
    dealership_id: int
    environment: str
    public_id: str

    def as_string(self) -> str:
        return f"easycars_token:{self.dealership_id}:{self.environment}:{self.public_id}"


@dataclass(frozen=True)
class CachedToken:
    token: str
    acquired_at: datetime
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class TokenCache:
    """Thread-safe TTL map of TokenKey -> CachedToken."""

    def __init__(
        self,
        validity_seconds: int = 570,
        safety_margin_seconds: int = 30,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        if validity_seconds <= 0:
            raise ValueError("validity_seconds must be greater than 0")
        self._validity = timedelta(seconds=validity_seconds)
        self._margin = timedelta(seconds=max(0, safety_margin_seconds))
        self._clock = clock
        self._entries: Dict[TokenKey, CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, key: TokenKey) -> Optional[str]:
        """Return a still-valid token, dropping the entry if it has gone stale."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_valid(now):
                del self._entries[key]
                return None
            return entry.token

    def put(self, key: TokenKey, token: str, server_expires_at: Optional[datetime] = None) -> CachedToken:
        """Store a token; expiry is the earlier of our window and the server's expiry minus the margin."""
        now = self._clock()
        expires_at = now + self._validity
        if server_expires_at is not None:
            if server_expires_at.tzinfo is None:
                server_expires_at = server_expires_at.replace(tzinfo=timezone.utc)
            expires_at = min(expires_at, server_expires_at - self._margin)
        entry = CachedToken(token=token, acquired_at=now, expires_at=expires_at)
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: TokenKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_token_cache: Optional[TokenCache] = None
_token_cache_lock = threading.Lock()


def get_token_cache() -> TokenCache:
    """Process-wide TokenCache, built from settings on first use."""
    global _token_cache
    with _token_cache_lock:
        if _token_cache is None:
            from easycars_sync.config import get_settings

            settings = get_settings()
            _token_cache = TokenCache(
                validity_seconds=settings.EASYCARS_TOKEN_CACHE_SECONDS,
                safety_margin_seconds=settings.EASYCARS_TOKEN_SAFETY_MARGIN_SECONDS,
            )
        return _token_cache


def reset_token_cache() -> None:
    """Drop the process-wide cache (shutdown and tests)."""
    global _token_cache
    with _token_cache_lock:
        if _token_cache is not None:
            _token_cache.clear()
        _token_cache = None
