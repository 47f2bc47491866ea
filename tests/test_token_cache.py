"""Tests for the process-wide EasyCars token cache."""

from datetime import datetime, timedelta, timezone

import pytest

from easycars_sync.services.token_cache import TokenCache, TokenKey, get_token_cache, reset_token_cache


class _Clock:
    def __init__(self):
        self.now = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


KEY = TokenKey(1, "Test", "AC-0001")


class TestTokenCache:

    def test_returns_token_inside_validity_window(self):
        clock = _Clock()
        cache = TokenCache(validity_seconds=570, clock=clock)
        cache.put(KEY, "tok-1")
        clock.advance(569)
        assert cache.get(KEY) == "tok-1"

    def test_expires_after_validity_window(self):
        clock = _Clock()
        cache = TokenCache(validity_seconds=570, clock=clock)
        cache.put(KEY, "tok-1")
        clock.advance(570)
        assert cache.get(KEY) is None
        assert len(cache) == 0

    def test_server_expiry_minus_margin_wins_when_earlier(self):
        clock = _Clock()
        cache = TokenCache(validity_seconds=570, safety_margin_seconds=30, clock=clock)
        entry = cache.put(KEY, "tok-1", server_expires_at=clock.now + timedelta(seconds=120))
        assert entry.expires_at == clock.now + timedelta(seconds=90)
        clock.advance(91)
        assert cache.get(KEY) is None

    def test_naive_server_expiry_is_treated_as_utc(self):
        clock = _Clock()
        cache = TokenCache(validity_seconds=570, safety_margin_seconds=30, clock=clock)
        naive = (clock.now + timedelta(seconds=300)).replace(tzinfo=None)
        entry = cache.put(KEY, "tok-1", server_expires_at=naive)
        assert entry.expires_at == clock.now + timedelta(seconds=270)

    def test_keys_are_isolated_per_dealership(self):
        cache = TokenCache()
        cache.put(KEY, "tok-1")
        cache.put(TokenKey(2, "Test", "AC-0001"), "tok-2")
        assert cache.get(KEY) == "tok-1"
        assert cache.get(TokenKey(2, "Test", "AC-0001")) == "tok-2"
        assert cache.get(TokenKey(1, "Production", "AC-0001")) is None

    def test_invalidate_and_clear(self):
        cache = TokenCache()
        cache.put(KEY, "tok-1")
        cache.invalidate(KEY)
        assert cache.get(KEY) is None
        cache.put(KEY, "tok-1")
        cache.clear()
        assert len(cache) == 0

    def test_rejects_non_positive_validity(self):
        with pytest.raises(ValueError):
            TokenCache(validity_seconds=0)

    def test_key_string(self):
        assert KEY.as_string() == "easycars_token:1:Test:AC-0001"


def test_process_cache_is_shared_until_reset():
    first = get_token_cache()
    assert get_token_cache() is first
    first.put(KEY, "tok-1")
    reset_token_cache()
    second = get_token_cache()
    assert second is not first
    assert second.get(KEY) is None
