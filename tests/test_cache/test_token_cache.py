"""Tests for the in-memory TokenCache."""

from __future__ import annotations

import threading

import pytest

from apitestkit.cache import CacheEntry, TokenCache


@pytest.fixture()
def cache() -> TokenCache:
    return TokenCache()


def _entry(token: str = "tok", expires_at: float = 100.0) -> CacheEntry:
    return CacheEntry(token=token, expires_at=expires_at)


# ------------------------------------------------------------------ #
# CacheEntry
# ------------------------------------------------------------------ #


class TestCacheEntry:
    def test_valid_before_expiry(self) -> None:
        assert _entry(expires_at=100.0).is_valid(99.9)

    def test_invalid_at_expiry_instant(self) -> None:
        """The expiry instant itself is already expired."""
        assert not _entry(expires_at=100.0).is_valid(100.0)

    def test_invalid_after_expiry(self) -> None:
        assert not _entry(expires_at=100.0).is_valid(150.0)

    def test_is_immutable(self) -> None:
        entry = _entry()
        with pytest.raises(AttributeError):
            entry.token = "other"  # type: ignore[misc]


# ------------------------------------------------------------------ #
# Core get/put/remove behaviour
# ------------------------------------------------------------------ #


class TestGetPut:
    def test_miss_returns_none(self, cache: TokenCache) -> None:
        assert cache.get("read") is None

    def test_put_and_get(self, cache: TokenCache) -> None:
        entry = _entry()
        assert cache.put("read", entry) is True
        assert cache.get("read") is entry

    def test_put_replaces(self, cache: TokenCache) -> None:
        cache.put("read", _entry("old"))
        cache.put("read", _entry("new"))
        assert cache.get("read").token == "new"  # type: ignore[union-attr]
        assert len(cache) == 1

    def test_empty_key_is_a_normal_key(self, cache: TokenCache) -> None:
        cache.put("", _entry("unscoped"))
        assert "" in cache
        assert cache.get("").token == "unscoped"  # type: ignore[union-attr]

    def test_keys_sorted(self, cache: TokenCache) -> None:
        cache.put("write", _entry())
        cache.put("admin", _entry())
        assert cache.keys() == ["admin", "write"]

    def test_get_does_not_evaluate_expiry(self, cache: TokenCache) -> None:
        """Expired entries are still returned; callers decide validity."""
        cache.put("read", _entry(expires_at=0.0))
        assert cache.get("read") is not None


class TestRemoveClear:
    def test_remove_present(self, cache: TokenCache) -> None:
        cache.put("read", _entry())
        assert cache.remove("read") is True
        assert "read" not in cache

    def test_remove_absent(self, cache: TokenCache) -> None:
        assert cache.remove("read") is False

    def test_remove_leaves_other_keys(self, cache: TokenCache) -> None:
        cache.put("read", _entry())
        cache.put("write", _entry())
        cache.remove("read")
        assert cache.keys() == ["write"]

    def test_clear_returns_count(self, cache: TokenCache) -> None:
        cache.put("read", _entry())
        cache.put("write", _entry())
        assert cache.clear() == 2
        assert len(cache) == 0

    def test_clear_empty(self, cache: TokenCache) -> None:
        assert cache.clear() == 0

    def test_discard_if_same_removes_matching_entry(self, cache: TokenCache) -> None:
        entry = _entry()
        cache.put("read", entry)
        assert cache.discard_if_same("read", entry) is True
        assert "read" not in cache

    def test_discard_if_same_keeps_replaced_entry(self, cache: TokenCache) -> None:
        stale = _entry("stale")
        cache.put("read", stale)
        cache.put("read", _entry("fresh"))
        assert cache.discard_if_same("read", stale) is False
        assert cache.get("read").token == "fresh"  # type: ignore[union-attr]


# ------------------------------------------------------------------ #
# Generations
# ------------------------------------------------------------------ #


class TestGenerations:
    def test_put_with_current_generation_stores(self, cache: TokenCache) -> None:
        generation = cache.generation("read")
        assert cache.put("read", _entry(), generation=generation) is True

    def test_remove_invalidates_captured_generation(self, cache: TokenCache) -> None:
        generation = cache.generation("read")
        cache.remove("read")
        assert cache.put("read", _entry(), generation=generation) is False
        assert "read" not in cache

    def test_remove_of_other_key_keeps_generation(self, cache: TokenCache) -> None:
        generation = cache.generation("read")
        cache.remove("write")
        assert cache.put("read", _entry(), generation=generation) is True

    def test_clear_invalidates_every_key(self, cache: TokenCache) -> None:
        read_gen = cache.generation("read")
        write_gen = cache.generation("write")
        cache.clear()
        assert cache.put("read", _entry(), generation=read_gen) is False
        assert cache.put("write", _entry(), generation=write_gen) is False

    def test_discard_does_not_advance_generation(self, cache: TokenCache) -> None:
        entry = _entry()
        cache.put("read", entry)
        generation = cache.generation("read")
        cache.discard_if_same("read", entry)
        assert cache.generation("read") == generation

    def test_unconditional_put_ignores_generation(self, cache: TokenCache) -> None:
        cache.remove("read")
        assert cache.put("read", _entry()) is True


# ------------------------------------------------------------------ #
# Thread safety
# ------------------------------------------------------------------ #


class TestConcurrency:
    def test_parallel_writers_and_readers(self, cache: TokenCache) -> None:
        """Concurrent access never raises and leaves one entry per key."""
        errors: list[BaseException] = []
        start = threading.Barrier(8)

        def worker(index: int) -> None:
            try:
                start.wait(timeout=5)
                for i in range(200):
                    key = f"scope-{i % 10}"
                    cache.put(key, _entry(f"{index}-{i}"))
                    cache.get(key)
                    if i % 50 == 0:
                        cache.remove(key)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert len(cache) <= 10
