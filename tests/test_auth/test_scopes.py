"""Tests for scope normalisation, cache keys, and the wire scope string."""

from __future__ import annotations

import pytest

from apitestkit.auth.scopes import canonicalize, normalize_scopes, scope_string


class TestNormalizeScopes:
    def test_none_is_empty(self) -> None:
        assert normalize_scopes(None) == ()

    def test_space_delimited_string_is_split(self) -> None:
        assert normalize_scopes("read  write") == ("read", "write")

    def test_blank_entries_are_dropped(self) -> None:
        assert normalize_scopes(["read", "", "  ", "write"]) == ("read", "write")

    def test_entries_are_stripped(self) -> None:
        assert normalize_scopes([" read ", "write\t"]) == ("read", "write")

    def test_duplicates_keep_first_position(self) -> None:
        assert normalize_scopes(["write", "read", "write"]) == ("write", "read")

    def test_accepts_any_iterable(self) -> None:
        assert normalize_scopes(s for s in ("a", "b")) == ("a", "b")


class TestCanonicalize:
    @pytest.mark.parametrize(
        "scopes",
        [
            ["read", "write"],
            ["write", "read"],
            ["write", "read", "read"],
            ("read", "write"),
            {"write", "read"},
            "write read",
        ],
    )
    def test_permutations_share_one_key(self, scopes: object) -> None:
        """Order and duplicates never change the cache key."""
        assert canonicalize(scopes) == "read write"  # type: ignore[arg-type]

    def test_empty_set_is_empty_string(self) -> None:
        assert canonicalize(None) == ""
        assert canonicalize([]) == ""
        assert canonicalize(["", " "]) == ""

    def test_case_is_significant(self) -> None:
        assert canonicalize(["Read"]) != canonicalize(["read"])

    def test_does_not_mutate_input(self) -> None:
        scopes = ["write", "read"]
        canonicalize(scopes)
        assert scopes == ["write", "read"]

    def test_distinct_sets_have_distinct_keys(self) -> None:
        assert canonicalize(["read"]) != canonicalize(["read", "write"])


class TestScopeString:
    def test_keeps_caller_order(self) -> None:
        assert scope_string(["write", "read"]) == "write read"

    def test_empty_is_none(self) -> None:
        assert scope_string([]) is None
        assert scope_string(None) is None
        assert scope_string("  ") is None

    def test_deduplicates(self) -> None:
        assert scope_string(["read", "read"]) == "read"
