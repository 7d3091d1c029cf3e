"""Tests for goaly/core/versioning.py."""

import pytest

from goaly.core.versioning import (
    GOAL_FILE_VERSION,
    compare_versions,
    is_newer_version,
    is_older_version,
    is_same_version,
    is_valid_version,
)
from goaly.errors import InvalidVersionError


class TestIsValidVersion:
    @pytest.mark.parametrize("version", ["1.2.0", "0.0.1", "10.20.30", " 1.2.0 "])
    def test_valid(self, version):
        assert is_valid_version(version)

    @pytest.mark.parametrize("version", ["1.2", "1.2.0-beta", "v1.2.0", "", None, 120, "a.b.c"])
    def test_invalid(self, version):
        assert not is_valid_version(version)


class TestCompareVersions:
    def test_equal(self):
        assert compare_versions("1.2.0", "1.2.0") == 0

    def test_numeric_not_lexical(self):
        assert compare_versions("1.10.0", "1.9.0") == 1
        assert compare_versions("1.9.0", "1.10.0") == -1

    def test_major_dominates(self):
        assert compare_versions("2.0.0", "1.99.99") == 1

    def test_whitespace_tolerated(self):
        assert compare_versions(" 1.2.0", "1.2.0 ") == 0

    def test_invalid_raises(self):
        with pytest.raises(InvalidVersionError):
            compare_versions("1.2", "1.2.0")
        with pytest.raises(ValueError):
            compare_versions("1.2.0", None)


class TestPredicates:
    def test_current_is_same(self):
        assert is_same_version(GOAL_FILE_VERSION)
        assert not is_older_version(GOAL_FILE_VERSION)
        assert not is_newer_version(GOAL_FILE_VERSION)

    def test_older_and_newer(self):
        assert is_older_version("1.0.0", "1.2.0")
        assert is_newer_version("1.3.0", "1.2.0")

    def test_invalid_candidate_counts_as_older_only(self):
        for candidate in (None, "", "garbage"):
            assert is_older_version(candidate)
            assert not is_same_version(candidate)
            assert not is_newer_version(candidate)
