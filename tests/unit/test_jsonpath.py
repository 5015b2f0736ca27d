"""
Unit tests for JSON path evaluation
"""

import pytest

from core.exceptions import ConfigurationError
from ingestion.jsonpath import read_path

DOCUMENT = {
    "data": {
        "items": [
            {"id": 1, "tags": ["a", "b"], "meta": {"owner": "x"}},
            {"id": 2, "tags": [], "meta": {"owner": "y"}},
        ],
        "next.cursor": "abc",
    },
    "total": 2,
}


class TestReadPath:
    """Test path syntax and miss behaviour"""

    def test_root(self):
        """Test $ returns the document"""
        assert read_path(DOCUMENT, "$") is DOCUMENT

    def test_nested_keys(self):
        """Test dotted keys with and without the $ prefix"""
        assert read_path(DOCUMENT, "$.total") == 2
        assert read_path(DOCUMENT["data"]["items"][0], "meta.owner") == "x"

    def test_index(self):
        """Test positive and negative list indices"""
        assert read_path(DOCUMENT, "$.data.items[0].id") == 1
        assert read_path(DOCUMENT, "$.data.items[-1].id") == 2

    def test_bracketed_key(self):
        """Test keys containing dots"""
        assert read_path(DOCUMENT, "$.data['next.cursor']") == "abc"

    def test_wildcard(self):
        """Test wildcards return a list of matches"""
        assert read_path(DOCUMENT, "$.data.items[*].id") == [1, 2]
        assert read_path(DOCUMENT, "$.data.items[*].missing") == []

    def test_miss_returns_none(self):
        """Test a path that does not match returns None"""
        assert read_path(DOCUMENT, "$.data.nothing.here") is None
        assert read_path(DOCUMENT, "$.data.items[5]") is None
        assert read_path(DOCUMENT, "$.total.value") is None

    def test_invalid_path(self):
        """Test malformed paths are configuration errors"""
        with pytest.raises(ConfigurationError):
            read_path(DOCUMENT, "$.data[")
