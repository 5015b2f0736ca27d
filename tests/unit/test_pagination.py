"""
Unit tests for HTTP pagination strategies
"""

import httpx

from ingestion.readers.pagination import (
    CursorPaginator,
    LinkHeaderPaginator,
    OffsetLimitPaginator,
    PageSizePaginator,
    Paginator,
    build_paginator,
)
from schemas.source import PaginationConfig


class TestPaginators:
    """Test request shaping and end-of-data detection"""

    def test_none_strategy_single_request(self):
        """Test NONE stops after the first page"""
        paginator = build_paginator(PaginationConfig())

        assert type(paginator) is Paginator
        assert paginator.next_request("u", {"a": "1"}) == ("u", {"a": "1"})
        paginator.advance(5, {}, None)
        assert paginator.exhausted

    def test_page_size(self):
        """Test page counter starts at 0 and stops on an empty page"""
        paginator = build_paginator(PaginationConfig(strategy="PAGE_SIZE", page_size=2))
        assert isinstance(paginator, PageSizePaginator)

        assert paginator.next_request("u", {}) == ("u", {"page": "0", "size": "2"})
        paginator.advance(2, {}, None)
        assert paginator.next_request("u", {})[1]["page"] == "1"
        paginator.advance(0, {}, None)

        assert paginator.exhausted
        assert paginator.pages_fetched == 2

    def test_offset_limit_advances_by_items(self):
        """Test the offset moves by the number of items returned"""
        paginator = OffsetLimitPaginator(PaginationConfig(strategy="OFFSET_LIMIT", page_size=10))

        paginator.advance(10, {}, None)
        paginator.advance(3, {}, None)

        assert paginator.next_request("u", {}) == ("u", {"offset": "13", "limit": "10"})
        assert not paginator.exhausted

    def test_cursor(self):
        """Test the cursor is omitted first, then read from the payload"""
        paginator = CursorPaginator(PaginationConfig(strategy="CURSOR", cursor_path="$.meta.next"))

        assert paginator.next_request("u", {}) == ("u", {})
        paginator.advance(2, {"meta": {"next": "c2"}}, None)
        assert paginator.next_request("u", {}) == ("u", {"cursor": "c2"})

        paginator.advance(2, {"meta": {"next": None}}, None)
        assert paginator.exhausted

    def test_cursor_empty_string_ends(self):
        """Test an empty cursor means no more pages"""
        paginator = CursorPaginator(PaginationConfig(strategy="CURSOR", cursor_path="next"))

        paginator.advance(1, {"next": ""}, None)

        assert paginator.exhausted

    def test_link_header(self):
        """Test rel=next links are followed and resolved against the request URL"""
        paginator = LinkHeaderPaginator(PaginationConfig(strategy="LINK_HEADER"))
        request = httpx.Request("GET", "https://api.example.com/items?page=1")
        response = httpx.Response(
            200,
            headers={"Link": '</items?page=2>; rel="next", </items?page=9>; rel="last"'},
            request=request,
        )

        paginator.advance(3, [], response)

        assert paginator.next_request("https://api.example.com/items", {"page": "1"}) == (
            "https://api.example.com/items?page=2",
            {},
        )

    def test_link_header_without_next(self):
        """Test a response without a next link is the last page"""
        paginator = LinkHeaderPaginator(PaginationConfig(strategy="LINK_HEADER"))
        response = httpx.Response(200, request=httpx.Request("GET", "https://api.example.com/items"))

        paginator.advance(3, [], response)

        assert paginator.exhausted
