"""
Pagination strategies for the HTTP reader.

A paginator decides what the next request looks like and, once the page
has been parsed, whether another page exists. It never performs I/O.
Every strategy ends on a page without items.
"""

from typing import Any, Dict, Optional, Tuple

import httpx

from ingestion.jsonpath import read_path
from schemas.source import PaginationConfig, PaginationStrategy
import logging

logger = logging.getLogger(__name__)

Request = Tuple[str, Dict[str, str]]


class Paginator:
    """Single request, no pagination (strategy NONE)."""

    def __init__(self, config: PaginationConfig):
        self.config = config
        self.exhausted = False
        self.pages_fetched = 0

    def next_request(self, url: str, params: Dict[str, str]) -> Request:
        return url, dict(params)

    def advance(self, item_count: int, payload: Any, response: Optional[httpx.Response]) -> None:
        self.pages_fetched += 1
        if item_count == 0:
            self.exhausted = True
            return
        self._advance(item_count, payload, response)

    def _advance(self, item_count: int, payload: Any, response: Optional[httpx.Response]) -> None:
        self.exhausted = True


class PageSizePaginator(Paginator):
    """
    page / size parameters, zero-based page counter.

    The counter only moves forward after a page that returned items.
    """

    def __init__(self, config: PaginationConfig):
        super().__init__(config)
        self.page = 0

    def next_request(self, url: str, params: Dict[str, str]) -> Request:
        params = dict(params)
        params[self.config.page_param] = str(self.page)
        params[self.config.size_param] = str(self.config.page_size)
        return url, params

    def _advance(self, item_count, payload, response) -> None:
        logger.debug(f"Page {self.page} fetched: {item_count} items")
        self.page += 1


class OffsetLimitPaginator(Paginator):
    """offset / limit parameters, offset advanced by the items actually returned."""

    def __init__(self, config: PaginationConfig):
        super().__init__(config)
        self.offset = 0

    def next_request(self, url: str, params: Dict[str, str]) -> Request:
        params = dict(params)
        params[self.config.offset_param] = str(self.offset)
        params[self.config.limit_param] = str(self.config.page_size)
        return url, params

    def _advance(self, item_count, payload, response) -> None:
        logger.debug(f"Offset {self.offset} fetched: {item_count} items")
        self.offset += item_count


class CursorPaginator(Paginator):
    """
    Opaque cursor read from the previous response.

    The first request carries no cursor. A response without a cursor is
    the last page.
    """

    def __init__(self, config: PaginationConfig):
        super().__init__(config)
        self.cursor: Optional[str] = None

    def next_request(self, url: str, params: Dict[str, str]) -> Request:
        params = dict(params)
        if self.cursor is not None:
            params[self.config.cursor_param] = self.cursor
        return url, params

    def _advance(self, item_count, payload, response) -> None:
        cursor = read_path(payload, self.config.cursor_path) if payload is not None else None
        if cursor is None or cursor == "" or cursor == []:
            logger.debug(f"No cursor after {self.pages_fetched} page(s) - end of pagination")
            self.cursor = None
            self.exhausted = True
            return
        self.cursor = str(cursor)
        logger.debug(f"Next cursor: {self.cursor}")


class LinkHeaderPaginator(Paginator):
    """Follows the rel="next" URL of the Link response header."""

    def __init__(self, config: PaginationConfig):
        super().__init__(config)
        self.next_url: Optional[str] = None

    def next_request(self, url: str, params: Dict[str, str]) -> Request:
        if self.next_url is not None:
            # The next link already carries its query string
            return self.next_url, {}
        return url, dict(params)

    def _advance(self, item_count, payload, response) -> None:
        link = response.links.get("next") if response is not None else None
        if not link or not link.get("url"):
            self.exhausted = True
            return
        self.next_url = str(response.url.join(link["url"]))


_PAGINATORS = {
    PaginationStrategy.NONE: Paginator,
    PaginationStrategy.PAGE_SIZE: PageSizePaginator,
    PaginationStrategy.OFFSET_LIMIT: OffsetLimitPaginator,
    PaginationStrategy.CURSOR: CursorPaginator,
    PaginationStrategy.LINK_HEADER: LinkHeaderPaginator,
}


def build_paginator(config: PaginationConfig) -> Paginator:
    return _PAGINATORS[config.strategy](config)
