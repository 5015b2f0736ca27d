"""
Paginated JSON HTTP reader.

Fetches one page at a time, buffers its items and serves them one by
one; the next page is requested only when the buffer runs dry.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

import httpx

from core.config import settings
from core.exceptions import ProtocolFaultError
from ingestion.base import RecordReader
from ingestion.jsonpath import read_path
from ingestion.readers.auth import build_http_auth
from ingestion.readers.pagination import Paginator, build_paginator
from ingestion.retry import RetryPolicy
from models.record import Record
import logging

logger = logging.getLogger(__name__)


def default_timeout() -> httpx.Timeout:
    return httpx.Timeout(settings.HTTP_READ_TIMEOUT, connect=settings.HTTP_CONNECT_TIMEOUT)


class HttpJsonReader(RecordReader):
    """
    Extract records from a REST API returning JSON.

    Features:
    - URL, query params, headers and body templates with :bind and ${ENV}
    - API key, bearer and OAuth2 client-credentials authentication
    - NONE, PAGE_SIZE, OFFSET_LIMIT, CURSOR and LINK_HEADER pagination
    - Fixed-delay retry on retryable statuses, fresh budget per page
    - data_path isolates the item array, each column reads its json_path
      or the item key named after it

    The client may be injected (shared for the run); otherwise the reader
    creates its own and closes it on close().
    """

    def __init__(
        self,
        source,
        client: Optional[httpx.AsyncClient] = None,
        bind_values=None,
        resolver=None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        super().__init__(source, bind_values, resolver)
        self.config = source.http
        self.client = client
        self._owns_client = client is None
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config.retry, source.name)
        self.paginator: Optional[Paginator] = None
        self.total_items: Optional[int] = None
        self._buffer: Deque[Record] = deque()
        self._url = ""
        self._params: Dict[str, str] = {}
        self._headers: Dict[str, str] = {}
        self._body: Optional[str] = None
        self._auth: Optional[httpx.Auth] = None

    async def _open(self) -> None:
        self._url = self.resolver.resolve(self.config.url, "http.url")
        self._params = self.resolver.resolve_map(self.config.query_params, "http.query_params")
        self._headers = self.resolver.resolve_map(self.config.headers, "http.headers")
        self._body = self.resolver.resolve_json(self.config.body, "http.body")
        if self._body is not None and not any(k.lower() == "content-type" for k in self._headers):
            self._headers["Content-Type"] = "application/json"
        self._auth = build_http_auth(self.config.auth, self.resolver)

        self.paginator = build_paginator(self.config.pagination)
        self.total_items = None
        self._buffer.clear()

        if self.client is None:
            self.client = httpx.AsyncClient(timeout=default_timeout())
            self._owns_client = True

        logger.info(
            f"HTTP reader opened - URL: {self._url}, "
            f"pagination: {self.config.pagination.strategy.value}"
        )

    async def _read(self) -> Optional[Record]:
        while not self._buffer and not self.paginator.exhausted:
            await self._fetch_page()
        if self._buffer:
            return self._buffer.popleft()
        return None

    async def _fetch_page(self) -> None:
        url, params = self.paginator.next_request(self._url, self._params)
        logger.debug(f"Fetching page {self.paginator.pages_fetched + 1}: {url} {params}")

        options: Dict[str, Any] = {"params": params or None, "headers": self._headers}
        if self._body is not None:
            options["content"] = self._body
        if self._auth is not None:
            options["auth"] = self._auth

        async def call() -> httpx.Response:
            return await self.client.request(self.config.method.value, url, **options)

        response = await self.retry_policy.execute(call, url)
        payload = self._parse(response, url)

        if payload is not None and self.total_items is None and self.config.pagination.total_path:
            total = read_path(payload, self.config.pagination.total_path)
            if isinstance(total, (int, float)) and not isinstance(total, bool):
                self.total_items = int(total)
                logger.info(f"Total items to fetch: {self.total_items}")

        items = self._extract_items(payload)
        self.paginator.advance(len(items), payload, response)
        for item in items:
            self._buffer.append(self._to_record(item))

        logger.debug(f"Extracted {len(items)} items from JSON")

    def _parse(self, response: httpx.Response, url: str) -> Any:
        if not response.content or not response.content.strip():
            logger.warning(f"Empty response from {url}")
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolFaultError(
                f"Malformed JSON response from {url}",
                context={
                    "source_name": self.source_name,
                    "url": url,
                    "response_body": response.text[:500],
                },
                original_exception=e
            )

    def _extract_items(self, payload: Any) -> List[Any]:
        if payload is None:
            return []
        extracted = read_path(payload, self.config.data_path)
        if extracted is None:
            logger.warning(f"JSON path '{self.config.data_path}' returned nothing")
            return []
        if isinstance(extracted, list):
            return extracted
        if isinstance(extracted, dict):
            return [extracted]
        logger.warning(
            f"JSON path '{self.config.data_path}' returned {type(extracted).__name__}, "
            f"expected an array or object"
        )
        return []

    def _to_record(self, item: Any) -> Record:
        record = Record()
        if not self.source.columns and isinstance(item, dict):
            # No declared columns: take the item as-is
            for key, value in item.items():
                record[str(key)] = value
            return record
        for column in self.source.columns:
            if column.json_path and column.json_path.strip():
                raw = read_path(item, column.json_path)
            else:
                raw = item.get(column.name) if isinstance(item, dict) else None
            record[column.name] = self.convert(raw, column)
        return record

    async def _close(self) -> None:
        self._buffer.clear()
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
