"""
Retry policy for HTTP calls.

One policy instance is built per run from the source's retry settings.
Each call to ``execute`` starts from a fresh attempt counter: a page
fetch never inherits retries spent on the previous page.

    ATTEMPTING --2xx--------------------------> SUCCESS
    ATTEMPTING --retryable, budget left-------> wait, ATTEMPTING
    ATTEMPTING --retryable, budget spent------> EXHAUSTED (TransientProtocolError)
    ATTEMPTING --other non-2xx----------------> ProtocolFaultError
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

import httpx

from core.exceptions import ProtocolFaultError, TransientProtocolError
import logging

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_CODES = (429, 503, 504)


class RetryState(str, Enum):
    ATTEMPTING = "ATTEMPTING"
    SUCCESS = "SUCCESS"
    EXHAUSTED = "EXHAUSTED"


class RetryPolicy:
    """
    Fixed-delay retry for retryable HTTP statuses and transport failures.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        retry_delay: Seconds to wait between attempts
        retryable_codes: HTTP statuses worth retrying
    """

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        retryable_codes: Iterable[int] = DEFAULT_RETRYABLE_CODES,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        source_name: Optional[str] = None
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retryable_codes = frozenset(retryable_codes)
        self.source_name = source_name
        self._sleep = sleep

    @classmethod
    def from_config(cls, config, source_name: Optional[str] = None, **kwargs) -> "RetryPolicy":
        """Build from a RetryConfig."""
        return cls(
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            retryable_codes=config.retry_on_http_codes,
            source_name=source_name,
            **kwargs
        )

    def is_retryable(self, status_code: int) -> bool:
        return status_code in self.retryable_codes

    async def execute(
        self,
        call: Callable[[], Awaitable[httpx.Response]],
        url: str = ""
    ) -> httpx.Response:
        """
        Run call until it succeeds or the retry budget is spent.

        Args:
            call: Zero-argument coroutine function issuing the request
            url: Endpoint, for logs and error context

        Returns:
            The first 2xx response

        Raises:
            TransientProtocolError: Retryable failure after the last retry
            ProtocolFaultError: Non-retryable non-2xx status
        """
        attempt = 0
        state = RetryState.ATTEMPTING
        failure: Optional[TransientProtocolError] = None

        while state == RetryState.ATTEMPTING:
            attempt += 1
            context: Dict[str, Any] = {
                "source_name": self.source_name,
                "url": url,
                "attempts": attempt,
            }

            try:
                response = await call()
            except httpx.TransportError as e:
                if attempt > self.max_retries:
                    state = RetryState.EXHAUSTED
                    failure = TransientProtocolError(
                        f"Transport error after {attempt} attempt(s): {e}",
                        context=context,
                        original_exception=e
                    )
                    continue
                logger.warning(
                    f"{type(e).__name__} calling {url}. Retrying in {self.retry_delay}s "
                    f"(retry {attempt}/{self.max_retries})"
                )
                await self._sleep(self.retry_delay)
                continue

            status = response.status_code
            if 200 <= status < 300:
                if attempt > 1:
                    logger.info(f"Call to {url} succeeded after {attempt} attempts")
                return response

            context["status_code"] = status
            context["response_body"] = response.text[:500]

            if not self.is_retryable(status):
                raise ProtocolFaultError(f"HTTP {status} from {url}", context=context)

            if attempt > self.max_retries:
                state = RetryState.EXHAUSTED
                failure = TransientProtocolError(
                    f"HTTP {status} from {url} after {attempt} attempt(s)",
                    context=context
                )
                continue

            logger.warning(
                f"HTTP {status} from {url}. Retrying in {self.retry_delay}s "
                f"(retry {attempt}/{self.max_retries})"
            )
            await self._sleep(self.retry_delay)

        logger.error(f"Retries exhausted for {url} ({state.value}): {failure.message}")
        raise failure
