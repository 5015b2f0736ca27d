"""
Unit tests for the HTTP retry policy
"""

import httpx
import pytest

from core.exceptions import ProtocolFaultError, TransientProtocolError
from ingestion.retry import RetryPolicy
from schemas.source import RetryConfig


class FakeSleep:
    """Records requested delays instead of sleeping"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def scripted(*outcomes):
    """Call that returns responses / raises errors in order"""
    calls = []

    async def call():
        outcome = outcomes[len(calls)]
        calls.append(outcome)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text="body")

    return call, calls


class TestRetryPolicy:
    """Test attempt counting and error classification"""

    @pytest.mark.asyncio
    async def test_success_after_retryable_statuses(self):
        """Test 503, 503, 200 succeeds on the third call"""
        sleep = FakeSleep()
        policy = RetryPolicy(max_retries=3, retry_delay=0.5, sleep=sleep)
        call, calls = scripted(503, 503, 200)

        response = await policy.execute(call, "https://api.example.com")

        assert response.status_code == 200
        assert len(calls) == 3
        assert sleep.delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_exhausted_after_max_retries(self):
        """Test one retry allowed means two calls, then failure"""
        policy = RetryPolicy(max_retries=1, retry_delay=0, sleep=FakeSleep())
        call, calls = scripted(503, 503, 200)

        with pytest.raises(TransientProtocolError) as exc_info:
            await policy.execute(call, "https://api.example.com")

        assert len(calls) == 2
        assert exc_info.value.context["status_code"] == 503
        assert exc_info.value.context["attempts"] == 2

    @pytest.mark.asyncio
    async def test_non_retryable_status_fails_immediately(self):
        """Test a 404 is not retried"""
        sleep = FakeSleep()
        policy = RetryPolicy(max_retries=3, sleep=sleep)
        call, calls = scripted(404)

        with pytest.raises(ProtocolFaultError) as exc_info:
            await policy.execute(call, "https://api.example.com")

        assert len(calls) == 1
        assert sleep.delays == []
        assert exc_info.value.context["status_code"] == 404

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        """Test max_retries=0 makes exactly one call"""
        policy = RetryPolicy(max_retries=0, sleep=FakeSleep())
        call, calls = scripted(429)

        with pytest.raises(TransientProtocolError):
            await policy.execute(call)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        """Test timeouts count against the same budget"""
        policy = RetryPolicy(max_retries=2, sleep=FakeSleep())
        call, calls = scripted(httpx.ConnectTimeout("timed out"), 200)

        response = await policy.execute(call)

        assert response.status_code == 200
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_transport_errors_exhausted(self):
        """Test persistent transport errors end as transient failures"""
        policy = RetryPolicy(max_retries=1, sleep=FakeSleep())
        call, _ = scripted(httpx.ConnectError("refused"), httpx.ConnectError("refused"))

        with pytest.raises(TransientProtocolError) as exc_info:
            await policy.execute(call)

        assert isinstance(exc_info.value.original_exception, httpx.ConnectError)

    def test_from_config(self):
        """Test building from descriptor settings"""
        policy = RetryPolicy.from_config(
            RetryConfig(max_retries=5, retry_delay=1.5, retry_on_http_codes=[500]), "api"
        )

        assert policy.max_retries == 5
        assert policy.is_retryable(500)
        assert not policy.is_retryable(503)

    def test_negative_retries_rejected(self):
        """Test max_retries must not be negative"""
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
