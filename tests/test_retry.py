"""Tests for filter_address_book.retry."""

from __future__ import annotations

import pytest

from filter_address_book.config import RetryConfig
from filter_address_book.errors import DirectoryScanFailed, TransportError
from filter_address_book.retry import with_retry


def _transport_error() -> TransportError:
    return TransportError("GET", "/scan/a@b.com/c@d.com/", ConnectionError("refused"))


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, retry_config: RetryConfig):
        call_count = 0

        @with_retry(retry_config)
        async def fn():
            nonlocal call_count
            call_count += 1
            return ["work"]

        assert await fn() == ["work"]
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, retry_config: RetryConfig):
        call_count = 0

        @with_retry(retry_config)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise _transport_error()
            return ["family"]

        assert await fn() == ["family"]
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_retries_and_reraises(self, retry_config: RetryConfig):
        call_count = 0

        @with_retry(retry_config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise _transport_error()

        with pytest.raises(TransportError):
            await fn()
        assert call_count == retry_config.max_attempts

    @pytest.mark.asyncio
    async def test_scan_failure_not_retried(self, retry_config: RetryConfig):
        call_count = 0

        @with_retry(retry_config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise DirectoryScanFailed("unknown user")

        with pytest.raises(DirectoryScanFailed):
            await fn()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_custom_retryable_exceptions(self, retry_config: RetryConfig):
        call_count = 0

        @with_retry(retry_config, retryable_exceptions=(ValueError,))
        async def fn():
            nonlocal call_count
            call_count += 1
            raise ValueError("flaky")

        with pytest.raises(ValueError):
            await fn()
        assert call_count == retry_config.max_attempts
