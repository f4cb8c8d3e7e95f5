"""Tests for the error handler module."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from asyncprawcore.exceptions import Forbidden, ServerError, TooManyRequests

from comment_mop.collector.error_handler import with_exponential_backoff


def make_response_error(error_cls, status, headers=None):
    """Build an asyncprawcore response exception without a live response."""
    error = error_cls.__new__(error_cls)
    error.response = MagicMock(status=status, headers=headers or {})
    return error


class FakeClient:
    """Stand-in for a provider carrying a rate limiter."""

    def __init__(self, func, rate_limiter=None):
        self.func = func
        self.rate_limiter = rate_limiter

    @with_exponential_backoff(max_retries=2, initial_backoff=0.1, backoff_factor=2.0)
    async def call(self, *args, **kwargs):
        return await self.func(*args, **kwargs)


class TestWithExponentialBackoff(unittest.TestCase):
    """Test cases for the with_exponential_backoff decorator."""

    def test_successful_call(self):
        """Test decorator with a successful function call."""
        mock_func = AsyncMock(return_value="success")
        client = FakeClient(mock_func)

        result = asyncio.run(client.call("arg1", kwarg="kwarg"))

        mock_func.assert_called_once_with("arg1", kwarg="kwarg")
        self.assertEqual(result, "success")

    def test_retry_on_server_error(self):
        """Test decorator retries on 5xx errors."""
        mock_func = AsyncMock(side_effect=[make_response_error(ServerError, 500), "success"])
        client = FakeClient(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            result = asyncio.run(client.call())

        mock_sleep.assert_called_once_with(0.1)
        self.assertEqual(result, "success")

    def test_max_retries_exceeded(self):
        """Test decorator raises exception when max retries exceeded."""
        mock_func = AsyncMock(side_effect=make_response_error(ServerError, 503))
        client = FakeClient(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            with self.assertRaises(ServerError):
                asyncio.run(client.call())

        calls = [call[0][0] for call in mock_sleep.call_args_list]
        self.assertEqual(calls, [0.1, 0.2])
        self.assertEqual(mock_func.call_count, 3)

    def test_client_error_not_retried(self):
        """Test that 4xx errors other than 429 are raised at once."""
        mock_func = AsyncMock(side_effect=make_response_error(Forbidden, 403))
        client = FakeClient(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            with self.assertRaises(Forbidden):
                asyncio.run(client.call())

        mock_sleep.assert_not_called()
        self.assertEqual(mock_func.call_count, 1)

    def test_handle_429_with_rate_limiter(self):
        """Test decorator waits out 429 errors through the rate limiter."""
        error = make_response_error(TooManyRequests, 429, {"retry-after": "1"})
        mock_func = AsyncMock(side_effect=[error, "success"])
        mock_rate_limiter = MagicMock()
        mock_rate_limiter.handle_429 = AsyncMock()
        client = FakeClient(mock_func, rate_limiter=mock_rate_limiter)

        result = asyncio.run(client.call())

        mock_rate_limiter.handle_429.assert_called_once_with("1")
        self.assertEqual(result, "success")

    def test_429_without_rate_limiter_is_raised(self):
        """Test that a 429 propagates when there is no rate limiter."""
        mock_func = AsyncMock(side_effect=make_response_error(TooManyRequests, 429))
        client = FakeClient(mock_func)

        with self.assertRaises(TooManyRequests):
            asyncio.run(client.call())


if __name__ == "__main__":
    unittest.main()
