# tests/test_retry_policy.py

"""Tests for the bounded-retry combinator."""

import unittest
from unittest.mock import AsyncMock

from src.services.retry_policy import RetryPolicy, linear_backoff


class TestRetryPolicy(unittest.IsolatedAsyncioTestCase):
    """RetryPolicy.run behaviour."""

    async def test_returns_first_success(self) -> None:
        """A successful first attempt is not retried."""
        operation = AsyncMock(return_value="ok")
        sleep = AsyncMock()
        result = await RetryPolicy(max_attempts=3).run(operation, sleep=sleep)
        self.assertEqual(result, "ok")
        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    async def test_retries_then_succeeds(self) -> None:
        """Failures are retried with linear backoff between attempts."""
        operation = AsyncMock(
            side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"]
        )
        sleep = AsyncMock()
        policy = RetryPolicy(max_attempts=3, backoff=linear_backoff(2.0))
        result = await policy.run(operation, sleep=sleep)
        self.assertEqual(result, "ok")
        self.assertEqual(operation.await_count, 3)
        self.assertEqual(
            [c.args[0] for c in sleep.await_args_list], [2.0, 4.0],
        )

    async def test_reraises_final_exception(self) -> None:
        """The last attempt's exception propagates unchanged."""
        final = RuntimeError("third")
        operation = AsyncMock(
            side_effect=[RuntimeError("first"), RuntimeError("second"), final]
        )
        with self.assertRaises(RuntimeError) as ctx:
            await RetryPolicy(max_attempts=3).run(
                operation, sleep=AsyncMock(),
            )
        self.assertIs(ctx.exception, final)
        self.assertEqual(operation.await_count, 3)

    async def test_non_retryable_propagates_immediately(self) -> None:
        """Exceptions outside retry_on are not retried."""
        operation = AsyncMock(side_effect=KeyError("boom"))
        policy = RetryPolicy(max_attempts=5, retry_on=(RuntimeError,))
        with self.assertRaises(KeyError):
            await policy.run(operation, sleep=AsyncMock())
        operation.assert_awaited_once()

    async def test_single_attempt_policy(self) -> None:
        """max_attempts=1 means no retry at all."""
        operation = AsyncMock(side_effect=RuntimeError("once"))
        with self.assertRaises(RuntimeError):
            await RetryPolicy(max_attempts=1).run(
                operation, sleep=AsyncMock(),
            )
        operation.assert_awaited_once()


class TestLinearBackoff(unittest.TestCase):
    """Delay schedule helper."""

    def test_delay_grows_with_attempt(self) -> None:
        """Delay is attempt * base."""
        backoff = linear_backoff(1.5)
        self.assertEqual(backoff(1), 1.5)
        self.assertEqual(backoff(3), 4.5)


if __name__ == "__main__":
    unittest.main()
