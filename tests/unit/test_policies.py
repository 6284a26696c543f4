"""
测试重试与熔断策略 (使用伪造的失败调用)
"""

from unittest.mock import AsyncMock

import pytest

from foliosync.gateway import CircuitBreaker, CircuitState, LedgerResponse, RetryPolicy, is_retryable


def fake_call(statuses):
    """按顺序返回给定状态码的异步调用"""
    remaining = list(statuses)
    calls = []

    async def call():
        status = remaining.pop(0) if remaining else statuses[-1]
        calls.append(status)
        return LedgerResponse(status=status, url="http://ledger.local/x")

    call.calls = calls
    return call


class TestClassification:
    """测试可重试判定"""

    @pytest.mark.parametrize("status", [500, 502, 503, 404, 429, None])
    def test_retryable(self, status):
        assert is_retryable(LedgerResponse(status=status))

    @pytest.mark.parametrize("status", [200, 201, 204, 400, 401, 403])
    def test_not_retryable(self, status):
        assert not is_retryable(LedgerResponse(status=status))


class TestRetryPolicy:
    """测试固定间隔重试"""

    @pytest.mark.asyncio
    async def test_success_needs_no_retry(self):
        sleep = AsyncMock()
        call = fake_call([200])

        response = await RetryPolicy(max_retries=3, pause=1.0, sleep=sleep).execute(call)

        assert response.ok
        assert response.attempts == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_with_fixed_pause(self):
        sleep = AsyncMock()
        call = fake_call([500, 503, 200])

        response = await RetryPolicy(max_retries=3, pause=2.5, sleep=sleep).execute(call)

        assert response.status == 200
        assert response.attempts == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.5, 2.5]

    @pytest.mark.asyncio
    async def test_budget_exhausted_returns_last_response(self):
        sleep = AsyncMock()
        call = fake_call([500])

        response = await RetryPolicy(max_retries=2, pause=0, sleep=sleep).execute(call)

        assert response.status == 500
        assert response.attempts == 3
        assert len(call.calls) == 3

    @pytest.mark.asyncio
    async def test_client_rejection_not_retried(self):
        sleep = AsyncMock()
        call = fake_call([403])

        response = await RetryPolicy(max_retries=5, sleep=sleep).execute(call)

        assert response.status == 403
        assert len(call.calls) == 1


class TestCircuitBreaker:
    """测试熔断器状态机"""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=2, cooldown=30, clock=lambda: now[0])
        call = fake_call([500])

        await breaker.execute(call)
        assert breaker.state == CircuitState.CLOSED
        await breaker.execute(call)
        assert breaker.state == CircuitState.OPEN

        assert await breaker.execute(call) is None
        assert len(call.calls) == 2

    @pytest.mark.asyncio
    async def test_success_resets_streak(self):
        breaker = CircuitBreaker(failure_threshold=2, cooldown=30, clock=lambda: 0.0)
        call = fake_call([500, 200, 500, 400])

        for _ in range(4):
            await breaker.execute(call)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=2, cooldown=30, clock=lambda: now[0])
        call = fake_call([500])

        await breaker.execute(call)
        await breaker.execute(call)
        now[0] = 30.0

        response = await breaker.execute(call)

        assert response.status == 500
        assert breaker.state == CircuitState.OPEN
        assert breaker.opened_at == 30.0

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=1, cooldown=10, clock=lambda: now[0])

        await breaker.execute(fake_call([500]))
        assert breaker.is_open

        now[0] = 10.0
        await breaker.execute(fake_call([200]))

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_composes_with_retry(self):
        breaker = CircuitBreaker(failure_threshold=2, cooldown=30, clock=lambda: 0.0)
        retry = RetryPolicy(max_retries=2, pause=0, sleep=AsyncMock())
        call = fake_call([500])

        await breaker.execute(lambda: retry.execute(call))
        assert breaker.failure_count == 1
        assert len(call.calls) == 3
