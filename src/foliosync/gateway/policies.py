"""
远端调用的弹性策略

- RetryPolicy: 固定间隔的有限次重试
- CircuitBreaker: 连续失败达到阈值后熔断，冷却期内快速失败

两个策略互相独立，都只包装一个返回 LedgerResponse 的异步调用:

    breaker.execute(lambda: retry.execute(call))

熔断器看到的一次失败 = 一次耗尽重试预算的调用。
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

# 客户端拒绝: 不重试
NON_RETRYABLE_STATUSES = frozenset({400, 401, 403})


@dataclass
class LedgerResponse:
    """
    远端响应

    status 为 None 表示传输层失败 (连接错误、超时)。
    """
    status: Optional[int]
    body: str = ""
    url: str = ""
    elapsed: float = 0.0
    error: str = ""
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    def json(self) -> Any:
        """解析 JSON (空 body 返回 None)，小数保留为 Decimal"""
        if not self.body or not self.body.strip():
            return None
        return json.loads(self.body, parse_float=Decimal)


def is_retryable(response: LedgerResponse) -> bool:
    """除 400/401/403 外的所有失败均可重试"""
    return not response.ok and response.status not in NON_RETRYABLE_STATUSES


Call = Callable[[], Awaitable[LedgerResponse]]


class RetryPolicy:
    """
    固定间隔重试

    Args:
        max_retries: 首次调用之外的最大重试次数
        pause: 两次尝试之间的等待 (秒)
    """

    def __init__(
        self,
        max_retries: int = 5,
        pause: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_retries = max_retries
        self.pause = pause
        self._sleep = sleep

    async def execute(self, call: Call) -> LedgerResponse:
        response = await call()
        attempt = 1

        while is_retryable(response) and attempt <= self.max_retries:
            logger.debug(
                f"The request failed. status={response.status} error={response.error!r}. "
                f"Waiting {self.pause}s before retry. Attempt {attempt}. url={response.url}"
            )
            await self._sleep(self.pause)
            response = await call()
            attempt += 1

        response.attempts = attempt
        return response


class CircuitState(Enum):
    """熔断器状态"""
    CLOSED = "closed"        # 正常
    OPEN = "open"            # 熔断中，快速失败
    HALF_OPEN = "half_open"  # 冷却结束，试探一次


class CircuitBreaker:
    """
    连续失败熔断器

    熔断期间 execute() 直接返回 None (不调用、不抛异常)，
    由调用方推迟这部分工作。
    """

    def __init__(
        self,
        failure_threshold: int = 2,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    async def execute(self, call: Call) -> Optional[LedgerResponse]:
        if self.state == CircuitState.OPEN:
            if self._clock() - self.opened_at < self.cooldown:
                return None
            self.state = CircuitState.HALF_OPEN
            logger.debug("Circuit breaker half-open, allowing a trial call")

        response = await call()

        if is_retryable(response):
            self._on_failure()
        else:
            self._on_success()

        return response

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker closed after recovery")
        self.state = CircuitState.CLOSED
        self.failure_count = 0

    def _on_failure(self) -> None:
        self.failure_count += 1

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()
            logger.warning(
                f"Circuit breaker opened after {self.failure_count} failures, "
                f"cooling down for {self.cooldown}s"
            )
