"""
远端账本网关

职责:
1. 所有远端调用的唯一出口 (fetch / create / update / delete)
2. 认证令牌缓存 (短 TTL，进程内、实例级)
3. 串行化: 同一网关同一时刻最多一个 HTTP 调用
4. 重试 + 熔断

结果约定:
- 成功: fetch 返回解析后的 JSON，create/update/delete 返回最终的 LedgerResponse
- 熔断中: 返回 None，由调用方推迟该操作
- 401/403: AuthorizationError
- 400: RequestError
- 重试耗尽: TransientError
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import aiohttp

from ..core.config import LedgerConfig
from ..core.exceptions import AuthorizationError, RequestError, TransientError, ValidationError
from ..metrics import record_remote_call, record_token_refresh, update_circuit_state
from .policies import CircuitBreaker, LedgerResponse, RetryPolicy, is_retryable

logger = logging.getLogger(__name__)


@dataclass
class AuthToken:
    """短期认证令牌"""
    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class LedgerGateway:
    """
    远端账本网关

    用法:
        async with LedgerGateway(url, token) as gateway:
            payload = await gateway.fetch("api/v1/order?accounts=...")
    """

    AUTH_PATH = "api/v1/auth/anonymous"

    def __init__(
        self,
        base_url: str,
        access_token: str,
        session: Optional[aiohttp.ClientSession] = None,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        token_ttl: float = 60.0,
        request_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not base_url:
            raise ValidationError("'base_url' cannot be empty", field="base_url")

        self.base_url = base_url.rstrip("/")
        self._access_token = access_token
        self.token_ttl = token_ttl
        self.request_timeout = request_timeout
        self._clock = clock

        self.retry_policy = retry_policy or RetryPolicy()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

        self._session = session
        self._owns_session = session is None
        self._token: Optional[AuthToken] = None

        # 所有远端调用 (含令牌获取) 串行执行
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: LedgerConfig) -> "LedgerGateway":
        return cls(
            base_url=config.base_url,
            access_token=config.access_token,
            retry_policy=RetryPolicy(max_retries=config.max_retries, pause=config.retry_pause),
            circuit_breaker=CircuitBreaker(
                failure_threshold=config.breaker_threshold,
                cooldown=config.breaker_cooldown,
            ),
            token_ttl=config.token_ttl,
            request_timeout=config.request_timeout,
        )

    async def start(self) -> None:
        """创建 HTTP 会话"""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
            logger.info(f"Ledger gateway started for {self.base_url}")

    async def close(self) -> None:
        """关闭 HTTP 会话"""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None
        self._token = None

    async def __aenter__(self) -> "LedgerGateway":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ============ 公共操作 ============

    async def fetch(self, path: str) -> Any:
        """GET，返回解析后的 JSON (空 body 返回 {})，熔断中返回 None"""
        response = await self._call("GET", path)
        if response is None:
            return None
        payload = response.json()
        return payload if payload is not None else {}

    async def create(self, path: str, body: Dict[str, Any]) -> Optional[LedgerResponse]:
        return await self._call("POST", path, body)

    async def update(self, path: str, body: Dict[str, Any]) -> Optional[LedgerResponse]:
        return await self._call("PUT", path, body)

    async def delete(self, path: str) -> Optional[LedgerResponse]:
        return await self._call("DELETE", path)

    def invalidate_token(self) -> None:
        self._token = None

    # ============ 内部实现 ============

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _call(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Optional[LedgerResponse]:
        url = self._url(path)

        async with self._lock:
            # 只统计持锁后的耗时
            started = time.perf_counter()
            response = await self.circuit_breaker.execute(
                lambda: self._execute(method, url, body)
            )
            duration = time.perf_counter() - started

        update_circuit_state(self.circuit_breaker.is_open)

        if response is None:
            logger.warning(f"Circuit open, skipping {method} {url}")
            record_remote_call(method, "circuit_open", duration)
            return None

        if response.ok:
            logger.debug(
                f"{method} {url} -> {response.status} took {duration * 1000:.0f}ms "
                f"({response.attempts} attempt(s))"
            )
            record_remote_call(method, "ok", duration)
            return response

        logger.warning(
            f"{method} {url} failed [{response.status}] after {response.attempts} attempt(s) "
            f"in {duration * 1000:.0f}ms {response.error}".rstrip()
        )
        record_remote_call(method, "error", duration)
        self._raise_for_response(method, response)

    async def _execute(self, method: str, url: str, body: Optional[Dict[str, Any]]) -> LedgerResponse:
        """单次网关调用: 解析令牌 + 带重试的请求 (在锁内执行)"""
        token = self._token.value if self._token and self._token.is_valid(self._clock()) else None

        if token is None:
            auth_response = await self._acquire_token()
            if is_retryable(auth_response):
                return auth_response
            token = self._token.value

        return await self.retry_policy.execute(
            lambda: self._send(method, url, body, token)
        )

    async def _acquire_token(self) -> LedgerResponse:
        """获取新令牌并缓存"""
        url = self._url(self.AUTH_PATH)
        response = await self.retry_policy.execute(
            lambda: self._send("POST", url, {"accessToken": self._access_token}, None)
        )

        if not response.ok:
            if is_retryable(response):
                return response
            self._raise_for_response("POST", response)

        payload = response.json()
        auth_token = payload.get("authToken") if isinstance(payload, dict) else None
        if not auth_token:
            raise RequestError(
                f"No token found [{response.status}]: {url}",
                url=url, status=response.status, method="POST",
            )

        self._token = AuthToken(value=auth_token, expires_at=self._clock() + self.token_ttl)
        record_token_refresh()
        logger.debug(f"Acquired auth token, valid for {self.token_ttl}s")
        return response

    async def _send(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]],
        token: Optional[str],
    ) -> LedgerResponse:
        """执行一次 HTTP 请求，传输层异常转换为 status=None 的响应"""
        if self._session is None:
            await self.start()

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        data = json.dumps(body, default=_json_default) if body is not None else None
        started = time.perf_counter()

        try:
            async with self._session.request(method, url, data=data, headers=headers) as resp:
                text = await resp.text()
                return LedgerResponse(
                    status=resp.status,
                    body=text,
                    url=url,
                    elapsed=time.perf_counter() - started,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return LedgerResponse(
                status=None,
                url=url,
                elapsed=time.perf_counter() - started,
                error=f"{type(e).__name__}: {e}",
            )

    def _raise_for_response(self, method: str, response: LedgerResponse) -> None:
        status = response.status
        url = response.url

        if status in (401, 403):
            if status == 401:
                self._token = None
            raise AuthorizationError(
                f"Not authorized executing url [{status}]: {url}",
                url=url, status=status,
            )

        if status == 400:
            raise RequestError(
                f"Bad request [{status}]: {method} {url} {response.body[:200]}".rstrip(),
                url=url, status=status, method=method,
            )

        raise TransientError(
            f"Error executing url [{status}]: {method} {url}",
            url=url, status=status, attempts=response.attempts,
        )
