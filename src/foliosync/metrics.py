"""
Prometheus 指标模块

提供系统监控指标:
- 远端调用次数与耗时
- 熔断器状态
- 同步操作结果
"""

import asyncio
import logging
import os
import time
from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest, CONTENT_TYPE_LATEST
from aiohttp import web

logger = logging.getLogger(__name__)


# ============ 远端调用指标 ============
REMOTE_CALLS = Counter(
    'foliosync_remote_calls_total',
    'Total calls issued to the remote ledger',
    ['method', 'outcome']
)

REMOTE_CALL_DURATION = Histogram(
    'foliosync_remote_call_seconds',
    'Remote ledger call latency (including retries)',
    ['method'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

CIRCUIT_STATE = Gauge(
    'foliosync_circuit_open',
    'Circuit breaker state (1=open, 0=closed/half-open)'
)

TOKEN_REFRESHES = Counter(
    'foliosync_token_refresh_total',
    'Total authentication token acquisitions'
)

# ============ 同步指标 ============
SYNC_OPERATIONS = Counter(
    'foliosync_sync_operations_total',
    'Reconciliation operations by outcome',
    ['account', 'operation', 'outcome']
)

SYNC_PASS_DURATION = Histogram(
    'foliosync_sync_pass_seconds',
    'Time spent on one reconciliation pass per account',
    ['account'],
    buckets=(1, 5, 10, 30, 60, 120, 300)
)

LAST_SUCCESSFUL_PASS = Gauge(
    'foliosync_last_successful_pass_timestamp',
    'Unix time of the last completed pass',
    ['account']
)

# ============ 系统信息 ============
SYSTEM_INFO = Info(
    'foliosync',
    'FolioSync ledger synchronizer information'
)

SYSTEM_INFO.info({
    'version': '1.0.0',
    'python_version': '3.10+',
})


def record_remote_call(method: str, outcome: str, duration: float) -> None:
    """记录一次远端调用"""
    REMOTE_CALLS.labels(method=method, outcome=outcome).inc()
    REMOTE_CALL_DURATION.labels(method=method).observe(duration)


def update_circuit_state(is_open: bool) -> None:
    """更新熔断器状态"""
    CIRCUIT_STATE.set(1 if is_open else 0)


def record_token_refresh() -> None:
    TOKEN_REFRESHES.inc()


def record_operation(account: str, operation: str, outcome: str) -> None:
    """记录同步操作结果"""
    SYNC_OPERATIONS.labels(account=account, operation=operation, outcome=outcome).inc()


class PassTimer:
    """同步过程计时器"""

    def __init__(self, account: str):
        self.account = account
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        duration = time.perf_counter() - self.start_time
        SYNC_PASS_DURATION.labels(account=self.account).observe(duration)
        if exc_type is None:
            LAST_SUCCESSFUL_PASS.labels(account=self.account).set(time.time())


# ============ HTTP 端点 ============

async def metrics_handler(request: web.Request) -> web.Response:
    """Prometheus metrics endpoint"""
    return web.Response(
        body=generate_latest(),
        headers={"Content-Type": CONTENT_TYPE_LATEST},
    )


async def health_handler(request: web.Request) -> web.Response:
    """Health check endpoint"""
    return web.Response(text="OK", status=200)


def create_metrics_app() -> web.Application:
    """创建 metrics HTTP 应用"""
    app = web.Application()
    app.router.add_get('/metrics', metrics_handler)
    app.router.add_get('/health', health_handler)
    app.router.add_get('/healthz', health_handler)
    return app


async def start_metrics_server(host: str = "0.0.0.0", port: int = 8000) -> web.AppRunner:
    """启动 metrics 服务器"""
    app = create_metrics_app()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Metrics server running at http://{host}:{port}/metrics")
    return runner


async def main() -> None:
    """单独启动 Prometheus metrics 服务"""
    host = os.getenv("FOLIOSYNC_METRICS_HOST", "0.0.0.0")
    port = int(os.getenv("FOLIOSYNC_METRICS_PORT", "8000"))

    runner = await start_metrics_server(host=host, port=port)

    try:
        while True:
            await asyncio.sleep(3600)
    except KeyboardInterrupt:
        pass
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
