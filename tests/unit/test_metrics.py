"""
测试 Prometheus 指标与 HTTP 端点
"""

from unittest.mock import MagicMock

import pytest
from prometheus_client import REGISTRY

from foliosync.metrics import (
    PassTimer,
    create_metrics_app,
    health_handler,
    metrics_handler,
    record_operation,
    record_remote_call,
)


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_record_operation():
    labels = dict(account="metrics-acc", operation="create", outcome="applied")
    before = sample("foliosync_sync_operations_total", **labels)

    record_operation("metrics-acc", "create", "applied")

    assert sample("foliosync_sync_operations_total", **labels) == before + 1


def test_record_remote_call():
    before = sample("foliosync_remote_calls_total", method="PATCH", outcome="ok")
    count_before = sample("foliosync_remote_call_seconds_count", method="PATCH")

    record_remote_call("PATCH", "ok", 0.2)

    assert sample("foliosync_remote_calls_total", method="PATCH", outcome="ok") == before + 1
    assert sample("foliosync_remote_call_seconds_count", method="PATCH") == count_before + 1


def test_pass_timer_marks_success():
    with PassTimer("timer-ok"):
        pass

    assert sample("foliosync_sync_pass_seconds_count", account="timer-ok") >= 1
    assert sample("foliosync_last_successful_pass_timestamp", account="timer-ok") > 0


def test_pass_timer_failure_not_marked_successful():
    with pytest.raises(RuntimeError):
        with PassTimer("timer-fail"):
            raise RuntimeError("boom")

    assert sample("foliosync_sync_pass_seconds_count", account="timer-fail") == 1
    assert REGISTRY.get_sample_value(
        "foliosync_last_successful_pass_timestamp", {"account": "timer-fail"}
    ) is None


@pytest.mark.asyncio
async def test_metrics_handler_exposes_registry():
    record_operation("handler-acc", "delete", "deferred")

    response = await metrics_handler(MagicMock())

    assert response.status == 200
    assert b"foliosync_sync_operations_total" in response.body
    assert b'account="handler-acc"' in response.body


@pytest.mark.asyncio
async def test_health_handler():
    response = await health_handler(MagicMock())

    assert response.status == 200
    assert response.text == "OK"


def test_metrics_app_routes():
    app = create_metrics_app()

    paths = {resource.canonical for resource in app.router.resources()}

    assert {"/metrics", "/health", "/healthz"} <= paths
