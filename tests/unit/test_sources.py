"""
测试 JSON lines 交易来源
"""

import json

import pytest

from foliosync.core.exceptions import ValidationError
from foliosync.model import TransactionKind
from foliosync.sync.sources import JsonlTransactionSource


def _line(key, kind="buy", **extra):
    data = {
        "kind": kind,
        "timestamp": "2023-01-01T10:00:00Z",
        "currency": "EUR",
        "source_key": key,
        "instrument": ["isin:IE00B4L5Y983"],
        "quantity": "1",
        "unit_price": "80.10",
    }
    data.update(extra)
    return json.dumps(data)


def test_reads_directory_in_name_order(tmp_path):
    (tmp_path / "b.jsonl").write_text(_line("k2") + "\n", encoding="utf-8")
    (tmp_path / "a.jsonl").write_text(
        "# export 2023\n\n" + _line("k1") + "\n", encoding="utf-8"
    )
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    transactions = JsonlTransactionSource([str(tmp_path)]).load("acc")

    assert [tx.source_key for tx in transactions] == ["k1", "k2"]
    assert all(tx.account_id == "acc" for tx in transactions)
    assert transactions[0].kind == TransactionKind.BUY


def test_missing_path_is_skipped(tmp_path):
    existing = tmp_path / "one.jsonl"
    existing.write_text(_line("k1"), encoding="utf-8")

    source = JsonlTransactionSource([str(existing), str(tmp_path / "gone.jsonl")])

    assert [tx.source_key for tx in source.load("acc")] == ["k1"]


def test_invalid_line_reports_location(tmp_path):
    path = tmp_path / "bad.jsonl"
    path.write_text(_line("k1") + "\n{not json\n", encoding="utf-8")

    with pytest.raises(ValidationError) as exc_info:
        JsonlTransactionSource([str(path)]).load("acc")

    assert "bad.jsonl:2" in str(exc_info.value)
    assert exc_info.value.field == "source"


def test_non_object_line_rejected(tmp_path):
    path = tmp_path / "list.jsonl"
    path.write_text("[1, 2]\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        JsonlTransactionSource([str(path)]).load("acc")
