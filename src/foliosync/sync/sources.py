"""
本地交易来源

解析器 (外部组件) 将券商导出文件转换为规范化交易并写出 JSON lines，
这里负责读取。每行一个 JSON 对象，空行和 # 开头的行忽略。
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Protocol

from ..core.exceptions import ValidationError
from ..model.transaction import CanonicalTransaction

logger = logging.getLogger(__name__)


class TransactionSource(Protocol):
    """规范化交易来源"""

    def load(self, account_id: str) -> List[CanonicalTransaction]:
        ...


class JsonlTransactionSource:
    """
    JSON lines 交易来源

    paths 可以是文件或目录 (目录下的 *.jsonl 按文件名排序读取)。
    文件不存在时跳过: 源文件被删除后，下一轮对账会删除对应的远端活动。
    """

    def __init__(self, paths: Iterable[str]):
        self.paths = [Path(p) for p in paths]

    def files(self) -> List[Path]:
        result: List[Path] = []
        for path in self.paths:
            if path.is_dir():
                result.extend(sorted(path.glob("*.jsonl")))
            elif path.exists():
                result.append(path)
            else:
                logger.warning(f"Transaction source not found: {path}")
        return result

    def load(self, account_id: str) -> List[CanonicalTransaction]:
        transactions: List[CanonicalTransaction] = []
        for path in self.files():
            transactions.extend(self._read(path, account_id))
        logger.debug(f"[{account_id}] Loaded {len(transactions)} transactions from {len(self.paths)} source(s)")
        return transactions

    @staticmethod
    def _read(path: Path, account_id: str) -> List[CanonicalTransaction]:
        result: List[CanonicalTransaction] = []
        with path.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                try:
                    data = json.loads(line)
                    if not isinstance(data, dict):
                        raise ValidationError("Expected a JSON object")
                    result.append(CanonicalTransaction.from_dict(data, account_id=account_id))
                except (json.JSONDecodeError, ValidationError) as e:
                    raise ValidationError(f"{path}:{line_no}: {e}", field="source") from e
        return result
