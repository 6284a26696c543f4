"""
账本对账器

职责:
1. 拉取远端账户当前活动快照
2. 本地规范化交易投影为远端活动 (标的解析)，再按远端标的处理时间戳碰撞
3. 与远端快照按 source_key 对比
4. 计算最小变更集 (create / update / delete) 并通过网关应用

执行顺序固定为 create -> update -> delete，
避免某个标的在中间状态下没有任何活动。
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Collection, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import quote

from ..core.exceptions import (
    AuthorizationError,
    RequestError,
    TransientError,
    UnsupportedTransactionError,
    ValidationError,
)
from ..metrics import PassTimer, record_operation
from ..model.activity import ActivityDraft, RemoteActivity
from ..model.transaction import CanonicalTransaction
from .collision import resolve_collisions
from .mapping import ActivityMapper

logger = logging.getLogger(__name__)


class OperationType(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Outcome(Enum):
    APPLIED = "applied"
    DEFERRED = "deferred"  # 熔断/重试耗尽，下一轮重新评估
    FAILED = "failed"      # 远端拒绝或无法映射，需要人工处理
    PLANNED = "planned"    # dry-run


@dataclass
class SyncOperation:
    """单个远端变更"""
    op_type: OperationType
    source_key: str
    draft: Optional[ActivityDraft] = None
    remote: Optional[RemoteActivity] = None

    @property
    def remote_id(self) -> Optional[str]:
        return self.remote.remote_id if self.remote else None

    def describe(self) -> str:
        target = f" -> {self.remote_id}" if self.remote_id else ""
        return f"{self.op_type.value} {self.source_key}{target}"


@dataclass
class SyncPlan:
    """变更计划"""
    creates: List[SyncOperation] = field(default_factory=list)
    updates: List[SyncOperation] = field(default_factory=list)
    deletes: List[SyncOperation] = field(default_factory=list)

    @property
    def operations(self) -> List[SyncOperation]:
        """按 create -> update -> delete 排序"""
        return self.creates + self.updates + self.deletes

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)

    def __len__(self) -> int:
        return len(self.creates) + len(self.updates) + len(self.deletes)


@dataclass
class OperationResult:
    operation: SyncOperation
    outcome: Outcome
    error: str = ""
    status: Optional[int] = None


@dataclass
class TransactionFailure:
    """无法参与对账的本地交易"""
    source_key: str
    kind: str
    reason: str
    outcome: Outcome = Outcome.FAILED


@dataclass
class SyncReport:
    """一次对账的结果"""
    account_id: str
    plan: SyncPlan = field(default_factory=SyncPlan)
    results: List[OperationResult] = field(default_factory=list)
    failures: List[TransactionFailure] = field(default_factory=list)
    deferred: bool = False
    error: str = ""

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def applied(self) -> int:
        return self.count(Outcome.APPLIED)

    @property
    def has_errors(self) -> bool:
        if self.error:
            return True
        return any(r.outcome == Outcome.FAILED for r in self.results) or any(
            f.outcome == Outcome.FAILED for f in self.failures
        )

    def summary(self) -> str:
        if self.error:
            return f"[{self.account_id}] pass failed, remote snapshot rejected: {self.error}"
        if self.deferred:
            return f"[{self.account_id}] pass deferred, remote snapshot unavailable"
        return (
            f"[{self.account_id}] plan: {len(self.plan.creates)} create, "
            f"{len(self.plan.updates)} update, {len(self.plan.deletes)} delete | "
            f"applied={self.count(Outcome.APPLIED)} deferred={self.count(Outcome.DEFERRED)} "
            f"failed={self.count(Outcome.FAILED)} planned={self.count(Outcome.PLANNED)} | "
            f"rejected inputs={len(self.failures)}"
        )


def compute_plan(
    drafts: Iterable[ActivityDraft],
    remote: Iterable[RemoteActivity],
    protected_keys: Collection[str] = (),
) -> SyncPlan:
    """
    计算最小变更集

    - 本地有、远端无: create
    - 双方都有但语义字段不同: update (目标为远端 ID)
    - 远端有、本地无 (且不在 protected_keys 中): delete
    - 完全一致: 跳过

    没有 source_key 的远端活动不受管理，永不删除；
    同一 source_key 的重复远端活动只保留第一条，其余删除。
    """
    plan = SyncPlan()
    remote_by_key: Dict[str, RemoteActivity] = {}

    for activity in remote:
        if not activity.source_key:
            continue
        if activity.source_key in remote_by_key:
            logger.warning(
                f"Duplicate remote activity {activity.remote_id} for {activity.source_key}, removing"
            )
            plan.deletes.append(SyncOperation(OperationType.DELETE, activity.source_key, remote=activity))
            continue
        remote_by_key[activity.source_key] = activity

    local_keys: Set[str] = set()
    for draft in drafts:
        local_keys.add(draft.source_key)
        existing = remote_by_key.get(draft.source_key)

        if existing is None:
            plan.creates.append(SyncOperation(OperationType.CREATE, draft.source_key, draft=draft))
        elif existing.semantic_fields() != draft.semantic_fields():
            plan.updates.append(
                SyncOperation(OperationType.UPDATE, draft.source_key, draft=draft, remote=existing)
            )

    for key, activity in remote_by_key.items():
        if key not in local_keys and key not in protected_keys:
            plan.deletes.append(SyncOperation(OperationType.DELETE, key, remote=activity))

    return plan


class LedgerReconciler:
    """
    账本对账器

    一次 reconcile() 即一个账户的一轮同步。单个操作失败不影响其余操作，
    AuthorizationError 会中止整轮同步。
    """

    ORDER_PATH = "api/v1/order"

    def __init__(
        self,
        gateway,
        symbol_resolver,
        mapper: Optional[ActivityMapper] = None,
        dry_run: bool = False,
    ):
        self.gateway = gateway
        self.symbol_resolver = symbol_resolver
        self.mapper = mapper or ActivityMapper()
        self.dry_run = dry_run

    async def reconcile(
        self,
        account_id: str,
        transactions: Iterable[CanonicalTransaction],
    ) -> SyncReport:
        """执行一轮对账"""
        with PassTimer(account_id):
            return await self._reconcile(account_id, transactions)

    async def _reconcile(
        self,
        account_id: str,
        transactions: Iterable[CanonicalTransaction],
    ) -> SyncReport:
        report = SyncReport(account_id=account_id)

        try:
            snapshot = await self.fetch_remote(account_id)
        except RequestError as e:
            logger.error(f"[{account_id}] Remote snapshot rejected [{e.status}]: {e}")
            report.error = str(e)
            return report

        if snapshot is None:
            report.deferred = True
            logger.warning(report.summary())
            return report

        remote, locked_keys = snapshot

        drafts, protected = await self._project(account_id, list(transactions), locked_keys, report)
        # 按解析后的远端标的处理碰撞
        drafts = resolve_collisions(drafts)

        report.plan = compute_plan(drafts, remote, protected | locked_keys)

        for op in report.plan.operations:
            if self.dry_run:
                report.results.append(OperationResult(op, Outcome.PLANNED))
                continue
            result = await self._apply(account_id, op)
            report.results.append(result)
            record_operation(account_id, op.op_type.value, result.outcome.value)

        logger.info(report.summary())
        return report

    async def fetch_remote(
        self,
        account_id: str,
    ) -> Optional[Tuple[List[RemoteActivity], Set[str]]]:
        """
        拉取远端快照

        Returns:
            (活动列表, 无法解析的远端记录的 source_key 集合)；快照不可用时返回 None
        """
        try:
            payload = await self.gateway.fetch(f"{self.ORDER_PATH}?accounts={quote(account_id)}")
        except TransientError as e:
            logger.warning(f"[{account_id}] Remote snapshot unavailable: {e}")
            return None

        if payload is None:
            return None

        if isinstance(payload, dict):
            records = payload.get("activities") or []
        elif isinstance(payload, list):
            records = payload
        else:
            records = []

        activities: List[RemoteActivity] = []
        locked: Set[str] = set()

        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                activity = self.mapper.from_payload(record)
            except ValidationError as e:
                comment = str(record.get("comment") or "").strip()
                if comment:
                    locked.add(comment)
                logger.error(
                    f"[{account_id}] Unreadable remote activity {record.get('id')} "
                    f"({comment or 'unmanaged'}): {e}"
                )
                continue
            if activity.account_id and activity.account_id != account_id:
                continue
            activities.append(activity)

        logger.debug(f"[{account_id}] Remote snapshot: {len(activities)} activities")
        return activities, locked

    async def _project(
        self,
        account_id: str,
        transactions: List[CanonicalTransaction],
        locked_keys: Set[str],
        report: SyncReport,
    ) -> Tuple[List[ActivityDraft], Set[str]]:
        """
        本地交易 -> 远端投影

        无法投影的交易记入 report.failures，其 source_key 受保护 (不会触发删除)。
        """
        drafts: List[ActivityDraft] = []
        protected: Set[str] = set()
        seen: Set[str] = set()

        def reject(tx: CanonicalTransaction, reason: str, outcome: Outcome) -> None:
            report.failures.append(TransactionFailure(tx.source_key, tx.kind.value, reason, outcome))
            protected.add(tx.source_key)

        for tx in transactions:
            if tx.source_key in seen:
                logger.error(f"[{account_id}] Duplicate source key {tx.source_key} ({tx.kind.value}), skipped")
                report.failures.append(
                    TransactionFailure(tx.source_key, tx.kind.value, "duplicate source key")
                )
                continue
            seen.add(tx.source_key)

            if tx.account_id != account_id:
                logger.error(
                    f"[{account_id}] Transaction {tx.source_key} belongs to account {tx.account_id}, skipped"
                )
                reject(tx, f"belongs to account {tx.account_id}", Outcome.FAILED)
                continue

            if tx.source_key in locked_keys:
                reject(tx, "remote activity unreadable", Outcome.FAILED)
                continue

            try:
                self.mapper.activity_type(tx)
                instrument = None
                if tx.has_instrument:
                    instrument = await self.symbol_resolver.resolve(tx.instrument)
                drafts.append(self.mapper.to_draft(tx, instrument))
            except UnsupportedTransactionError as e:
                logger.error(f"[{account_id}] Unsupported transaction {tx.source_key} ({tx.kind.value}): {e}")
                reject(tx, str(e), Outcome.FAILED)
            except RequestError as e:
                logger.error(
                    f"[{account_id}] Symbol lookup rejected for {tx.source_key} [{e.status}]: {e}"
                )
                reject(tx, str(e), Outcome.FAILED)
            except TransientError as e:
                logger.warning(f"[{account_id}] Symbol lookup deferred for {tx.source_key}: {e}")
                reject(tx, str(e), Outcome.DEFERRED)

        return drafts, protected

    async def _apply(self, account_id: str, op: SyncOperation) -> OperationResult:
        """应用单个操作；仅 AuthorizationError 向上传播"""
        try:
            if op.op_type == OperationType.CREATE:
                response = await self.gateway.create(self.ORDER_PATH, self.mapper.to_payload(op.draft))
            elif op.op_type == OperationType.UPDATE:
                body = self.mapper.to_payload(op.draft)
                body["id"] = op.remote_id
                response = await self.gateway.update(f"{self.ORDER_PATH}/{op.remote_id}", body)
            else:
                response = await self.gateway.delete(f"{self.ORDER_PATH}/{op.remote_id}")
        except AuthorizationError as e:
            logger.critical(f"[{account_id}] {op.describe()} not authorized [{e.status}], aborting pass")
            raise
        except TransientError as e:
            logger.warning(
                f"[{account_id}] {op.describe()} deferred after {e.attempts} attempt(s) [{e.status}]"
            )
            return OperationResult(op, Outcome.DEFERRED, str(e), e.status)
        except RequestError as e:
            logger.error(f"[{account_id}] {op.describe()} rejected [{e.status}]: {e}")
            return OperationResult(op, Outcome.FAILED, str(e), e.status)

        if response is None:
            logger.warning(f"[{account_id}] {op.describe()} deferred (circuit open)")
            return OperationResult(op, Outcome.DEFERRED, "circuit open")

        logger.info(f"[{account_id}] {op.describe()} applied")
        return OperationResult(op, Outcome.APPLIED, status=getattr(response, "status", None))
