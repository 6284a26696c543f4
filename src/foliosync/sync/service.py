"""
周期同步服务

每轮:
1. 并发加载各账户的规范化交易 (无共享状态)
2. 依次对账各账户 (网关调用本身已串行化)

同一账户的上一轮尚未结束时跳过本轮，不重叠执行。
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..core.config import Config
from ..core.exceptions import AuthorizationError, ValidationError
from ..gateway import LedgerGateway
from ..model.transaction import CanonicalTransaction
from .reconciler import LedgerReconciler, SyncReport
from .sources import JsonlTransactionSource, TransactionSource
from .symbols import SymbolResolver

logger = logging.getLogger(__name__)


class SyncService:
    """周期同步服务"""

    def __init__(
        self,
        config: Config,
        gateway: Optional[LedgerGateway] = None,
        sources: Optional[Dict[str, TransactionSource]] = None,
        reconciler: Optional[LedgerReconciler] = None,
    ):
        self.config = config
        self.gateway = gateway or LedgerGateway.from_config(config.ledger)
        self.sources: Dict[str, TransactionSource] = sources or {
            name: JsonlTransactionSource(account.sources)
            for name, account in config.accounts.items()
        }
        self.symbol_resolver = SymbolResolver(self.gateway)
        self.reconciler = reconciler or LedgerReconciler(
            self.gateway,
            self.symbol_resolver,
            dry_run=config.sync.dry_run,
        )

        self._locks: Dict[str, asyncio.Lock] = {}
        self._running = False

    async def start(self) -> None:
        await self.gateway.start()
        logger.info(f"Sync service started for {len(self.config.accounts)} account(s)")

    async def stop(self) -> None:
        self._running = False
        await self.gateway.close()
        logger.info("Sync service stopped")

    async def run_once(self, accounts: Optional[List[str]] = None) -> List[SyncReport]:
        """
        执行一轮同步

        AuthorizationError 中止整轮 (其余账户不再尝试)。
        """
        names = accounts or list(self.config.accounts)
        self.symbol_resolver.clear()

        loaded = await asyncio.gather(*(self._load(name) for name in names))

        reports: List[SyncReport] = []
        for name, transactions in zip(names, loaded):
            if transactions is None:
                continue
            report = await self.sync_account(name, transactions)
            if report is not None:
                reports.append(report)

        return reports

    async def sync_account(
        self,
        name: str,
        transactions: List[CanonicalTransaction],
    ) -> Optional[SyncReport]:
        """对账单个账户，上一轮未结束时返回 None"""
        account = self.config.accounts[name]
        lock = self._locks.setdefault(name, asyncio.Lock())

        if lock.locked():
            logger.warning(f"[{account.account_id}] Previous pass still running, skipping")
            return None

        async with lock:
            try:
                return await self.reconciler.reconcile(account.account_id, transactions)
            except AuthorizationError as e:
                logger.critical(f"[{account.account_id}] Authorization failed, aborting pass: {e}")
                raise

    async def _load(self, name: str) -> Optional[List[CanonicalTransaction]]:
        account = self.config.accounts.get(name)
        source = self.sources.get(name)
        if account is None or source is None:
            logger.error(f"Unknown account: {name}")
            return None

        try:
            return await asyncio.to_thread(source.load, account.account_id)
        except (OSError, ValidationError) as e:
            logger.error(f"[{account.account_id}] Failed to load transactions: {e}")
            return None

    async def run_forever(self) -> None:
        """按 sync.interval_minutes 循环执行"""
        self._running = True
        interval = max(1.0, self.config.sync.interval_minutes * 60)

        while self._running:
            try:
                reports = await self.run_once()
                for report in reports:
                    if report.has_errors:
                        logger.warning(f"Pass finished with errors: {report.summary()}")
            except asyncio.CancelledError:
                break
            except AuthorizationError as e:
                logger.critical(f"Sync cycle aborted: {e}")
            except Exception as e:
                logger.error(f"Sync cycle error: {e}", exc_info=True)

            await asyncio.sleep(interval)
