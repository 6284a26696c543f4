"""
FolioSync CLI 入口

用法:
    foliosync sync              # 按配置周期同步所有账户
    foliosync sync --once       # 执行一轮后退出
    foliosync sync --dry-run    # 只计算变更，不写远端
    foliosync plan ACCOUNT      # 打印单个账户的变更计划
"""

import argparse
import asyncio
import logging
import sys

from .core.config import Config, load_config
from .core.exceptions import AuthorizationError


def setup_logging(config: Config, debug: bool = False):
    level = logging.DEBUG if debug else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=config.log_format
    )


async def cmd_sync(args, config: Config) -> int:
    """周期同步"""
    from .metrics import start_metrics_server
    from .sync import SyncService

    if args.dry_run:
        config.sync.dry_run = True

    service = SyncService(config)
    await service.start()

    metrics_runner = None
    if config.metrics.enabled and not args.once:
        metrics_runner = await start_metrics_server(config.metrics.host, config.metrics.port)

    try:
        if args.once:
            reports = await service.run_once()
            for report in reports:
                print(report.summary())
            return 1 if any(r.has_errors for r in reports) else 0

        print(f"Syncing every {config.sync.interval_minutes:g} minutes... (Ctrl+C to stop)")
        await service.run_forever()
        return 0
    except AuthorizationError as e:
        print(f"Not authorized: {e}", file=sys.stderr)
        return 2
    finally:
        if metrics_runner:
            await metrics_runner.cleanup()
        await service.stop()


async def cmd_plan(args, config: Config) -> int:
    """打印变更计划 (dry-run)"""
    from .sync import SyncService

    account = config.get_account(args.account)
    if account is None:
        print(f"Unknown account: {args.account}", file=sys.stderr)
        return 2

    config.sync.dry_run = True
    service = SyncService(config)
    await service.start()

    try:
        reports = await service.run_once([account.name])
    except AuthorizationError as e:
        print(f"Not authorized: {e}", file=sys.stderr)
        return 2
    finally:
        await service.stop()

    for report in reports:
        print(report.summary())
        for op in report.plan.operations:
            print(f"  {op.describe()}")
        for failure in report.failures:
            print(f"  ! {failure.source_key} ({failure.kind}): {failure.reason}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="foliosync",
        description="FolioSync ledger synchronizer CLI"
    )
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    parser.add_argument("-c", "--config", help="Config file (default: config/default.yaml)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Synchronize all accounts")
    sync_parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    sync_parser.add_argument("--dry-run", action="store_true", help="Compute changes without applying them")

    # plan command
    plan_parser = subparsers.add_parser("plan", help="Show pending changes for an account")
    plan_parser.add_argument("account", help="Account name or remote account id")

    args = parser.parse_args()
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(e, file=sys.stderr)
        sys.exit(2)
    setup_logging(config, args.debug)

    if args.command == "sync":
        sys.exit(asyncio.run(cmd_sync(args, config)))
    elif args.command == "plan":
        sys.exit(asyncio.run(cmd_plan(args, config)))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
