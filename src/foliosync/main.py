"""
FolioSync 主入口 (容器默认运行形态)

配置来源: config/default.yaml + 环境变量 (GHOSTFOLIO_URL, GHOSTFOLIO_ACCESTOKEN)。
"""

import asyncio
import logging

from .core.config import load_config
from .metrics import start_metrics_server
from .sync import SyncService

logger = logging.getLogger(__name__)


async def main() -> None:
    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format
    )

    service = SyncService(config)
    await service.start()

    runner = None
    if config.metrics.enabled:
        runner = await start_metrics_server(config.metrics.host, config.metrics.port)

    try:
        await service.run_forever()
    except KeyboardInterrupt:
        pass
    finally:
        if runner:
            await runner.cleanup()
        await service.stop()


if __name__ == "__main__":
    asyncio.run(main())
