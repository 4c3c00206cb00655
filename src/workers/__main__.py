"""
Standalone outbox dispatch worker.

    python -m src.workers

Web notifications are relayed through Redis to the API processes holding
the hub connections; without REDIS_URL the web channel is disabled.
"""

import asyncio
import signal
import sys
from typing import Optional

from src.notifications.bootstrap import build_dispatch_worker
from src.notifications.domain.protocols import GroupTransport
from src.notifications.infrastructure.redis_group_transport import RedisGroupTransport
from src.shared.config import get_settings
from src.shared.database import dispose_engine, get_session_factory
from src.shared.logging import get_logger, setup_logging
from src.shared.redis import close_redis, get_redis

logger = get_logger(__name__)


async def run_worker() -> None:
    settings = get_settings()
    setup_logging(settings)

    transport: Optional[GroupTransport] = None
    if settings.web.enabled and settings.redis_url:
        transport = RedisGroupTransport(get_redis(settings), settings.web.redis_channel_prefix)

    worker = build_dispatch_worker(settings, get_session_factory(settings), transport)

    # Graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # Windows
            pass

    try:
        await worker.run()
    finally:
        await close_redis()
        await dispose_engine()


def main() -> None:
    """Main CLI entry point."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Shutting down worker")
    except Exception as e:
        logger.error("Worker failed to start", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
