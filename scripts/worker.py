#!/usr/bin/env python3
"""Queue worker process: runs the worker pool and the job scheduler"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

from applyflow.core.config import settings
from applyflow.core.database import engine
from applyflow.core.logging import setup_logging, get_logger
from applyflow.services.bootstrap import QueueSystem, build_queue_system

logger = get_logger(__name__)

HEALTH_LOG_INTERVAL_SECONDS = 60


class WorkerManager:
    """Owns one queue system for the lifetime of the process"""

    def __init__(self, queue_system: QueueSystem, with_scheduler: bool = True):
        self.queue_system = queue_system
        self.with_scheduler = with_scheduler
        self.shutdown_event = asyncio.Event()
        self._health_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Run until SIGINT or SIGTERM, then drain and stop"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler, sig)

        try:
            await self.queue_system.start(with_scheduler=self.with_scheduler)
            self._health_task = asyncio.create_task(self._log_health(), name="worker_health")
            logger.info("Worker started")

            await self.shutdown_event.wait()
        finally:
            if self._health_task is not None:
                self._health_task.cancel()
                await asyncio.gather(self._health_task, return_exceptions=True)

            # Stops the scheduler, then drains the pool
            await self.queue_system.stop()
            logger.info("Worker stopped")

    async def _log_health(self) -> None:
        while True:
            await asyncio.sleep(HEALTH_LOG_INTERVAL_SECONDS)
            health = await self.queue_system.queue_manager.health_check()
            metrics = health["metrics"]
            log = logger.info if health["healthy"] else logger.warning
            log(
                f"Queue health: {'healthy' if health['healthy'] else 'UNHEALTHY'} "
                f"(pending {metrics['pending']}, processing {metrics['processing']}, "
                f"failed {metrics['failed']}, workers {metrics['workers']})"
            )

    def _signal_handler(self, signum) -> None:
        logger.info(f"Received signal {signum.name}, initiating shutdown")
        self.shutdown_event.set()


async def main() -> None:
    parser = argparse.ArgumentParser(description="ApplyFlow queue worker")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.QUEUE_MAX_CONCURRENCY,
        help=f"Maximum jobs in flight (default: {settings.QUEUE_MAX_CONCURRENCY})"
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=settings.QUEUE_POLL_INTERVAL_SECONDS,
        help=f"Seconds between polls (default: {settings.QUEUE_POLL_INTERVAL_SECONDS})"
    )
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Only consume jobs; do not run recurring schedules"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL,
        help=f"Log level (default: {settings.LOG_LEVEL})"
    )
    args = parser.parse_args()

    setup_logging(args.log_level)

    logger.info(f"Starting {settings.APP_NAME} worker")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Concurrency: {args.concurrency}, poll interval: {args.poll_interval}s")

    queue_system = build_queue_system(max_concurrency=args.concurrency, poll_interval=args.poll_interval)
    manager = WorkerManager(queue_system, with_scheduler=not args.no_scheduler)

    try:
        await manager.start()
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
