# finaster/core/system_services.py
"""
System services management for the Finaster ledger service.
Handles service lifecycle and graceful shutdown.
"""
import asyncio
import logging
import signal
from typing import Optional

from config import Config

logger = logging.getLogger(__name__)


class ServiceManager:
    """
    Manager for the scheduler and the HTTP API.
    Handles service lifecycle and graceful shutdown.
    """

    def __init__(self):
        self.mlm_scheduler: Optional['MLMScheduler'] = None
        self.api_server: Optional['LedgerApiServer'] = None

        self._shutdown_event = asyncio.Event()

    async def start_services(self) -> None:
        """
        Start all services.

        Services to start:
        - MLM scheduler (binary matching, booster expiry)
        - Ledger HTTP API
        """
        logger.info("=" * 60)
        logger.info("STARTING SERVICES")
        logger.info("=" * 60)

        # ═══════════════════════════════════════════════════════════════
        # SERVICE 1: MLM Scheduler
        # ═══════════════════════════════════════════════════════════════
        from background.mlm_scheduler import MLMScheduler

        self.mlm_scheduler = MLMScheduler()
        await self.mlm_scheduler.start()
        logger.info("✓ MLM Scheduler started (APScheduler)")

        # ═══════════════════════════════════════════════════════════════
        # SERVICE 2: Ledger API
        # ═══════════════════════════════════════════════════════════════
        from api.ledger_api import LedgerApiServer

        self.api_server = LedgerApiServer()
        await self.api_server.start(
            host=Config.get(Config.API_HOST, '127.0.0.1'),
            port=int(Config.get(Config.API_PORT, 8080))
        )
        logger.info("✓ Ledger API started")

        logger.info("=" * 60)
        logger.info("✅ ALL SERVICES STARTED")
        logger.info("=" * 60)

    async def stop_services(self) -> None:
        """Stop all services gracefully."""
        logger.info("=" * 60)
        logger.info("STOPPING SERVICES")
        logger.info("=" * 60)

        if self.api_server:
            logger.info("Stopping ledger API...")
            await self.api_server.stop()

        if self.mlm_scheduler:
            logger.info("Stopping MLM scheduler...")
            await self.mlm_scheduler.stop()

        logger.info("=" * 60)
        logger.info("✅ ALL SERVICES STOPPED")
        logger.info("=" * 60)

    def signal_shutdown(self) -> None:
        """Signal that shutdown has been requested."""
        self._shutdown_event.set()

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal."""
        await self._shutdown_event.wait()


# ═══════════════════════════════════════════════════════════════════════════
# GRACEFUL SHUTDOWN
# ═══════════════════════════════════════════════════════════════════════════

def setup_signal_handlers(loop: asyncio.AbstractEventLoop, service_manager: ServiceManager) -> None:
    """
    Setup signal handlers for graceful shutdown.

    Args:
        loop: Event loop
        service_manager: Manager to notify
    """
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(
                sig,
                lambda s=sig: _on_signal(s, service_manager)
            )
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.warning(f"Signal handler for {sig} not available on this platform")


def _on_signal(signal_type: signal.Signals, service_manager: ServiceManager) -> None:
    logger.info(f"Received exit signal {signal_type.name}...")
    service_manager.signal_shutdown()


# ═══════════════════════════════════════════════════════════════════════════
# EXPORT
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    'ServiceManager',
    'setup_signal_handlers',
]
