# finaster/finaster.py
"""
Finaster ledger service - main entry point.
Binary matching, boosters, level unlocks and withdrawals behind an HTTP API.
"""
import asyncio
import logging
import sys

from config import Config
from core.db import setup_database, dispose_engine
from core.system_services import ServiceManager, setup_signal_handlers
from models.listeners import register_all_listeners

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('finaster.log')
    ]
)

logger = logging.getLogger(__name__)


async def initialize_service() -> ServiceManager:
    """
    Initialize configuration, database and services.

    Returns:
        ServiceManager: Started service manager
    """
    try:
        logger.info("=" * 60)
        logger.info("FINASTER LEDGER INITIALIZATION")
        logger.info("=" * 60)

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 1: Load configuration from .env
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("📋 Loading configuration from .env...")
        Config.initialize_from_env()
        Config.validate_critical_keys()
        logger.info("✓ Configuration loaded")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 2: Setup database and balance listeners
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("💾 Setting up database...")
        setup_database()
        register_all_listeners()
        logger.info("✓ Database ready")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 3: Binary side-channel log
        # ═══════════════════════════════════════════════════════════════════════
        from mlm_system.utils.binary_log import get_binary_logger
        get_binary_logger(Config.get(Config.LOG_DIR))

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 4: Setup MLM event handlers
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("🎲 Setting up MLM event handlers...")
        from mlm_system.events.setup import setup_mlm_event_handlers
        setup_mlm_event_handlers()
        logger.info("✓ MLM event handlers registered")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 5: Start services
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("🚀 Starting services...")
        service_manager = ServiceManager()
        await service_manager.start_services()

        # Mark system as ready
        Config.set(Config.SYSTEM_READY, True)

        logger.info("=" * 60)
        logger.info("✅ INITIALIZATION COMPLETE")
        logger.info("=" * 60)

        return service_manager

    except Exception as e:
        logger.critical(f"❌ Initialization failed: {e}", exc_info=True)
        raise


async def main():
    """Main entry point."""
    service_manager = None
    try:
        service_manager = await initialize_service()

        # Setup signal handlers for graceful shutdown
        loop = asyncio.get_running_loop()
        setup_signal_handlers(loop, service_manager)

        await service_manager.wait_for_shutdown()

    except Exception as e:
        logger.critical(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if service_manager:
            await service_manager.stop_services()
        dispose_engine()
        logger.info("👋 Shutdown complete")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Service stopped")


if __name__ == '__main__':
    run()
