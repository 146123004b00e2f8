# mlm_system/events/setup.py
"""
Setup MLM event handlers.
Register all event handlers with the event bus.
"""
import logging

from mlm_system.events.event_bus import eventBus, MLMEvents
from mlm_system.events.handlers import handle_investment_activated, handle_referral_created

logger = logging.getLogger(__name__)


def setup_mlm_event_handlers():
    """
    Register all MLM event handlers with the event bus.

    Called once during service start-up.
    """
    logger.info("Setting up MLM event handlers...")

    eventBus.subscribe(MLMEvents.INVESTMENT_ACTIVATED, handle_investment_activated)
    logger.debug(f"Registered handler for {MLMEvents.INVESTMENT_ACTIVATED}")

    eventBus.subscribe(MLMEvents.REFERRAL_CREATED, handle_referral_created)
    logger.debug(f"Registered handler for {MLMEvents.REFERRAL_CREATED}")

    logger.info("MLM event handlers registered successfully")


def teardown_mlm_event_handlers():
    """
    Unregister all MLM event handlers.
    Useful for testing or shutdown.
    """
    logger.info("Tearing down MLM event handlers...")

    eventBus.unsubscribe(MLMEvents.INVESTMENT_ACTIVATED, handle_investment_activated)
    eventBus.unsubscribe(MLMEvents.REFERRAL_CREATED, handle_referral_created)

    logger.info("MLM event handlers unregistered")
