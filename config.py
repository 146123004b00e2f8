# finaster/config.py
"""
Configuration management for the Finaster ledger service.
Loads from .env, validates critical keys.
"""
import hmac
import os
import logging
from decimal import Decimal
from typing import Any, Dict
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class Config:
    """
    Process-wide settings of the ledger service.

    Usage:
        Config.initialize_from_env()
        min_withdrawal = Config.get(Config.MIN_WITHDRAWAL)

        # Tests and the entry point override values at runtime
        Config.set(Config.SYSTEM_READY, True)
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"

    # HTTP API
    ADMIN_API_TOKEN = "ADMIN_API_TOKEN"
    API_HOST = "API_HOST"
    API_PORT = "API_PORT"

    # Logging
    LOG_DIR = "LOG_DIR"

    # Ledger rules
    MIN_WITHDRAWAL = "MIN_WITHDRAWAL"
    MAX_TREE_DEPTH = "MAX_TREE_DEPTH"

    # Scheduler
    BINARY_MATCHING_HOUR = "BINARY_MATCHING_HOUR"

    # System
    SYSTEM_READY = "SYSTEM_READY"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}
    _initialized: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file and environment.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                "sqlite:///finaster.db"
            )

            # HTTP API
            cls._config[cls.ADMIN_API_TOKEN] = os.getenv("ADMIN_API_TOKEN")
            cls._config[cls.API_HOST] = os.getenv("API_HOST", "127.0.0.1")
            cls._config[cls.API_PORT] = int(os.getenv("API_PORT", "8080"))

            # Logging
            cls._config[cls.LOG_DIR] = os.getenv("LOG_DIR", "logs")

            # Ledger rules
            cls._config[cls.MIN_WITHDRAWAL] = Decimal(os.getenv("MIN_WITHDRAWAL", "10"))
            cls._config[cls.MAX_TREE_DEPTH] = int(os.getenv("MAX_TREE_DEPTH", "30"))

            # Scheduler
            cls._config[cls.BINARY_MATCHING_HOUR] = int(os.getenv("BINARY_MATCHING_HOUR", "0"))

            # System
            cls._config[cls.SYSTEM_READY] = False

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @classmethod
    def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if not cls.get(key):
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        if not cls.get(cls.ADMIN_API_TOKEN):
            logger.warning("ADMIN_API_TOKEN is not set, admin routes will reject every request")

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        return cls._config.get(key, default)

    @classmethod
    def set(cls, key: str, value: Any, source: str = "runtime") -> None:
        """Override a value at runtime; source is only logged."""
        cls._config[key] = value
        if key == cls.ADMIN_API_TOKEN:
            value = "***"
        logger.debug(f"Config {key} set by {source}: {value}")

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """Snapshot of the loaded values with the admin token masked."""
        snapshot = cls._config.copy()
        if snapshot.get(cls.ADMIN_API_TOKEN):
            snapshot[cls.ADMIN_API_TOKEN] = "***"
        return snapshot

    @classmethod
    def is_admin_token(cls, token: str) -> bool:
        """
        Check bearer token against ADMIN_API_TOKEN.

        Args:
            token: Token presented by the caller

        Returns:
            True if token matches the configured admin token
        """
        expected = cls.get(cls.ADMIN_API_TOKEN)
        if not expected or not token:
            return False
        return hmac.compare_digest(expected, token)
