# mlm_system/utils/binary_log.py
"""
File side-channel for binary volume/matching activity.

Lines go to <LOG_DIR>/binary-matching.log and propagate to the root logger,
so console output is kept.
"""
import logging
import os
from logging.handlers import RotatingFileHandler

BINARY_LOGGER_NAME = "finaster.binary"
BINARY_LOG_FILE = "binary-matching.log"

_handler_installed = False


def get_binary_logger(log_dir: str = None) -> logging.Logger:
    """Set up the binary logger with file rotation (once per process)."""
    global _handler_installed

    binary_logger = logging.getLogger(BINARY_LOGGER_NAME)

    if _handler_installed:
        return binary_logger

    if log_dir is None:
        from config import Config
        log_dir = Config.get(Config.LOG_DIR, "logs")

    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, BINARY_LOG_FILE),
            maxBytes=1024 * 1024,
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)s %(message)s"
        ))
        file_handler.setLevel(logging.INFO)
        binary_logger.addHandler(file_handler)
        binary_logger.setLevel(logging.INFO)
    except OSError as e:
        logging.getLogger(__name__).error(f"Cannot open binary log in {log_dir}: {e}")

    _handler_installed = True
    return binary_logger


def reset_binary_logger():
    """Detach file handlers (tests, log directory change)."""
    global _handler_installed
    binary_logger = logging.getLogger(BINARY_LOGGER_NAME)
    for handler in list(binary_logger.handlers):
        binary_logger.removeHandler(handler)
        handler.close()
    _handler_installed = False
