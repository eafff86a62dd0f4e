"""
Logging setup
"""

import logging
import logging.handlers
import sys
from pathlib import Path

from storefront.core.config import config


class Logger:
    """Centralized logging"""

    def __init__(self, name: str = "storefront", level: str = "INFO", log_dir: str = "logs"):
        self.logger = logging.getLogger(name)
        self.setup_logging(level, log_dir)

    def setup_logging(self, level: str, log_dir: str):
        """Configure handlers"""
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        self.logger.handlers.clear()
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))

        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / "storefront.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        self.logger.addHandler(file_handler)

        # Errors also go to their own file
        error_handler = logging.handlers.RotatingFileHandler(
            log_path / "errors.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        self.logger.addHandler(error_handler)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, exc_info=None, **kwargs):
        self.logger.error(message, exc_info=exc_info, **kwargs)

    def critical(self, message: str, exc_info=None, **kwargs):
        self.logger.critical(message, exc_info=exc_info, **kwargs)


# Global logger
logger = Logger(level=config.log_level, log_dir=config.log_dir)
