"""
Logging setup for the arena audit trail.

Rejections and promotions must be explainable from the logs alone, so every
cycle writes to a daily file next to the console output.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'


def setup_logging(log_dir: Optional[str] = "logs", level: int = logging.INFO) -> logging.Logger:
    """Attach console and daily file handlers to the package logger"""
    logger = logging.getLogger("strategy_arena")
    logger.setLevel(logging.DEBUG)

    # Idempotent: reconfiguring replaces our handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(
            f"{log_dir}/arena_{datetime.now().strftime('%Y%m%d')}.log"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger
