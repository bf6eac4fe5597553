"""Logging for the Birthday Reminder Bot.

Everything goes to a dated file under LOG_DIR; the console only gets output
when attached to a terminal. APScheduler and discord.py log through the same
handlers at WARNING so missed or failed jobs show up next to our own lines.
"""

import logging
import sys
from datetime import datetime

from config import LOG_DIR, LOG_LEVEL

LIBRARY_LOGGERS = ("apscheduler", "discord")


def setup_logging() -> logging.Logger:
    logger = logging.getLogger("birthday_bot")
    level = logging.getLevelName(LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    logger.handlers.clear()

    handlers = []

    log_file = LOG_DIR / f"birthdays-{datetime.now().strftime('%Y-%m-%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    handlers.append(file_handler)

    if sys.stdout is not None and sys.stdout.isatty():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s",
            datefmt="%H:%M:%S"
        ))
        handlers.append(console_handler)

    for handler in handlers:
        logger.addHandler(handler)

    for name in LIBRARY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.setLevel(logging.WARNING)
        library_logger.handlers.clear()
        for handler in handlers:
            library_logger.addHandler(handler)

    return logger


# Global logger instance
logger = setup_logging()
