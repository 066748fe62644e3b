"""Logging configuration for the reminder bot.

Bot messages go to a dated file under LOG_DIR (and the console when run in a
terminal). APScheduler and discord.py share the same handlers at WARNING so
missed sweeps and gateway problems land in the same file.
"""

import logging
import sys
from datetime import datetime

from config import LOG_DIR, LOG_LEVEL

LIBRARY_LOGGERS = ("apscheduler", "discord")


def _handlers(level: int) -> list[logging.Handler]:
    handlers = []

    log_file = LOG_DIR / f"reminders-{datetime.now().strftime('%Y-%m-%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    handlers.append(file_handler)

    # Console only when attached to a terminal
    if sys.stdout is not None and sys.stdout.isatty():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s",
            datefmt="%H:%M:%S"
        ))
        handlers.append(console_handler)

    return handlers


def setup_logging(level: str = None) -> logging.Logger:
    """Configure the bot logger and attach library loggers to it.

    Args:
        level: Level name for bot messages, defaults to LOG_LEVEL
    """
    bot_level = logging.getLevelName((level or LOG_LEVEL).upper())
    if not isinstance(bot_level, int):
        bot_level = logging.INFO

    handlers = _handlers(logging.DEBUG)

    logger = logging.getLogger("reminder_bot")
    logger.setLevel(bot_level)
    logger.handlers.clear()
    for handler in handlers:
        logger.addHandler(handler)

    for name in LIBRARY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.setLevel(logging.WARNING)
        library_logger.handlers.clear()
        for handler in handlers:
            library_logger.addHandler(handler)
        library_logger.propagate = False

    return logger


# Global logger instance
logger = setup_logging()
