import sys

from loguru import logger

# wątki runtime: price-tick / bot-tick / MainThread
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {thread.name:<10} | {message}"
CONSOLE_FORMAT = "{time:HH:mm:ss} | {level:<8} | {thread.name:<10} | {message}"


def setup_logging(level: str = "INFO", log_file: str | None = "logs/runtime.log"):
    """Jedyne miejsce konfigurujące sinki; biblioteka tylko loguje."""
    logger.remove()
    if log_file:
        logger.add(
            log_file,
            rotation="10 MB",
            retention="10 days",
            enqueue=True,
            backtrace=True,
            diagnose=False,
            level=level,
            format=FILE_FORMAT,
        )
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    return logger
