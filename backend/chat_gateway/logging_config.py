"""Gateway log sinks.

All gateway modules log through loguru. setup_logging() installs two sinks:
a colored stderr stream for operators and `chat-gateway.log` on disk.
Libraries that log through the standard logging module (uvicorn, httpx)
are routed into the same sinks by intercept_standard_logging().

CHAT_GATEWAY_LOG_LEVEL sets the threshold for both sinks (default INFO) and
CHAT_GATEWAY_LOG_DIR the directory holding the log file (default logs/).
"""

import logging
import os
import sys
from pathlib import Path

from loguru import logger

LOG_LEVEL = os.environ.get("CHAT_GATEWAY_LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.environ.get("CHAT_GATEWAY_LOG_DIR", "logs"))
LOG_FILE_NAME = "chat-gateway.log"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Request-per-line loggers that would drown out gateway messages
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_logging_configured = False


def setup_logging() -> None:
    """Replace loguru's default sink with the gateway's console and file sinks.

    Only the first call has an effect. The file rotates at 10 MB and old
    files are deleted after 7 days.
    """
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.remove()
    logger.add(sys.stderr, level=LOG_LEVEL, format=CONSOLE_FORMAT, colorize=True)
    logger.add(
        LOG_DIR / LOG_FILE_NAME,
        level=LOG_LEVEL,
        format=FILE_FORMAT,
        rotation="10 MB",
        retention="7 days",
    )


class InterceptHandler(logging.Handler):
    """Standard logging handler that re-emits each record through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        # Attribute the message to the code that called logging, not to logging itself
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_standard_logging() -> None:
    """Install InterceptHandler on the root logger and quiet per-request loggers."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
