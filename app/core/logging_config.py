"""
Logging configuration
"""
import logging
import sys
from app.core.config import get_settings

HANDLER_NAME = "youtube-extractor-console"

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "openai",
    "apscheduler",
    "PIL",
    "sse_starlette",
)


def setup_logging():
    """
    Configure application logging.

    Safe to call more than once (reload, tests): the console handler is
    only attached the first time.
    """
    settings = get_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    if not any(handler.get_name() == HANDLER_NAME for handler in root_logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.set_name(HANDLER_NAME)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
