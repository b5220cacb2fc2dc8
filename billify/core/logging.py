
import sys
from loguru import logger
from .config import settings


def setup_logging(level: str | None = None):
    """
    Configure the process-wide loguru logger.

    Replaces loguru's default sink with a single stderr sink. LOG_FORMAT=json
    serializes every record (message plus bound keyword context) for log
    collectors; anything else keeps the human-readable format.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        serialize=settings.log_format.lower() == "json",
        backtrace=False,
        diagnose=False,
    )
    return logger
