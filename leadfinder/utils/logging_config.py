import sys
from pathlib import Path

from loguru import logger

from leadfinder.utils.logging_utils import add_optional_sinks, env_log_level


def configure_logger(log_file: str = "leadfinder.log", level: str | None = None):
    """
    Configure loguru for LeadFinder (stderr + rotating file under logs/).
    """
    level = level or env_log_level()
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    # Drop the default handler so lines are not printed twice
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
    )

    logger.add(
        log_dir / log_file,
        rotation="10 MB",
        retention="10 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {extra} - {message}",
        backtrace=True,
        diagnose=True,
    )

    add_optional_sinks()


_configured = False


def setup_default_logging():
    global _configured
    if not _configured:
        configure_logger()
        _configured = True
