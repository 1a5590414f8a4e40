import sys

from loguru import logger


LOG_FORMAT = " | ".join(
    (
        "<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>",
        "<lvl>{level:<8}</>",
        "<c>{name}:{function}:{line}</>",
        "{message}",
    )
)


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with the service format."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())
