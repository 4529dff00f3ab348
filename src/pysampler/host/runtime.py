import sys

from loguru import logger


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru logging with specified level.

    Parameters
    ----------
    log_level : str, default="INFO"
        Logging level: TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        colorize=True,
    )
