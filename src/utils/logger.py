import os
import sys

from loguru import logger


def setup_logger(
    *,
    json_logs: bool = False,
    level: str = "INFO",
    log_dir: str | None = "logs",
) -> None:
    """Configure loguru for the risk engine.

    Console level comes from LOG_LEVEL (default: INFO). When ``log_dir`` is
    set, a DEBUG file sink keeps every velocity cycle for post-mortem review
    of rug calls.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
                "<level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    if log_dir:
        logger.add(
            os.path.join(log_dir, "radar_{time:YYYY-MM-DD}.log"),
            rotation="50 MB",
            retention="7 days",
            compression="gz",
            level="DEBUG",
            serialize=json_logs,
        )
