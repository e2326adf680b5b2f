import logging
import sys

from webclone.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"

# Chatty libraries the service talks through: stylesheet and provider calls go
# over httpx, the browser over playwright's asyncio transport.
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(settings: Settings) -> int:
    """Send service logs to stdout at the configured level. Returns the level used."""
    level = logging.DEBUG if settings.debug else logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format=DEBUG_LOG_FORMAT if settings.debug else LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Keep uvicorn on the same level, access lines only when debugging
    logging.getLogger("uvicorn").setLevel(level)
    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(logging.DEBUG if settings.debug else logging.WARNING)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return level
