import logging
import sys

from buildbid.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the ``buildbid`` logger hierarchy once per process."""
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger("buildbid")
    root.setLevel((level or settings.LOG_LEVEL).upper())
    root.addHandler(handler)
    root.propagate = False

    # Keep SQL echo out of application logs unless explicitly asked for
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"buildbid.{name}")
