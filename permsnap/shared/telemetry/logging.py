"""Logging setup for the snapshot worker and the refresh script."""

import logging
import sys

from permsnap.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty third-party loggers, kept at WARNING unless the settings ask for them.
_QUIET_LOGGERS = ("asyncio", "redis", "opentelemetry")


def setup_logging(settings: Settings | None = None) -> None:
    """Configure stdout logging for a snapshot process.

    The permsnap loggers log at DEBUG when settings.debug is set and at INFO
    otherwise. SQLAlchemy statement logging follows settings.database_echo.
    """
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("permsnap").setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )
