"""Logging setup for the access core."""
import logging

from posauth.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure the root logger once from settings."""
    level = logging.DEBUG if settings.debug else settings.log_level.upper()
    logging.basicConfig(level=level, format=settings.log_format)
    # SQLAlchemy engine logging is controlled by db_echo
    logging.getLogger("passlib").setLevel(logging.ERROR)
