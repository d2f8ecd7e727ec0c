"""Logging setup and helpers that keep Unicode/emoji message bodies from breaking log output."""
import sys
import logging
from logging.config import dictConfig
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
JSON_FORMAT = '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'

# Configure stdout/stderr for UTF-8 on Windows
if sys.platform == 'win32':
    try:
        if hasattr(sys.stdout, 'reconfigure'):
            sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        if hasattr(sys.stderr, 'reconfigure'):
            sys.stderr.reconfigure(encoding='utf-8', errors='replace')
    except (AttributeError, OSError, ValueError):
        pass


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure the root logger from settings.
    Explicit arguments win over LOG_LEVEL / LOG_FORMAT.
    """
    from chat_store.core.config import settings

    level = (level or settings.LOG_LEVEL).upper()
    formatter = "json" if (fmt or settings.LOG_FORMAT) == "json" else "default"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
                "json": {"format": JSON_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            "loggers": {
                # Statement echo is controlled by DB_ECHO, keep the engine quiet otherwise
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
    logging.getLogger(__name__).debug("Logging configured (level=%s, format=%s)", level, formatter)


def safe_repr(obj: Any) -> str:
    """
    Safe representation function that handles Unicode characters.
    """
    try:
        return repr(obj)
    except (UnicodeEncodeError, UnicodeDecodeError):
        try:
            return str(obj).encode('ascii', errors='replace').decode('ascii')
        except Exception:
            return "<Unable to represent object>"


def preview(text: Optional[str], limit: int = 50) -> str:
    """Short single-line excerpt of a message body for log lines."""
    if not text:
        return ""
    flat = " ".join(str(text).split())
    return flat if len(flat) <= limit else flat[:limit] + "..."
