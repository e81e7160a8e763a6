"""
SQLAlchemy engine cache for database-backed nodes.

One engine (and connection pool) per database URL, shared by every node that
queries the same database.
"""

import logging
import threading
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from promotion_engine.config import get_settings

logger = logging.getLogger(__name__)

_engines: dict[str, Engine] = {}
_lock = threading.Lock()


def get_engine(url: str, echo: Optional[bool] = None) -> Engine:
    """Return the cached engine for url, creating it on first use."""
    with _lock:
        engine = _engines.get(url)
        if engine is None:
            connect_args = {}
            if url.startswith("sqlite"):
                connect_args["check_same_thread"] = False  # statements may be interrupted from a timer thread
            engine = create_engine(
                url,
                connect_args=connect_args,
                echo=get_settings().db_echo if echo is None else echo,  # PROMO_DB_ECHO=1 logs SQL
                pool_pre_ping=True,
            )
            _engines[url] = engine
            logger.debug("Created engine for %s", engine.url.render_as_string(hide_password=True))
        return engine


def dispose_engines() -> None:
    """Close every cached pool."""
    with _lock:
        engines = list(_engines.values())
        _engines.clear()
    for engine in engines:
        engine.dispose()
