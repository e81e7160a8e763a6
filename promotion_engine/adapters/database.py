"""
Database adapter (SQLAlchemy).

The endpoint is a database URL; `queryTemplate` is SQL with named bind
parameters (:customerId). Legacy #{customerId} placeholders are rewritten to
bind parameters; request values are always bound, never spliced into SQL.
"""

import json
import logging
import re
import threading
import time
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from promotion_engine.adapters.base import (
    ExternalSystemAdapter,
    ExternalSystemRequest,
    ExternalSystemResponse,
)
from promotion_engine.database import get_engine
from promotion_engine.exceptions import TransportError

logger = logging.getLogger(__name__)

_LEGACY_PLACEHOLDER = re.compile(r"#\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}")


def normalize_query(template: str) -> str:
    """Rewrite #{name} placeholders to :name bind parameters."""
    return _LEGACY_PLACEHOLDER.sub(lambda m: f":{m.group(1)}", template)


def _bind_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return value


def _cancel_statement(connection: Connection) -> None:
    """Interrupt the statement running on connection (sqlite3 interrupt / psycopg cancel)."""
    raw = connection.connection.dbapi_connection
    for method in ("interrupt", "cancel"):
        fn = getattr(raw, method, None)
        if callable(fn):
            fn()
            return
    logger.warning("Database driver %s cannot cancel statements", type(raw).__name__)


class DatabaseAdapter(ExternalSystemAdapter):
    """Runs queryTemplate and returns the first row plus resultCount."""

    adapter_type = "DATABASE"

    def __init__(
        self,
        endpoint: str,
        parameters: Optional[Mapping[str, Any]] = None,
        engine: Optional[Engine] = None,
    ):
        super().__init__(endpoint)
        params = dict(parameters or {})
        template = str(params.get("queryTemplate") or "").strip()
        if not template:
            raise ValueError("Database adapter requires a queryTemplate")
        self.query = normalize_query(template)
        self._statement = text(self.query)
        self._bind_names = tuple(self._statement.compile().params)
        self._engine = engine or get_engine(self.endpoint)

    def _bind_parameters(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        bound = {}
        for name in self._bind_names:
            if name not in parameters:
                logger.debug("Query parameter %s not provided; binding NULL", name)
            bound[name] = _bind_value(parameters.get(name))
        return bound

    def call(self, request: ExternalSystemRequest, timeout: float) -> ExternalSystemResponse:
        start = time.perf_counter()
        params = self._bind_parameters(request.parameters)
        cancelled = threading.Event()
        try:
            with self._engine.connect() as connection:
                def _on_deadline() -> None:
                    cancelled.set()
                    _cancel_statement(connection)

                timer = threading.Timer(timeout, _on_deadline)
                timer.daemon = True
                timer.start()
                try:
                    rows = connection.execute(self._statement, params).mappings().all()
                finally:
                    timer.cancel()
        except SQLAlchemyError as exc:
            if cancelled.is_set():
                raise TransportError(
                    f"Database query timed out after {timeout}s",
                    system_type=self.adapter_type,
                    endpoint=self._safe_endpoint(),
                    timed_out=True,
                ) from exc
            raise TransportError(
                f"Database query failed: {exc.__class__.__name__}: {exc.args[0] if exc.args else exc}",
                system_type=self.adapter_type,
                endpoint=self._safe_endpoint(),
            ) from exc

        elapsed_ms = (time.perf_counter() - start) * 1000
        data: dict[str, Any] = dict(rows[0]) if rows else {}
        data["resultCount"] = len(rows)
        return ExternalSystemResponse.ok(data, execution_time_ms=elapsed_ms)

    def is_available(self) -> bool:
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.debug("Availability check failed for %s: %s", self._safe_endpoint(), exc)
            return False
        return True

    def _safe_endpoint(self) -> str:
        return self._engine.url.render_as_string(hide_password=True)
