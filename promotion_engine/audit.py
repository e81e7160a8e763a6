"""
Audit records emitted per visited node.

The engine only emits; storage belongs to the sink. A failing sink is
logged and never fails the evaluation.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FALLBACK = "FALLBACK"
    FAILURE = "FAILURE"


class AuditRecord(BaseModel):
    """One node visit within one evaluation."""

    request_id: str = Field(..., description="Evaluation correlation id")
    tree_id: str
    node_id: str
    node_type: str
    command_type: str
    input_snapshot: dict[str, Any] = Field(default_factory=dict, description="Context data before the node ran")
    output_snapshot: dict[str, Any] = Field(default_factory=dict, description="NodeResult summary")
    duration_ms: float = 0.0
    status: AuditStatus = AuditStatus.SUCCESS
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class AuditSink(Protocol):
    def record(self, record: AuditRecord) -> None: ...


class LoggingAuditSink:
    """Writes each record as a JSON log line on the promotion_engine.audit logger."""

    def __init__(self, logger_name: str = "promotion_engine.audit"):
        self._logger = logging.getLogger(logger_name)

    def record(self, record: AuditRecord) -> None:
        payload = {"event": "audit", **record.model_dump(mode="json")}
        level = logging.WARNING if record.status == AuditStatus.FAILURE else logging.INFO
        self._logger.log(level, "Audit: %s", json.dumps(payload, default=str))


class InMemoryAuditSink:
    """Keeps records in memory; used by the scenario runner and tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: list[AuditRecord] = []

    def record(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[AuditRecord]:
        with self._lock:
            return list(self._records)

    def for_request(self, request_id: str) -> list[AuditRecord]:
        return [r for r in self.records if r.request_id == request_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def emit_audit(sink: Optional[AuditSink], record: AuditRecord) -> None:
    if sink is None:
        return
    try:
        sink.record(record)
    except Exception:
        logger.exception("Audit sink %s failed for node %s (request %s)", type(sink).__name__, record.node_id, record.request_id)
