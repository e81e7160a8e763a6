"""
Structured logging for the promotion engine.

- Level (DEBUG, INFO, WARNING, ERROR) defaults to EngineSettings.log_level (PROMO_LOG_LEVEL)
- Writes to logs/promotion_engine.log, or EngineSettings.log_dir (PROMO_LOG_DIR)
- Console handler for development
- Helpers for node execution, external calls, fallbacks and validation results
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from promotion_engine.config import get_settings

# Default: project root / logs
LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"


def _ts() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def configure_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    log_to_console: bool = True,
) -> None:
    """Configure root and promotion_engine loggers. Call once at startup; unset arguments come from get_settings()."""
    settings = get_settings()
    level = level or settings.log_level
    log_dir = Path(log_dir or settings.log_dir or LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    level_value = getattr(logging, level.upper(), logging.INFO)

    file_handler = logging.FileHandler(log_dir / "promotion_engine.log", encoding="utf-8")
    file_handler.setLevel(level_value)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(level_value)
    # Avoid duplicate handlers when reconfiguring
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(file_handler)
    if log_to_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level_value)
        console.setFormatter(logging.Formatter("%(levelname)s | %(name)s | %(message)s"))
        root.addHandler(console)

    logging.getLogger("promotion_engine").setLevel(level_value)


def log_node_execution(
    logger: logging.Logger,
    tree_id: str,
    node_id: str,
    command_type: str,
    request_id: str,
    success: bool,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
    fallback_used: bool = False,
) -> None:
    """Log one node visit during tree evaluation."""
    payload = {
        "event": "node_execution",
        "tree_id": tree_id,
        "node_id": node_id,
        "command_type": command_type,
        "request_id": request_id,
        "success": success,
        "fallback_used": fallback_used,
        "duration_ms": duration_ms,
        "error": error,
        "ts": _ts(),
    }
    if success:
        logger.debug("Node: %s", json.dumps(payload, default=str))
    else:
        logger.warning("Node: %s", json.dumps(payload, default=str))


def log_external_call(
    logger: logging.Logger,
    system_type: str,
    endpoint: str,
    request_id: str,
    success: bool,
    status_code: Optional[int] = None,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Log an external system call. Request parameters are never logged."""
    payload = {
        "event": "external_call",
        "system_type": system_type,
        "endpoint": endpoint,
        "request_id": request_id,
        "success": success,
        "status_code": status_code,
        "duration_ms": duration_ms,
        "error": error,
        "ts": _ts(),
    }
    if extra:
        payload.update(extra)
    if success:
        logger.info("External call: %s", json.dumps(payload, default=str))
    else:
        logger.warning("External call: %s", json.dumps(payload, default=str))


def log_fallback(
    logger: logging.Logger,
    node_id: str,
    system_type: str,
    reason: str,
    request_id: Optional[str] = None,
) -> None:
    payload = {
        "event": "fallback",
        "node_id": node_id,
        "system_type": system_type,
        "reason": reason,
        "request_id": request_id,
        "ts": _ts(),
    }
    logger.warning("Fallback: %s", json.dumps(payload, default=str))


def log_validation_result(
    logger: logging.Logger,
    tree_id: str,
    errors: list[str],
    duration_sec: Optional[float] = None,
) -> None:
    """Log a tree structure validation run."""
    payload = {
        "event": "validation",
        "tree_id": tree_id,
        "error_count": len(errors),
        "errors": errors,
        "duration_sec": duration_sec,
        "ts": _ts(),
    }
    level = logging.WARNING if errors else logging.INFO
    logger.log(level, "Validation: %s", json.dumps(payload, default=str))
