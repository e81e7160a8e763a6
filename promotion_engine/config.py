"""
Engine settings loaded from PROMO_* environment variables.

Node-level parameters (timeoutSeconds, validityDays) override these defaults.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class EngineSettings(BaseModel):
    """Defaults applied when a node configuration leaves a value unset."""

    default_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Hard deadline for one external call when the node sets no timeoutSeconds",
    )
    default_validity_days: int = Field(
        default=30,
        ge=0,
        description="Days a computed promotion stays valid when the node sets no validityDays",
    )
    http_availability_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for HTTP availability probes (HEAD)",
    )
    db_echo: bool = Field(default=False, description="Log SQL issued by the database adapter")
    log_level: str = Field(default="INFO", description="DEBUG | INFO | WARNING | ERROR")
    log_dir: Optional[str] = Field(None, description="Directory for promotion_engine.log")

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            default_timeout_seconds=float(os.getenv("PROMO_DEFAULT_TIMEOUT_SECONDS", "30")),
            default_validity_days=int(os.getenv("PROMO_DEFAULT_VALIDITY_DAYS", "30")),
            http_availability_timeout=float(os.getenv("PROMO_HTTP_AVAILABILITY_TIMEOUT", "5")),
            db_echo=_env_flag("PROMO_DB_ECHO"),
            log_level=os.getenv("PROMO_LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("PROMO_LOG_DIR") or None,
        )


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Return process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings


def override_settings(settings: Optional[EngineSettings]) -> None:
    """Replace (or with None, reset) the process-wide settings. Used by tests and embedding apps."""
    global _settings
    _settings = settings
