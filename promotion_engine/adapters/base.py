"""
External system adapter contract and request/response envelope.

Adapters raise TransportError when the remote side cannot be reached or does
not answer within the deadline; a remote answer that reports an error comes
back as a failed ExternalSystemResponse.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, Field

from promotion_engine.models.context import ExecutionContext


class ExternalSystemRequest(BaseModel):
    """Parameters sent to an external system for one node execution."""

    request_id: str = Field(..., min_length=1, description="Evaluation correlation id")
    parameters: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def build(
        cls,
        request_id: str,
        parameters: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
    ) -> "ExternalSystemRequest":
        """Drop None-valued parameters."""
        return cls(
            request_id=request_id,
            parameters={k: v for k, v in parameters.items() if v is not None},
            headers=dict(headers or {}),
        )

    @classmethod
    def from_context(
        cls,
        context: ExecutionContext,
        extra_parameters: Mapping[str, Any],
        exclude: Iterable[str] = (),
        allow: Optional[Iterable[str]] = None,
    ) -> "ExternalSystemRequest":
        """
        Customer facts and accumulated context data, plus extra_parameters minus `exclude`.

        With `allow`, only those keys are sent.
        """
        excluded = set(exclude)
        merged = context.snapshot()
        merged.update({k: v for k, v in extra_parameters.items() if k not in excluded})
        if allow is not None:
            allowed = set(allow)
            merged = {k: v for k, v in merged.items() if k in allowed}
        return cls.build(context.request_id, merged)


class ExternalSystemResponse(BaseModel):
    """Normalized answer from any adapter."""

    success: bool
    data: dict[str, Any] = Field(default_factory=dict)
    status_code: Optional[int] = None
    execution_time_ms: float = 0.0
    error_message: Optional[str] = None
    response_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    @classmethod
    def ok(
        cls,
        data: Mapping[str, Any],
        status_code: Optional[int] = None,
        execution_time_ms: float = 0.0,
    ) -> "ExternalSystemResponse":
        return cls(success=True, data=dict(data), status_code=status_code, execution_time_ms=execution_time_ms)

    @classmethod
    def failed(
        cls,
        error_message: str,
        status_code: Optional[int] = None,
        execution_time_ms: float = 0.0,
        data: Optional[Mapping[str, Any]] = None,
    ) -> "ExternalSystemResponse":
        return cls(
            success=False,
            data=dict(data or {}),
            status_code=status_code,
            execution_time_ms=execution_time_ms,
            error_message=error_message,
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class ExternalSystemAdapter(ABC):
    """One transport (HTTP, SOAP, database) to an external system."""

    adapter_type: str = "UNKNOWN"

    def __init__(self, endpoint: str):
        if not endpoint or not endpoint.strip():
            raise ValueError(f"{self.adapter_type} adapter requires an endpoint")
        self.endpoint = endpoint.strip()

    @abstractmethod
    def call(self, request: ExternalSystemRequest, timeout: float) -> ExternalSystemResponse:
        """Send the request; raise TransportError if no answer arrives within timeout seconds."""

    @abstractmethod
    def is_available(self) -> bool:
        ...

    def close(self) -> None:
        """Release transport resources."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(endpoint={self.endpoint!r})"
