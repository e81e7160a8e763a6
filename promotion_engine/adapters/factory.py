"""Select an adapter implementation from a node's systemType."""

from typing import Any, Mapping, Optional

from promotion_engine.adapters.base import ExternalSystemAdapter
from promotion_engine.adapters.database import DatabaseAdapter
from promotion_engine.adapters.http import HttpAdapter
from promotion_engine.adapters.soap import SoapAdapter

ADAPTERS: dict[str, type[ExternalSystemAdapter]] = {
    "HTTP": HttpAdapter,
    "REST": HttpAdapter,
    "SOAP": SoapAdapter,
    "DATABASE": DatabaseAdapter,
}

SUPPORTED_SYSTEM_TYPES = tuple(ADAPTERS)


def create_adapter(
    system_type: str,
    endpoint: str,
    parameters: Optional[Mapping[str, Any]] = None,
) -> ExternalSystemAdapter:
    """Raises ValueError for an unknown system type or invalid adapter parameters."""
    key = (system_type or "").strip().upper()
    adapter_cls = ADAPTERS.get(key)
    if adapter_cls is None:
        raise ValueError(
            f"Unsupported external system type '{system_type}'; expected one of {', '.join(SUPPORTED_SYSTEM_TYPES)}"
        )
    return adapter_cls(endpoint, parameters)
