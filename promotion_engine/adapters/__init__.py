from promotion_engine.adapters.base import (
    ExternalSystemAdapter,
    ExternalSystemRequest,
    ExternalSystemResponse,
)
from promotion_engine.adapters.database import DatabaseAdapter
from promotion_engine.adapters.factory import SUPPORTED_SYSTEM_TYPES, create_adapter
from promotion_engine.adapters.http import HttpAdapter
from promotion_engine.adapters.soap import SoapAdapter

__all__ = [
    "ExternalSystemAdapter",
    "ExternalSystemRequest",
    "ExternalSystemResponse",
    "DatabaseAdapter",
    "HttpAdapter",
    "SoapAdapter",
    "SUPPORTED_SYSTEM_TYPES",
    "create_adapter",
]
