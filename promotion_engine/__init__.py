"""Decision-tree promotion evaluation engine."""

from promotion_engine.audit import AuditRecord, AuditStatus, InMemoryAuditSink, LoggingAuditSink
from promotion_engine.exceptions import (
    CommandConfigurationError,
    DecisionTreeExecutionError,
    PromotionEngineError,
    TransportError,
    TreeStructureError,
)
from promotion_engine.models import (
    CommandType,
    CustomerPayload,
    DecisionNode,
    ExecutionContext,
    NodeConfiguration,
    NodeResult,
    NodeType,
    PromotionResult,
)
from promotion_engine.models.decision_tree import DecisionTree, TreeStatus

__version__ = "0.1.0"

__all__ = [
    "AuditRecord",
    "AuditStatus",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "CommandConfigurationError",
    "DecisionTreeExecutionError",
    "PromotionEngineError",
    "TransportError",
    "TreeStructureError",
    "CommandType",
    "CustomerPayload",
    "DecisionNode",
    "ExecutionContext",
    "NodeConfiguration",
    "NodeResult",
    "NodeType",
    "PromotionResult",
    "DecisionTree",
    "TreeStatus",
]
