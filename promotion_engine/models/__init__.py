from promotion_engine.models.context import ExecutionContext
from promotion_engine.models.customer import CustomerPayload
from promotion_engine.models.node import CommandType, DecisionNode, NodeConfiguration, NodeType
from promotion_engine.models.results import NodeResult, PromotionResult

# DecisionTree lives in promotion_engine.models.decision_tree; it depends on the
# command layer, which depends on these value objects.

__all__ = [
    "ExecutionContext",
    "CustomerPayload",
    "CommandType",
    "DecisionNode",
    "NodeConfiguration",
    "NodeType",
    "NodeResult",
    "PromotionResult",
]
