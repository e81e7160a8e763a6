"""
Error taxonomy for the promotion engine.

- Configuration errors: a node's command cannot be built from its configuration.
- Structural errors: the tree cannot be activated or a change would break an active tree.
- Transport / backend errors: external calls and expression or rule evaluation.
- Execution errors: the single terminal error raised by DecisionTree.evaluate.
"""

from typing import Optional


class PromotionEngineError(Exception):
    """Base class for all engine errors."""

    default_code = "PROMOTION_ENGINE_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code


class CommandConfigurationError(PromotionEngineError):
    """Node configuration names an unknown command or carries invalid parameters."""

    default_code = "COMMAND_CONFIGURATION_ERROR"


class TreeStructureError(PromotionEngineError):
    """Tree failed structural validation (activation refused or change rejected)."""

    default_code = "TREE_STRUCTURE_ERROR"

    def __init__(self, errors: list[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "Decision tree structure is invalid: " + "; ".join(self.errors))


class DecisionTreeExecutionError(PromotionEngineError):
    """Evaluation of a decision tree could not produce a promotion result."""

    default_code = "DECISION_TREE_EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        tree_id: Optional[str] = None,
        node_id: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.tree_id = tree_id
        self.node_id = node_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.tree_id:
            parts.append(f"tree={self.tree_id}")
        if self.node_id:
            parts.append(f"node={self.node_id}")
        return " | ".join(parts)


class TransportError(PromotionEngineError):
    """An external system could not be reached or did not answer in time."""

    default_code = "EXTERNAL_SYSTEM_ERROR"

    def __init__(
        self,
        message: str,
        system_type: Optional[str] = None,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        timed_out: bool = False,
    ):
        super().__init__(message, "EXTERNAL_SYSTEM_TIMEOUT" if timed_out else None)
        self.system_type = system_type
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body
        self.timed_out = timed_out


class ExpressionEvaluationError(PromotionEngineError):
    """An expression could not be evaluated against the execution context."""

    default_code = "EXPRESSION_EVALUATION_ERROR"


class RuleEvaluationError(PromotionEngineError):
    """A rule set is missing, invalid, or fired no rules."""

    default_code = "RULE_EVALUATION_ERROR"

    def __init__(self, message: str, rule_name: Optional[str] = None):
        super().__init__(message)
        self.rule_name = rule_name
