from promotion_engine.commands.base import (
    NodeCommand,
    build_promotion_result,
    coerce_condition,
    derive_discount_percentage,
    to_decimal,
)
from promotion_engine.commands.database_query import DatabaseQueryCommand
from promotion_engine.commands.expression import ExpressionCommand
from promotion_engine.commands.external import ExternalSystemCommand, ExternalSystemParameters
from promotion_engine.commands.factory import CommandFactory
from promotion_engine.commands.rule_engine import (
    DeclarativeRuleEngine,
    RuleEngine,
    RuleEngineCommand,
    RuleOutcome,
)

__all__ = [
    "NodeCommand",
    "build_promotion_result",
    "coerce_condition",
    "derive_discount_percentage",
    "to_decimal",
    "DatabaseQueryCommand",
    "ExpressionCommand",
    "ExternalSystemCommand",
    "ExternalSystemParameters",
    "CommandFactory",
    "DeclarativeRuleEngine",
    "RuleEngine",
    "RuleEngineCommand",
    "RuleOutcome",
]
