"""
Expression-backed node commands (simpleeval).

Expressions are parsed once and evaluated against:
- customer fields by camelCase name (annualIncome, creditScore, ...)
- `customer` as a mapping of the same fields
- accumulated context data
- `param_<key>` for each node parameter
- min, max, round, abs and Decimal

Arithmetic mixing Decimal and float is done in Decimal.
"""

import ast
import logging
from collections.abc import Mapping
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable

from simpleeval import DEFAULT_OPERATORS, EvalWithCompoundTypes, InvalidExpression, SimpleEval

from promotion_engine.commands.base import (
    NodeCommand,
    build_promotion_result,
    coerce_condition,
    to_decimal,
)
from promotion_engine.config import get_settings
from promotion_engine.exceptions import CommandConfigurationError, ExpressionEvaluationError
from promotion_engine.models.context import ExecutionContext
from promotion_engine.models.node import CommandType, NodeConfiguration, NodeType
from promotion_engine.models.results import NodeResult, PromotionResult

logger = logging.getLogger(__name__)


def _align(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, Decimal) and isinstance(right, float):
        return left, Decimal(str(right))
    if isinstance(right, Decimal) and isinstance(left, float):
        return Decimal(str(left)), right
    return left, right


def _decimal_safe(fn: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    def wrapped(left: Any, right: Any) -> Any:
        return fn(*_align(left, right))

    return wrapped


OPERATORS = dict(DEFAULT_OPERATORS)
for _op in (ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod, ast.Pow):
    if _op in OPERATORS:
        OPERATORS[_op] = _decimal_safe(OPERATORS[_op])

FUNCTIONS = {
    "min": min,
    "max": max,
    "round": round,
    "abs": abs,
    "Decimal": lambda value: to_decimal(value, None),
    "int": int,
    "float": float,
    "str": str,
}


@lru_cache(maxsize=1024)
def parse_expression(text: str) -> ast.AST:
    """Parse once; the AST is shared across threads and evaluations."""
    return SimpleEval.parse(text)


def check_expression(text: str, node_id: str) -> str:
    """Validate expression syntax at construction time; return the stripped text."""
    text = (text or "").strip()
    if not text:
        raise CommandConfigurationError(f"Node '{node_id}': expression is required")
    try:
        parse_expression(text)
    except (SyntaxError, InvalidExpression) as exc:
        raise CommandConfigurationError(f"Node '{node_id}': invalid expression '{text}': {exc}") from exc
    return text


def evaluate_expression(text: str, names: Mapping[str, Any]) -> Any:
    evaluator = EvalWithCompoundTypes(operators=OPERATORS, functions=FUNCTIONS, names=dict(names))
    try:
        return evaluator.eval(text, previously_parsed=parse_expression(text))
    except (InvalidExpression, ArithmeticError, TypeError, ValueError, KeyError, IndexError) as exc:
        raise ExpressionEvaluationError(f"Failed to evaluate '{text}': {exc}") from exc


def evaluation_names(context: ExecutionContext, parameters: Mapping[str, Any]) -> dict[str, Any]:
    """Variables visible to expressions and rules for one evaluation."""
    names = context.snapshot()
    names["customer"] = context.customer.to_facts()
    for key, value in parameters.items():
        names[f"param_{key}"] = value
    return names


class ExpressionCommand(NodeCommand):
    """
    Evaluates configuration.expression (or the `expression` parameter).

    Condition nodes coerce the value to a boolean. Calculation nodes accept a
    number (the discount amount) or a mapping with discountAmount,
    discountPercentage, promotionName, promotionType, description, eligible.
    """

    command_type = CommandType.EXPRESSION

    def __init__(self, configuration: NodeConfiguration):
        super().__init__(configuration)
        self.expression = check_expression(
            configuration.expression or self.parameters.get("expression") or "",
            self.node_id,
        )

    def do_execute(self, context: ExecutionContext) -> NodeResult:
        value = evaluate_expression(self.expression, evaluation_names(context, self.parameters))
        logger.debug("Expression on node %s evaluated to %r", self.node_id, value)
        if self.node_type == NodeType.CONDITION:
            return NodeResult.ok(coerce_condition(value))
        return NodeResult.ok(self._to_promotion(context, value))

    def _to_promotion(self, context: ExecutionContext, value: Any) -> PromotionResult:
        fields = value if isinstance(value, Mapping) else {"discountAmount": value}
        raw_amount = fields.get("discountAmount")
        amount = to_decimal(raw_amount, None)
        if raw_amount is not None and amount is None:
            raise ExpressionEvaluationError(
                f"Calculation expression on node '{self.node_id}' produced a non-numeric amount: {raw_amount!r}"
            )
        eligible = fields.get("eligible")
        return build_promotion_result(
            context,
            name=fields.get("promotionName") or self.get_str_param("promotionName", "Expression Promotion"),
            promotion_type=fields.get("promotionType") or self.get_str_param("promotionType", "CALCULATED"),
            amount=amount,
            percentage=to_decimal(fields.get("discountPercentage"), None),
            description=fields.get("description") or self.get_str_param("description"),
            validity_days=self.get_int_param("validityDays", get_settings().default_validity_days),
            eligible=coerce_condition(eligible) if eligible is not None else self.get_bool_param("eligible", True),
            details={
                "calculationMethod": "EXPRESSION",
                "expression": self.expression,
                "nodeId": self.node_id,
            },
        )
