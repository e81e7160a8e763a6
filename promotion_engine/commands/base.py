"""
Node command base class and shared result helpers.

Every backend (expression, rule engine, external system, database query)
implements do_execute; execute wraps it so that a backend error becomes a
failed NodeResult instead of an exception.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from promotion_engine.models.context import ExecutionContext
from promotion_engine.models.node import CommandType, NodeConfiguration, NodeType
from promotion_engine.models.results import NodeResult, PromotionResult

logger = logging.getLogger(__name__)

_TRUE_STRINGS = ("true", "yes", "1")
_PERCENT_QUANTUM = Decimal("0.0001")
_HUNDRED = Decimal("100")


# -----------------------------------------------------------------------------
# Value helpers
# -----------------------------------------------------------------------------


def to_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    """Convert numbers and numeric strings to Decimal; default for anything else."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return default
    return default


def coerce_condition(value: Any) -> bool:
    """
    Interpret a backend value as a condition outcome.

    None -> False; numbers -> non-zero; strings -> "true" / "yes" / "1"
    (case-insensitive); any other object -> True.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return True


def derive_discount_percentage(amount: Optional[Decimal], balance: Optional[Decimal]) -> Decimal:
    """amount / balance * 100, 4 decimals HALF_UP; 0 without a positive balance; capped at 100."""
    if amount is None or balance is None or balance <= 0:
        return Decimal("0")
    percentage = (amount / balance * _HUNDRED).quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)
    return min(percentage, _HUNDRED.quantize(_PERCENT_QUANTUM))


def build_promotion_result(
    context: ExecutionContext,
    *,
    name: str,
    promotion_type: str,
    amount: Optional[Decimal],
    description: Optional[str] = None,
    validity_days: int = 30,
    eligible: bool = True,
    percentage: Optional[Decimal] = None,
    details: Optional[dict[str, Any]] = None,
) -> PromotionResult:
    """Build a PromotionResult, deriving the percentage from the account balance when not given."""
    if percentage is None:
        percentage = derive_discount_percentage(amount, context.customer.account_balance)
    return PromotionResult(
        promotion_name=name,
        promotion_type=promotion_type,
        discount_amount=amount,
        discount_percentage=percentage,
        description=description,
        valid_until=datetime.now(timezone.utc) + timedelta(days=validity_days),
        additional_details=dict(details or {}),
        eligible=eligible,
    )


# -----------------------------------------------------------------------------
# NodeCommand
# -----------------------------------------------------------------------------


class NodeCommand(ABC):
    """Executable behaviour behind one decision node."""

    command_type: CommandType
    supported_node_types: tuple[NodeType, ...] = (NodeType.CONDITION, NodeType.CALCULATION)

    def __init__(self, configuration: NodeConfiguration):
        self.configuration = configuration

    @property
    def node_id(self) -> str:
        return self.configuration.node_id or ""

    @property
    def node_type(self) -> NodeType:
        return self.configuration.node_type

    @property
    def parameters(self) -> dict[str, Any]:
        return self.configuration.parameters

    def execute(self, context: Optional[ExecutionContext]) -> NodeResult:
        """Run the command; any backend error is returned as a failed NodeResult."""
        if context is None:
            return NodeResult.failure("Execution context is required")
        try:
            self.pre_execute(context)
            result = self.do_execute(context)
            self.post_execute(context, result)
            return result
        except Exception as exc:
            logger.warning(
                "%s command failed on node %s: %s",
                self.command_type.value,
                self.node_id,
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return NodeResult.failure(
                f"{self.command_type.value} command failed on node '{self.node_id}': {exc}"
            )

    def pre_execute(self, context: ExecutionContext) -> None:
        """Hook before do_execute."""

    @abstractmethod
    def do_execute(self, context: ExecutionContext) -> NodeResult:
        ...

    def post_execute(self, context: ExecutionContext, result: NodeResult) -> None:
        """Record condition outcomes as result_<nodeId> so later nodes can read them."""
        if result.success and isinstance(result.payload, bool):
            context.set(f"result_{self.node_id}", result.payload)

    def close(self) -> None:
        """Release backend resources (clients, pools)."""

    # Parameter helpers

    def get_str_param(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.parameters.get(key)
        if value is None:
            return default
        return str(value)

    def get_bool_param(self, key: str, default: bool = False) -> bool:
        value = self.parameters.get(key)
        if value is None:
            return default
        return coerce_condition(value)

    def get_int_param(self, key: str, default: int = 0) -> int:
        value = self.parameters.get(key)
        if value is None or isinstance(value, bool):
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_decimal_param(self, key: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
        return to_decimal(self.parameters.get(key), default)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(node_id={self.node_id!r}, node_type={self.node_type.value!r})"
