"""
External-system node command.

Calls an HTTP, SOAP or database system through an adapter and interprets the
answer as a condition outcome or a promotion. When the call fails and
fallback is enabled, the configured fallback value is used instead and the
substitution is visible on the NodeResult (fallback_used / fallback_reason).
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from promotion_engine.adapters.base import (
    ExternalSystemAdapter,
    ExternalSystemRequest,
    ExternalSystemResponse,
)
from promotion_engine.adapters.factory import SUPPORTED_SYSTEM_TYPES, create_adapter
from promotion_engine.commands.base import (
    NodeCommand,
    build_promotion_result,
    coerce_condition,
    to_decimal,
)
from promotion_engine.config import get_settings
from promotion_engine.exceptions import CommandConfigurationError, TransportError
from promotion_engine.models.context import ExecutionContext
from promotion_engine.models.node import CommandType, NodeConfiguration, NodeType
from promotion_engine.models.results import NodeResult
from promotion_engine.utils.logging import log_external_call, log_fallback

logger = logging.getLogger(__name__)

# Configuration keys that steer the command or the transport; never forwarded as request data.
RESERVED_PARAMETERS = frozenset(
    {
        "systemType",
        "endpoint",
        "timeoutSeconds",
        "enableFallback",
        "fallbackConditionValue",
        "fallbackDiscountAmount",
        "fallbackPromotionName",
        "fallbackEligible",
        "validityDays",
        "conditionDefault",
        "requestParameters",
        "method",
        "headers",
        "namespace",
        "operation",
        "soapAction",
        "queryTemplate",
    }
)


class ExternalSystemParameters(BaseModel):
    """Typed view of an ExternalSystem node's parameters."""

    system_type: str = Field(..., alias="systemType", description="HTTP | REST | SOAP | DATABASE")
    endpoint: str = Field(..., min_length=1, description="URL or database URL")
    timeout_seconds: Optional[float] = Field(None, gt=0, alias="timeoutSeconds")
    enable_fallback: bool = Field(True, alias="enableFallback")
    fallback_condition_value: bool = Field(False, alias="fallbackConditionValue")
    fallback_discount_amount: Decimal = Field(Decimal("0"), ge=0, alias="fallbackDiscountAmount")
    fallback_promotion_name: str = Field("Fallback Promotion", min_length=1, alias="fallbackPromotionName")
    fallback_eligible: bool = Field(False, alias="fallbackEligible")
    validity_days: Optional[int] = Field(None, ge=0, alias="validityDays")
    condition_default: Literal["data", "false", "error"] = Field(
        "data",
        alias="conditionDefault",
        description="Outcome when a condition answer lacks conditionResult: "
        "data = non-empty answer is true, false = false, error = treat as failure",
    )
    request_parameters: Optional[list[str]] = Field(
        None,
        alias="requestParameters",
        description="When set, only these keys are sent to the external system",
    )

    model_config = {"populate_by_name": True, "extra": "allow", "str_strip_whitespace": True}

    @field_validator("system_type")
    @classmethod
    def _check_system_type(cls, value: str) -> str:
        key = value.strip().upper()
        if key not in SUPPORTED_SYSTEM_TYPES:
            raise ValueError(f"unsupported systemType '{value}'; expected one of {', '.join(SUPPORTED_SYSTEM_TYPES)}")
        return key


AdapterFactory = Callable[[str, str, Mapping[str, Any]], ExternalSystemAdapter]


class ExternalSystemCommand(NodeCommand):
    """Node command backed by an external system adapter."""

    command_type = CommandType.EXTERNAL_SYSTEM

    def __init__(
        self,
        configuration: NodeConfiguration,
        adapter: Optional[ExternalSystemAdapter] = None,
        adapter_factory: AdapterFactory = create_adapter,
    ):
        super().__init__(configuration)
        try:
            self.options = ExternalSystemParameters.model_validate(self.parameters)
        except PydanticValidationError as exc:
            raise CommandConfigurationError(f"Node '{self.node_id}': invalid external system parameters: {exc}") from exc
        defaults = get_settings()
        self.timeout = self.options.timeout_seconds or defaults.default_timeout_seconds
        self.validity_days = (
            self.options.validity_days if self.options.validity_days is not None else defaults.default_validity_days
        )
        if adapter is None:
            try:
                adapter = adapter_factory(self.options.system_type, self.options.endpoint, self.parameters)
            except ValueError as exc:
                raise CommandConfigurationError(f"Node '{self.node_id}': {exc}") from exc
        self.adapter = adapter

    @property
    def system_type(self) -> str:
        return self.options.system_type

    @property
    def endpoint(self) -> str:
        return self.options.endpoint

    def build_request(self, context: ExecutionContext) -> ExternalSystemRequest:
        return ExternalSystemRequest.from_context(
            context,
            self.parameters,
            exclude=RESERVED_PARAMETERS,
            allow=self.options.request_parameters,
        )

    def do_execute(self, context: ExecutionContext) -> NodeResult:
        """Call the system and interpret its answer; any failure on the way goes through the fallback policy."""
        try:
            request = self.build_request(context)
            response = self._call(request)
            if response.success:
                if self.node_type == NodeType.CONDITION:
                    return self._interpret_condition(response)
                return self._interpret_calculation(context, response)
            reason = response.error_message or "external system call failed"
        except Exception as exc:
            logger.warning("External system node %s raised %s: %s", self.node_id, type(exc).__name__, exc)
            reason = str(exc) or type(exc).__name__
        return self._on_failure(context, reason)

    def _call(self, request: ExternalSystemRequest) -> ExternalSystemResponse:
        """Single seam where transport exceptions become failed responses."""
        try:
            response = self.adapter.call(request, self.timeout)
        except TransportError as exc:
            log_external_call(
                logger,
                self.system_type,
                self.endpoint,
                request.request_id,
                success=False,
                status_code=exc.status_code,
                error=exc.message,
                extra={"node_id": self.node_id, "timed_out": exc.timed_out},
            )
            return ExternalSystemResponse.failed(exc.message, status_code=exc.status_code)
        log_external_call(
            logger,
            self.system_type,
            self.endpoint,
            request.request_id,
            success=response.success,
            status_code=response.status_code,
            duration_ms=response.execution_time_ms,
            error=response.error_message,
            extra={"node_id": self.node_id},
        )
        return response

    def _interpret_condition(self, response: ExternalSystemResponse) -> NodeResult:
        next_node = response.get("nextNodeId")
        if isinstance(next_node, str) and next_node.strip():
            return NodeResult.ok(next_node.strip())
        if "conditionResult" in response.data:
            return NodeResult.ok(coerce_condition(response.get("conditionResult")))
        policy = self.options.condition_default
        if policy == "false":
            return NodeResult.ok(False)
        if policy == "error":
            raise ValueError("response has no conditionResult")
        return NodeResult.ok(bool(response.data))

    def _interpret_calculation(self, context: ExecutionContext, response: ExternalSystemResponse) -> NodeResult:
        data = response.data
        eligible = data.get("eligible")
        result = build_promotion_result(
            context,
            name=data.get("promotionName") or "External Promotion",
            promotion_type=data.get("promotionType") or "EXTERNAL",
            amount=to_decimal(data.get("discountAmount")),
            description=data.get("description") or f"Promotion calculated by {self.system_type} system",
            validity_days=self.validity_days,
            eligible=coerce_condition(eligible) if eligible is not None else True,
            details={
                "calculationMethod": "EXTERNAL_SYSTEM",
                "systemType": self.system_type,
                "endpoint": self.endpoint,
                "nodeId": self.node_id,
                "responseData": data,
            },
        )
        return NodeResult.ok(result)

    def _on_failure(self, context: ExecutionContext, reason: str) -> NodeResult:
        if not self.options.enable_fallback:
            return NodeResult.failure(f"External system call failed on node '{self.node_id}': {reason}")
        log_fallback(logger, self.node_id, self.system_type, reason, context.request_id)
        if self.node_type == NodeType.CONDITION:
            return NodeResult.fallback(self.options.fallback_condition_value, reason)
        result = build_promotion_result(
            context,
            name=self.options.fallback_promotion_name,
            promotion_type="FALLBACK",
            amount=self.options.fallback_discount_amount,
            description="Fallback promotion applied: external system unavailable",
            validity_days=self.validity_days,
            eligible=self.options.fallback_eligible,
            details={
                "calculationMethod": "FALLBACK",
                "systemType": self.system_type,
                "endpoint": self.endpoint,
                "nodeId": self.node_id,
                "fallbackReason": reason,
            },
        )
        return NodeResult.fallback(result, reason)

    def close(self) -> None:
        self.adapter.close()
