"""Database-query node command: runs a parameterized query against connectionString."""

import logging
from typing import Optional

from promotion_engine.adapters.base import ExternalSystemRequest
from promotion_engine.adapters.database import DatabaseAdapter
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

logger = logging.getLogger(__name__)

_RESERVED = frozenset({"connectionString", "queryTemplate", "timeoutSeconds", "validityDays"})


class DatabaseQueryCommand(NodeCommand):
    """
    Condition: conditionResult column, else resultCount > 0, else any row data.
    Calculation: discountAmount / promotionName / promotionType / description columns.

    Unlike ExternalSystem nodes there is no fallback; a failed query fails the node.
    """

    command_type = CommandType.DATABASE_QUERY

    def __init__(self, configuration: NodeConfiguration, adapter: Optional[DatabaseAdapter] = None):
        super().__init__(configuration)
        connection_string = (self.get_str_param("connectionString") or "").strip()
        query_template = (self.get_str_param("queryTemplate") or configuration.expression or "").strip()
        if not connection_string:
            raise CommandConfigurationError(f"Node '{self.node_id}': connectionString is required")
        if not query_template:
            raise CommandConfigurationError(f"Node '{self.node_id}': queryTemplate is required")
        self.query_template = query_template
        self.timeout = float(self.parameters.get("timeoutSeconds") or get_settings().default_timeout_seconds)
        if adapter is None:
            try:
                adapter = DatabaseAdapter(connection_string, {"queryTemplate": query_template})
            except ValueError as exc:
                raise CommandConfigurationError(f"Node '{self.node_id}': {exc}") from exc
        self.adapter = adapter

    def do_execute(self, context: ExecutionContext) -> NodeResult:
        request = ExternalSystemRequest.from_context(context, self.parameters, exclude=_RESERVED)
        try:
            response = self.adapter.call(request, self.timeout)
        except TransportError as exc:
            return NodeResult.failure(f"Database query failed on node '{self.node_id}': {exc.message}")
        data = response.data

        if self.node_type == NodeType.CONDITION:
            if data.get("conditionResult") is not None:
                return NodeResult.ok(coerce_condition(data["conditionResult"]))
            count = data.get("resultCount")
            if isinstance(count, int):
                return NodeResult.ok(count > 0)
            return NodeResult.ok(any(k != "resultCount" for k in data))

        eligible = data.get("eligible")
        return NodeResult.ok(
            build_promotion_result(
                context,
                name=data.get("promotionName") or "Database Promotion",
                promotion_type=data.get("promotionType") or "DATABASE_QUERY",
                amount=to_decimal(data.get("discountAmount")),
                description=data.get("description") or "Promotion calculated from database query",
                validity_days=self.get_int_param("validityDays", get_settings().default_validity_days),
                eligible=coerce_condition(eligible) if eligible is not None else True,
                details={
                    "calculationMethod": "DATABASE_QUERY",
                    "queryTemplate": self.query_template,
                    "nodeId": self.node_id,
                    "queryResult": dict(data),
                },
            )
        )
