"""
Decision node and node configuration models.

A node's configuration names the evaluation mechanism (command type) and
carries its parameters; the node itself only knows its successors.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _normalize_key(value: str) -> str:
    return value.replace("_", "").replace("-", "").replace(" ", "").lower()


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class NodeType(str, Enum):
    """Condition nodes route; calculation nodes terminate with a promotion."""

    CONDITION = "condition"
    CALCULATION = "calculation"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            key = _normalize_key(value)
            for member in cls:
                if member.value == key:
                    return member
        return None


class CommandType(str, Enum):
    """Evaluation mechanism behind a node."""

    EXPRESSION = "expression"
    RULE_ENGINE = "rule_engine"
    EXTERNAL_SYSTEM = "external_system"
    DATABASE_QUERY = "database_query"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            return _COMMAND_TYPE_ALIASES.get(_normalize_key(value))
        return None


_COMMAND_TYPE_ALIASES = {
    "expression": CommandType.EXPRESSION,
    "spel": CommandType.EXPRESSION,
    "ruleengine": CommandType.RULE_ENGINE,
    "rules": CommandType.RULE_ENGINE,
    "drools": CommandType.RULE_ENGINE,
    "externalsystem": CommandType.EXTERNAL_SYSTEM,
    "external": CommandType.EXTERNAL_SYSTEM,
    "databasequery": CommandType.DATABASE_QUERY,
}


# -----------------------------------------------------------------------------
# NodeConfiguration
# -----------------------------------------------------------------------------


class NodeConfiguration(BaseModel):
    """Opaque configuration blob stored with each node."""

    node_id: Optional[str] = Field(None, alias="nodeId", description="Owning node id; inherited from the node when omitted")
    node_type: NodeType = Field(..., alias="nodeType", description="Condition or Calculation")
    command_type: CommandType = Field(
        ...,
        alias="commandType",
        description="Expression, RuleEngine, ExternalSystem or DatabaseQuery",
    )
    expression: Optional[str] = Field(None, description="Expression text or rule-set source, per command type")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Command parameters")
    description: Optional[str] = Field(None, description="Human-readable description")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("node_type", mode="before")
    @classmethod
    def _parse_node_type(cls, value: Any) -> Any:
        return NodeType(value) if isinstance(value, str) else value

    @field_validator("command_type", mode="before")
    @classmethod
    def _parse_command_type(cls, value: Any) -> Any:
        return CommandType(value) if isinstance(value, str) else value


# -----------------------------------------------------------------------------
# DecisionNode
# -----------------------------------------------------------------------------


class DecisionNode(BaseModel):
    """
    A single node of a decision tree.

    - condition: evaluates to a boolean (or an explicit next-node id) and routes
      to true_node_id / false_node_id
    - calculation: leaf; produces the promotion result
    """

    id: str = Field(..., min_length=1, description="Unique node identifier within the tree")
    tree_id: str = Field(..., min_length=1, alias="treeId", description="Owning tree")
    configuration: NodeConfiguration = Field(..., description="Command configuration")
    true_node_id: Optional[str] = Field(None, alias="trueNodeId", description="Successor when the condition holds")
    false_node_id: Optional[str] = Field(None, alias="falseNodeId", description="Successor when the condition fails")
    parent_id: Optional[str] = Field(None, alias="parentId", description="Informational parent reference")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="createdAt")

    model_config = {"frozen": True, "populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _inherit_node_id(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        node_id = data.get("id")
        config = data.get("configuration")
        if not node_id:
            return data
        if isinstance(config, dict) and not (config.get("nodeId") or config.get("node_id")):
            return {**data, "configuration": {**config, "nodeId": node_id}}
        if isinstance(config, NodeConfiguration) and config.node_id is None:
            return {**data, "configuration": config.model_copy(update={"node_id": node_id})}
        return data

    @model_validator(mode="after")
    def _check_shape(self) -> "DecisionNode":
        if self.configuration.node_id != self.id:
            raise ValueError(
                f"Configuration nodeId '{self.configuration.node_id}' does not match node id '{self.id}'"
            )
        if self.node_type == NodeType.CALCULATION and (self.true_node_id or self.false_node_id):
            raise ValueError(f"Calculation node '{self.id}' cannot have successors")
        return self

    @property
    def node_type(self) -> NodeType:
        return self.configuration.node_type

    @property
    def command_type(self) -> CommandType:
        return self.configuration.command_type

    def successors(self) -> tuple[str, ...]:
        return tuple(n for n in (self.true_node_id, self.false_node_id) if n)

    def resolve_next(self, payload: Any) -> Optional[str]:
        """Map a condition payload to the next node id (None when it cannot be resolved)."""
        if isinstance(payload, bool):
            return self.true_node_id if payload else self.false_node_id
        if isinstance(payload, str):
            return payload.strip() or None
        return None
