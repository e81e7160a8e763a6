"""
Decision tree aggregate.

A tree owns its nodes and the commands built for them. Administrative changes
(add/remove nodes, set root, activate) publish a new immutable TreeSnapshot
under a lock; evaluate() reads a single snapshot from start to finish, so a
concurrent change never affects an evaluation already in progress.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, Field

from promotion_engine.audit import AuditRecord, AuditSink, AuditStatus, emit_audit
from promotion_engine.commands.base import NodeCommand
from promotion_engine.commands.factory import CommandFactory
from promotion_engine.exceptions import (
    CommandConfigurationError,
    DecisionTreeExecutionError,
    TreeStructureError,
)
from promotion_engine.models.context import ExecutionContext
from promotion_engine.models.customer import CustomerPayload
from promotion_engine.models.node import DecisionNode, NodeType
from promotion_engine.models.results import NodeResult, PromotionResult
from promotion_engine.utils.logging import log_node_execution, log_validation_result

logger = logging.getLogger(__name__)


class TreeStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


class ValidationResult(BaseModel):
    """Outcome of validate(); errors are human-readable messages."""

    valid: bool
    errors: list[str] = Field(default_factory=list)

    @property
    def error_message(self) -> str:
        return "; ".join(self.errors)


@dataclass(frozen=True)
class TreeSnapshot:
    """Everything evaluate() needs, published atomically."""

    status: TreeStatus = TreeStatus.DRAFT
    root_node_id: Optional[str] = None
    nodes: Mapping[str, DecisionNode] = field(default_factory=lambda: MappingProxyType({}))
    commands: Mapping[str, NodeCommand] = field(default_factory=lambda: MappingProxyType({}))
    config_errors: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


# -----------------------------------------------------------------------------
# Structure validation
# -----------------------------------------------------------------------------


def validate_snapshot(snapshot: TreeSnapshot) -> list[str]:
    """
    Check: root set and present, node configurations buildable, condition nodes
    have both successors, references resolve, every node reachable, no cycles.
    """
    errors: list[str] = []
    nodes = snapshot.nodes
    root_id = snapshot.root_node_id

    if not root_id:
        errors.append("Root node is not set")
        return errors
    if root_id not in nodes:
        errors.append(f"Root node '{root_id}' does not exist in the tree")
        return errors

    for nid in sorted(snapshot.config_errors):
        errors.append(f"Node '{nid}' has an invalid configuration: {snapshot.config_errors[nid]}")

    for nid in sorted(nodes):
        node = nodes[nid]
        if node.node_type != NodeType.CONDITION:
            continue
        for branch, target in (("true", node.true_node_id), ("false", node.false_node_id)):
            if not target:
                errors.append(f"Condition node '{nid}' has no {branch} branch")
            elif target not in nodes:
                errors.append(f"Node '{nid}' references missing {branch} node '{target}'")

    # Depth-first walk from the root: nodes on the current path are "visiting".
    visiting: set[str] = {root_id}
    done: set[str] = set()
    stack: list[tuple[str, Iterable[str]]] = [(root_id, iter(nodes[root_id].successors()))]
    while stack:
        nid, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            visiting.discard(nid)
            done.add(nid)
            continue
        if child not in nodes or child in done:
            continue
        if child in visiting:
            errors.append(f"Cycle detected: node '{nid}' leads back to '{child}'")
            continue
        visiting.add(child)
        stack.append((child, iter(nodes[child].successors())))

    for nid in sorted(set(nodes) - done):
        errors.append(f"Node '{nid}' is not reachable from root '{root_id}'")
    return errors


# -----------------------------------------------------------------------------
# DecisionTree
# -----------------------------------------------------------------------------


class DecisionTree:
    """
    Promotion decision tree.

    - condition nodes route via true_node_id / false_node_id
    - calculation nodes end the evaluation with a PromotionResult
    - only an active tree can be evaluated; activation validates the structure
    """

    def __init__(
        self,
        tree_id: str,
        name: str,
        description: Optional[str] = None,
        command_factory: Optional[CommandFactory] = None,
    ):
        if not tree_id or not tree_id.strip():
            raise ValueError("Tree id is required")
        if not name or not name.strip():
            raise ValueError("Tree name is required")
        self.id = tree_id.strip()
        self.name = name.strip()
        self.description = description
        self.created_at = datetime.now(timezone.utc)
        self.updated_at = self.created_at
        self._factory = command_factory or CommandFactory.default()
        self._lock = threading.Lock()
        self._snapshot = TreeSnapshot()

    # Read side

    @property
    def status(self) -> TreeStatus:
        return self._snapshot.status

    @property
    def root_node_id(self) -> Optional[str]:
        return self._snapshot.root_node_id

    @property
    def nodes(self) -> Mapping[str, DecisionNode]:
        return self._snapshot.nodes

    @property
    def is_active(self) -> bool:
        return self._snapshot.status == TreeStatus.ACTIVE

    def snapshot(self) -> TreeSnapshot:
        return self._snapshot

    def get_node(self, node_id: str) -> Optional[DecisionNode]:
        return self._snapshot.nodes.get(node_id)

    def get_command(self, node_id: str) -> Optional[NodeCommand]:
        return self._snapshot.commands.get(node_id)

    # Administration

    def _publish(self, snapshot: TreeSnapshot) -> None:
        """Swap in snapshot (lock held). Changes that would break an active tree are refused."""
        if snapshot.status == TreeStatus.ACTIVE:
            errors = validate_snapshot(snapshot)
            if errors:
                raise TreeStructureError(errors, "Change refused: active tree would become invalid: " + "; ".join(errors))
        self._snapshot = snapshot
        self.updated_at = datetime.now(timezone.utc)

    def add_node(self, node: DecisionNode) -> None:
        self.add_nodes([node])

    def add_nodes(self, nodes: Iterable[DecisionNode]) -> None:
        """Add or replace nodes as one change; their commands are built here."""
        nodes = list(nodes)
        built: dict[str, NodeCommand] = {}
        failed: dict[str, str] = {}
        for node in nodes:
            if node.tree_id != self.id:
                raise ValueError(f"Node '{node.id}' belongs to tree '{node.tree_id}', not '{self.id}'")
            try:
                built[node.id] = self._factory.create(node.configuration)
            except CommandConfigurationError as exc:
                logger.warning("Tree %s: node %s configuration error: %s", self.id, node.id, exc.message)
                failed[node.id] = exc.message

        with self._lock:
            current = self._snapshot
            new_nodes = dict(current.nodes)
            new_commands = dict(current.commands)
            new_errors = dict(current.config_errors)
            for node in nodes:
                new_nodes[node.id] = node
                if node.id in built:
                    new_commands[node.id] = built[node.id]
                    new_errors.pop(node.id, None)
                else:
                    new_commands.pop(node.id, None)
                    new_errors[node.id] = failed[node.id]
            try:
                self._publish(
                    replace(
                        current,
                        nodes=MappingProxyType(new_nodes),
                        commands=MappingProxyType(new_commands),
                        config_errors=MappingProxyType(new_errors),
                    )
                )
            except TreeStructureError:
                for command in built.values():
                    command.close()
                raise

    def remove_node(self, node_id: str) -> bool:
        """Remove a non-root node. Returns False if the node is not in the tree."""
        with self._lock:
            current = self._snapshot
            if node_id == current.root_node_id:
                raise ValueError(f"Cannot remove root node '{node_id}'")
            if node_id not in current.nodes:
                return False
            new_nodes = dict(current.nodes)
            new_commands = dict(current.commands)
            new_errors = dict(current.config_errors)
            del new_nodes[node_id]
            new_commands.pop(node_id, None)
            new_errors.pop(node_id, None)
            # The removed command is not closed: evaluations holding the previous snapshot may still use it.
            self._publish(
                replace(
                    current,
                    nodes=MappingProxyType(new_nodes),
                    commands=MappingProxyType(new_commands),
                    config_errors=MappingProxyType(new_errors),
                )
            )
        return True

    def set_root_node(self, node_id: str) -> None:
        with self._lock:
            current = self._snapshot
            if node_id not in current.nodes:
                raise ValueError(f"Node '{node_id}' is not part of tree '{self.id}'")
            self._publish(replace(current, root_node_id=node_id))

    def validate_tree_structure(self) -> list[str]:
        start = time.perf_counter()
        errors = validate_snapshot(self._snapshot)
        log_validation_result(logger, self.id, errors, time.perf_counter() - start)
        return errors

    def validate(self) -> ValidationResult:
        errors = self.validate_tree_structure()
        return ValidationResult(valid=not errors, errors=errors)

    def activate(self) -> None:
        """Raise TreeStructureError (status unchanged) if the structure is invalid."""
        with self._lock:
            current = self._snapshot
            errors = validate_snapshot(current)
            log_validation_result(logger, self.id, errors)
            if errors:
                raise TreeStructureError(errors)
            self._publish(replace(current, status=TreeStatus.ACTIVE))
        logger.info("Tree %s activated (%d nodes)", self.id, len(current.nodes))

    def deactivate(self) -> None:
        with self._lock:
            self._publish(replace(self._snapshot, status=TreeStatus.INACTIVE))
        logger.info("Tree %s deactivated", self.id)

    def close(self) -> None:
        """Release adapter resources held by node commands."""
        for command in self._snapshot.commands.values():
            command.close()

    # Evaluation

    def evaluate(
        self,
        customer_payload: Union[CustomerPayload, Mapping[str, Any]],
        *,
        request_id: Optional[str] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> PromotionResult:
        """
        Walk the tree from the root for one customer.

        Raises DecisionTreeExecutionError if the tree is not active, a node is
        missing or fails, a cycle is hit, or a node yields the wrong kind of result.
        """
        snapshot = self._snapshot
        if snapshot.status != TreeStatus.ACTIVE:
            raise DecisionTreeExecutionError(
                f"Decision tree is not active (status: {snapshot.status.value})", tree_id=self.id
            )
        root_id = snapshot.root_node_id
        if not root_id or root_id not in snapshot.nodes:
            raise DecisionTreeExecutionError("Root node is not set or missing", tree_id=self.id, node_id=root_id)

        customer = (
            customer_payload
            if isinstance(customer_payload, CustomerPayload)
            else CustomerPayload.model_validate(customer_payload)
        )
        context = ExecutionContext(customer, request_id=request_id or str(uuid.uuid4()), tree_id=self.id)
        logger.debug("Evaluating tree %s for customer %s (request %s)", self.id, customer.customer_id, context.request_id)

        visited: set[str] = set()
        current_id = root_id
        while True:
            if current_id in visited:
                raise DecisionTreeExecutionError(
                    f"Circular reference detected at node '{current_id}'", tree_id=self.id, node_id=current_id
                )
            visited.add(current_id)
            node = snapshot.nodes.get(current_id)
            if node is None:
                raise DecisionTreeExecutionError(
                    f"Node '{current_id}' not found", tree_id=self.id, node_id=current_id
                )
            command = snapshot.commands.get(current_id)
            if command is None:
                raise DecisionTreeExecutionError(
                    f"Node '{current_id}' has no executable command: "
                    f"{snapshot.config_errors.get(current_id, 'not configured')}",
                    tree_id=self.id,
                    node_id=current_id,
                )

            try:
                result = self._execute_node(node, command, context, audit_sink)
            except DecisionTreeExecutionError:
                raise
            except Exception as exc:
                raise DecisionTreeExecutionError(
                    f"Unexpected error executing node '{current_id}': {exc}", tree_id=self.id, node_id=current_id
                ) from exc

            if not result.success:
                raise DecisionTreeExecutionError(
                    f"Node '{current_id}' failed: {result.error_message}", tree_id=self.id, node_id=current_id
                )

            if node.node_type == NodeType.CALCULATION:
                if isinstance(result.payload, PromotionResult):
                    logger.info(
                        "Tree %s request %s: %s (eligible=%s, path=%d nodes)",
                        self.id,
                        context.request_id,
                        result.payload.promotion_name,
                        result.payload.eligible,
                        len(visited),
                    )
                    return result.payload
                raise DecisionTreeExecutionError(
                    f"Calculation node '{current_id}' did not produce a promotion result",
                    tree_id=self.id,
                    node_id=current_id,
                )

            next_id = node.resolve_next(result.payload)
            if not next_id:
                raise DecisionTreeExecutionError(
                    f"Condition node '{current_id}' did not produce a valid next node "
                    f"(result: {result.payload!r})",
                    tree_id=self.id,
                    node_id=current_id,
                )
            current_id = next_id

    def _execute_node(
        self,
        node: DecisionNode,
        command: NodeCommand,
        context: ExecutionContext,
        audit_sink: Optional[AuditSink],
    ) -> NodeResult:
        input_snapshot = context.snapshot()
        start = time.perf_counter()
        result = command.execute(context)
        duration_ms = (time.perf_counter() - start) * 1000

        if not result.success:
            status = AuditStatus.FAILURE
        elif result.fallback_used:
            status = AuditStatus.FALLBACK
        else:
            status = AuditStatus.SUCCESS
        log_node_execution(
            logger,
            self.id,
            node.id,
            node.command_type.value,
            context.request_id,
            result.success,
            duration_ms,
            result.error_message,
            result.fallback_used,
        )
        emit_audit(
            audit_sink,
            AuditRecord(
                request_id=context.request_id,
                tree_id=self.id,
                node_id=node.id,
                node_type=node.node_type.value,
                command_type=node.command_type.value,
                input_snapshot=input_snapshot,
                output_snapshot=result.summary(),
                duration_ms=duration_ms,
                status=status,
                error_message=result.error_message or result.fallback_reason,
            ),
        )
        return result

    # Construction from JSON definitions

    @classmethod
    def from_definition(
        cls,
        definition: Mapping[str, Any],
        command_factory: Optional[CommandFactory] = None,
    ) -> "DecisionTree":
        """
        Build a tree from {id, name, description?, rootNodeId, status?, nodes: [...]}.

        Nodes use the DecisionNode aliases (id, configuration, trueNodeId, ...);
        treeId defaults to the tree's id. status "active" activates the tree.
        """
        tree = cls(
            str(definition["id"]),
            str(definition.get("name") or definition["id"]),
            description=definition.get("description"),
            command_factory=command_factory,
        )
        nodes = [DecisionNode.model_validate({"treeId": tree.id, **raw}) for raw in definition.get("nodes") or []]
        tree.add_nodes(nodes)
        root_id = definition.get("rootNodeId") or definition.get("root_node_id")
        if root_id:
            tree.set_root_node(root_id)
        if str(definition.get("status") or "").lower() == TreeStatus.ACTIVE.value:
            tree.activate()
        return tree

    def to_definition(self) -> dict[str, Any]:
        snapshot = self._snapshot
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": snapshot.status.value,
            "rootNodeId": snapshot.root_node_id,
            "nodes": [n.model_dump(mode="json", by_alias=True) for n in snapshot.nodes.values()],
        }

    def __repr__(self) -> str:
        return f"DecisionTree(id={self.id!r}, status={self.status.value!r}, nodes={len(self.nodes)})"
