"""
Evaluation entry point over a registry of trees.

The registry is the key-value lookup the engine assumes; persistence and
versioning of tree definitions live outside the engine.
"""

import logging
import threading
import time
import uuid
from typing import Any, Mapping, Optional, Union

from promotion_engine.audit import AuditSink, LoggingAuditSink
from promotion_engine.exceptions import DecisionTreeExecutionError
from promotion_engine.models.customer import CustomerPayload
from promotion_engine.models.decision_tree import DecisionTree
from promotion_engine.models.results import PromotionResult

logger = logging.getLogger(__name__)


class TreeRegistry:
    """Thread-safe tree id -> DecisionTree map."""

    def __init__(self):
        self._lock = threading.Lock()
        self._trees: dict[str, DecisionTree] = {}

    def register(self, tree: DecisionTree) -> Optional[DecisionTree]:
        """Add or replace a tree; returns the tree it replaced, if any."""
        with self._lock:
            previous = self._trees.get(tree.id)
            self._trees[tree.id] = tree
        if previous is not None and previous is not tree:
            logger.info("Replaced tree %s", tree.id)
        return previous

    def get(self, tree_id: str) -> Optional[DecisionTree]:
        with self._lock:
            return self._trees.get(tree_id)

    def remove(self, tree_id: str) -> Optional[DecisionTree]:
        with self._lock:
            return self._trees.pop(tree_id, None)

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._trees)

    def __contains__(self, tree_id: object) -> bool:
        with self._lock:
            return tree_id in self._trees

    def __len__(self) -> int:
        with self._lock:
            return len(self._trees)


class PromotionEvaluationService:
    """Resolves a tree by id and evaluates it with a correlation id and an audit sink."""

    def __init__(self, registry: Optional[TreeRegistry] = None, audit_sink: Optional[AuditSink] = None):
        self.registry = registry or TreeRegistry()
        self.audit_sink = audit_sink if audit_sink is not None else LoggingAuditSink()

    def evaluate(
        self,
        tree_id: str,
        customer_payload: Union[CustomerPayload, Mapping[str, Any]],
        request_id: Optional[str] = None,
    ) -> PromotionResult:
        request_id = request_id or str(uuid.uuid4())
        tree = self.registry.get(tree_id)
        if tree is None:
            raise DecisionTreeExecutionError(f"Decision tree '{tree_id}' not found", tree_id=tree_id)

        start = time.perf_counter()
        try:
            result = tree.evaluate(customer_payload, request_id=request_id, audit_sink=self.audit_sink)
        except DecisionTreeExecutionError as exc:
            logger.warning(
                "Evaluation %s on tree %s failed after %.1f ms: %s",
                request_id,
                tree_id,
                (time.perf_counter() - start) * 1000,
                exc,
            )
            raise
        logger.info(
            "Evaluation %s on tree %s: %s eligible=%s amount=%s (%.1f ms)",
            request_id,
            tree_id,
            result.promotion_type,
            result.eligible,
            result.discount_amount,
            (time.perf_counter() - start) * 1000,
        )
        return result
