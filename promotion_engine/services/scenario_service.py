"""
Scenario execution for decision tree regression checks.

- run_scenario: evaluate the tree for one customer, trace the node path, compare to expected.
- run_all_scenarios: run a suite, aggregate, optional comparison to a previous run.
"""

import json
import logging
import time
import uuid
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from promotion_engine.audit import InMemoryAuditSink
from promotion_engine.exceptions import DecisionTreeExecutionError
from promotion_engine.models.customer import CustomerPayload
from promotion_engine.models.decision_tree import DecisionTree

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Scenario models
# -----------------------------------------------------------------------------


class ScenarioCase(BaseModel):
    """Customer input plus the expected path and outcome."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    description: Optional[str] = None
    customer: CustomerPayload
    expected_path: list[str] = Field(default_factory=list, alias="expectedPath")
    expected_eligible: Optional[bool] = Field(None, alias="expectedEligible")
    expected_discount_amount: Optional[Decimal] = Field(None, alias="expectedDiscountAmount")
    expected_promotion_type: Optional[str] = Field(None, alias="expectedPromotionType")
    expect_error: bool = Field(False, alias="expectError", description="Scenario passes only if evaluation fails")

    model_config = {"populate_by_name": True}


class ScenarioResult:
    """Result of running a single scenario."""

    __slots__ = (
        "scenario_id",
        "passed",
        "actual_path",
        "expected_path",
        "eligible",
        "discount_amount",
        "promotion_type",
        "fallback_nodes",
        "execution_time_ms",
        "error_message",
    )

    def __init__(
        self,
        scenario_id: str,
        passed: bool,
        actual_path: list[str],
        expected_path: list[str],
        eligible: Optional[bool],
        discount_amount: Optional[Decimal],
        promotion_type: Optional[str],
        fallback_nodes: list[str],
        execution_time_ms: float,
        error_message: Optional[str] = None,
    ):
        self.scenario_id = scenario_id
        self.passed = passed
        self.actual_path = actual_path
        self.expected_path = expected_path
        self.eligible = eligible
        self.discount_amount = discount_amount
        self.promotion_type = promotion_type
        self.fallback_nodes = fallback_nodes
        self.execution_time_ms = execution_time_ms
        self.error_message = error_message

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "passed": self.passed,
            "actual_path": self.actual_path,
            "expected_path": self.expected_path,
            "eligible": self.eligible,
            "discount_amount": str(self.discount_amount) if self.discount_amount is not None else None,
            "promotion_type": self.promotion_type,
            "fallback_nodes": self.fallback_nodes,
            "execution_time_ms": self.execution_time_ms,
            "error_message": self.error_message,
        }


class ScenarioSuite:
    """Aggregated results of running all scenarios for a tree."""

    def __init__(
        self,
        tree_id: str,
        results: list[ScenarioResult],
        breaking_changes: Optional[list[str]] = None,
    ):
        self.tree_id = tree_id
        self.results = results
        self.total = len(results)
        self.passed = sum(1 for r in results if r.passed)
        self.failed = self.total - self.passed
        self.breaking_changes = breaking_changes or []

    def to_dict(self) -> dict[str, Any]:
        return {
            "tree_id": self.tree_id,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "breaking_changes": self.breaking_changes,
            "results": [r.to_dict() for r in self.results],
        }


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


def run_scenario(tree: DecisionTree, case: ScenarioCase) -> ScenarioResult:
    """Evaluate the tree for case.customer; the path comes from the audit records."""
    start = time.perf_counter()
    sink = InMemoryAuditSink()
    request_id = f"scenario-{case.id}-{uuid.uuid4().hex[:8]}"
    result = None
    error_message: Optional[str] = None

    try:
        result = tree.evaluate(case.customer, request_id=request_id, audit_sink=sink)
    except DecisionTreeExecutionError as exc:
        error_message = str(exc)
        logger.debug("Scenario %s ended with error: %s", case.id, error_message)

    elapsed_ms = (time.perf_counter() - start) * 1000
    records = sink.for_request(request_id)
    path = [r.node_id for r in records]
    fallback_nodes = [r.node_id for r in records if r.status.value == "FALLBACK"]

    if case.expect_error:
        passed = error_message is not None
    else:
        path_ok = (not case.expected_path) or path == case.expected_path
        eligible_ok = case.expected_eligible is None or (result is not None and result.eligible == case.expected_eligible)
        amount_ok = case.expected_discount_amount is None or (
            result is not None
            and result.discount_amount is not None
            and result.discount_amount == case.expected_discount_amount
        )
        type_ok = case.expected_promotion_type is None or (
            result is not None and result.promotion_type == case.expected_promotion_type
        )
        passed = error_message is None and path_ok and eligible_ok and amount_ok and type_ok

    return ScenarioResult(
        scenario_id=case.id,
        passed=passed,
        actual_path=path,
        expected_path=list(case.expected_path),
        eligible=result.eligible if result is not None else None,
        discount_amount=result.discount_amount if result is not None else None,
        promotion_type=result.promotion_type if result is not None else None,
        fallback_nodes=fallback_nodes,
        execution_time_ms=elapsed_ms,
        error_message=error_message,
    )


def run_all_scenarios(
    tree: DecisionTree,
    cases: list[ScenarioCase],
    previous_results: Optional[list[dict]] = None,
) -> ScenarioSuite:
    """Run all scenarios; optionally compare to previous_results for breaking changes."""
    results = [run_scenario(tree, case) for case in cases]
    breaking: list[str] = []
    if previous_results:
        prev_by_id = {r.get("scenario_id"): r for r in previous_results}
        for r in results:
            if not r.passed and prev_by_id.get(r.scenario_id, {}).get("passed"):
                breaking.append(f"Scenario {r.scenario_id} was passing, now failing")
    suite = ScenarioSuite(tree_id=tree.id, results=results, breaking_changes=breaking)
    logger.info("Tree %s scenarios: %d/%d passed", tree.id, suite.passed, suite.total)
    return suite


def load_scenarios(path: Union[str, Path]) -> list[ScenarioCase]:
    """Load a JSON list of scenario cases."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return [ScenarioCase.model_validate(item) for item in raw]
