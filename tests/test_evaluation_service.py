"""Tests for the registry-backed evaluation service."""

import uuid
from decimal import Decimal

import pytest

from promotion_engine.audit import AuditStatus, InMemoryAuditSink, LoggingAuditSink
from promotion_engine.exceptions import DecisionTreeExecutionError
from promotion_engine.models.decision_tree import DecisionTree
from promotion_engine.services import PromotionEvaluationService, TreeRegistry


class BrokenSink:
    def record(self, record):
        raise IOError("audit store offline")


@pytest.fixture
def registry(t1_tree):
    registry = TreeRegistry()
    registry.register(t1_tree)
    return registry


def test_evaluate_by_tree_id(registry, vip_customer):
    sink = InMemoryAuditSink()
    service = PromotionEvaluationService(registry, audit_sink=sink)
    result = service.evaluate("T1", vip_customer, request_id="req-svc")
    assert result.discount_amount == Decimal("40000")
    assert [r.node_id for r in sink.for_request("req-svc")] == ["INCOME_CHECK", "VIP_CALC"]


def test_request_id_generated_when_absent(registry, vip_customer):
    sink = InMemoryAuditSink()
    PromotionEvaluationService(registry, audit_sink=sink).evaluate("T1", vip_customer)
    request_ids = {r.request_id for r in sink.records}
    assert len(request_ids) == 1
    uuid.UUID(request_ids.pop())


def test_unknown_tree(registry, vip_customer):
    service = PromotionEvaluationService(registry, audit_sink=InMemoryAuditSink())
    with pytest.raises(DecisionTreeExecutionError, match="Decision tree 'T404' not found") as exc_info:
        service.evaluate("T404", vip_customer)
    assert exc_info.value.tree_id == "T404"


def test_failing_audit_sink_does_not_fail_evaluation(registry, vip_customer, caplog):
    service = PromotionEvaluationService(registry, audit_sink=BrokenSink())
    with caplog.at_level("ERROR", logger="promotion_engine.audit"):
        result = service.evaluate("T1", vip_customer)
    assert result.promotion_type == "VIP"
    assert "Audit sink BrokenSink failed" in caplog.text


def test_default_sink_logs_audit_lines(registry, vip_customer, caplog):
    service = PromotionEvaluationService(registry)
    assert isinstance(service.audit_sink, LoggingAuditSink)
    with caplog.at_level("INFO", logger="promotion_engine.audit"):
        service.evaluate("T1", vip_customer, request_id="req-log")
    assert caplog.text.count('"event": "audit"') == 2
    assert "req-log" in caplog.text


def test_execution_errors_propagate(registry, vip_customer, t1_tree):
    t1_tree.deactivate()
    sink = InMemoryAuditSink()
    with pytest.raises(DecisionTreeExecutionError, match="not active"):
        PromotionEvaluationService(registry, audit_sink=sink).evaluate("T1", vip_customer)
    assert sink.records == []


def test_fallback_is_audited(make_node, vip_customer):
    tree = DecisionTree("EXT", "Partner check")
    tree.add_nodes(
        [
            make_node(
                "PARTNER_CHECK",
                "Condition",
                "ExternalSystem",
                true_id="YES",
                false_id="NO",
                tree_id="EXT",
                systemType="HTTP",
                endpoint="http://127.0.0.1:9/unreachable",
                timeoutSeconds=0.5,
                fallbackConditionValue=True,
            ),
            make_node("YES", "Calculation", "Expression", "10", tree_id="EXT"),
            make_node("NO", "Calculation", "Expression", "0", tree_id="EXT"),
        ]
    )
    tree.set_root_node("PARTNER_CHECK")
    tree.activate()
    registry = TreeRegistry()
    registry.register(tree)
    sink = InMemoryAuditSink()
    result = PromotionEvaluationService(registry, audit_sink=sink).evaluate("EXT", vip_customer)
    assert result.discount_amount == Decimal("10")
    statuses = [r.status for r in sink.records]
    assert statuses == [AuditStatus.FALLBACK, AuditStatus.SUCCESS]
    assert sink.records[0].error_message
    tree.close()


def test_registry_operations(t1_tree):
    registry = TreeRegistry()
    assert registry.register(t1_tree) is None
    assert "T1" in registry
    assert len(registry) == 1
    replacement = DecisionTree("T1", "Replacement")
    assert registry.register(replacement) is t1_tree
    assert registry.get("T1") is replacement
    assert registry.list_ids() == ["T1"]
    assert registry.remove("T1") is replacement
    assert registry.get("T1") is None
    assert registry.remove("T1") is None
