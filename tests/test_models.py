"""Unit tests for value objects: customer payload, node configuration, results, context."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from promotion_engine.models import (
    CommandType,
    CustomerPayload,
    DecisionNode,
    NodeConfiguration,
    NodeResult,
    NodeType,
    PromotionResult,
)
from promotion_engine.models.context import ExecutionContext


def _customer(**overrides):
    data = {
        "customerId": "C1",
        "accountType": "VIP",
        "annualIncome": 1200000,
        "creditScore": 750,
        "region": "TW",
        "transactionCount": 20,
    }
    data.update(overrides)
    return CustomerPayload.model_validate(data)


def test_customer_accepts_camel_case_and_exposes_facts():
    customer = _customer(accountBalance="1500.50")
    assert customer.customer_id == "C1"
    assert customer.annual_income == Decimal("1200000")
    assert customer.account_balance == Decimal("1500.50")
    facts = customer.to_facts()
    assert facts["annualIncome"] == Decimal("1200000")
    assert facts["creditScore"] == 750
    assert facts["transactionHistory"] is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"customerId": "   "},
        {"annualIncome": -1},
        {"creditScore": 1001},
        {"creditScore": -5},
        {"transactionCount": -1},
        {"region": ""},
    ],
)
def test_customer_rejects_invalid_values(overrides):
    with pytest.raises(ValidationError):
        _customer(**overrides)


def test_customer_is_immutable():
    customer = _customer()
    with pytest.raises(ValidationError):
        customer.credit_score = 10


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Expression", CommandType.EXPRESSION),
        ("SPEL", CommandType.EXPRESSION),
        ("RuleEngine", CommandType.RULE_ENGINE),
        ("DROOLS", CommandType.RULE_ENGINE),
        ("ExternalSystem", CommandType.EXTERNAL_SYSTEM),
        ("EXTERNAL_SYSTEM", CommandType.EXTERNAL_SYSTEM),
        ("database_query", CommandType.DATABASE_QUERY),
    ],
)
def test_command_type_parsing_is_lenient(raw, expected):
    config = NodeConfiguration.model_validate({"nodeType": "Condition", "commandType": raw})
    assert config.command_type is expected
    assert config.node_type is NodeType.CONDITION


def test_unknown_command_type_rejected():
    with pytest.raises(ValidationError):
        NodeConfiguration.model_validate({"nodeType": "Condition", "commandType": "Groovy"})


def test_node_inherits_configuration_node_id():
    node = DecisionNode.model_validate(
        {
            "id": "A",
            "treeId": "T",
            "configuration": {"nodeType": "Condition", "commandType": "Expression", "expression": "True"},
            "trueNodeId": "B",
            "falseNodeId": "C",
        }
    )
    assert node.configuration.node_id == "A"
    assert node.node_type is NodeType.CONDITION
    assert node.successors() == ("B", "C")


def test_node_rejects_mismatched_configuration_id():
    with pytest.raises(ValidationError, match="does not match"):
        DecisionNode(
            id="A",
            tree_id="T",
            configuration=NodeConfiguration(node_id="B", node_type="condition", command_type="expression"),
        )


def test_calculation_node_cannot_have_successors():
    with pytest.raises(ValidationError, match="cannot have successors"):
        DecisionNode(
            id="CALC",
            tree_id="T",
            configuration=NodeConfiguration(node_type="calculation", command_type="expression"),
            true_node_id="X",
        )


def test_resolve_next():
    node = DecisionNode(
        id="A",
        tree_id="T",
        configuration=NodeConfiguration(node_type="condition", command_type="expression"),
        true_node_id="YES",
        false_node_id="NO",
    )
    assert node.resolve_next(True) == "YES"
    assert node.resolve_next(False) == "NO"
    assert node.resolve_next(" OTHER ") == "OTHER"
    assert node.resolve_next("  ") is None
    assert node.resolve_next(None) is None
    assert node.resolve_next(1) is None


def test_promotion_result_validation():
    result = PromotionResult(promotion_name="VIP", promotion_type="VIP", discount_amount=Decimal("10"))
    assert result.promotion_id
    assert result.eligible is True
    assert result.has_discount
    with pytest.raises(ValidationError):
        PromotionResult(promotion_name="VIP", promotion_type="VIP", discount_amount=Decimal("-1"))
    with pytest.raises(ValidationError):
        PromotionResult(promotion_name="VIP", promotion_type="VIP", discount_percentage=Decimal("100.01"))
    with pytest.raises(ValidationError):
        PromotionResult(promotion_name=" ", promotion_type="VIP")


def test_node_result_constructors():
    assert NodeResult.ok(True).success
    fallback = NodeResult.fallback(False, "timeout")
    assert fallback.success and fallback.fallback_used and fallback.fallback_reason == "timeout"
    failure = NodeResult.failure("boom")
    assert not failure.success and failure.payload is None and failure.error_message == "boom"


def test_node_result_summary_serializes_promotion():
    promo = PromotionResult(promotion_name="VIP", promotion_type="VIP", discount_amount=Decimal("5"))
    summary = NodeResult.ok(promo).summary()
    assert summary["payload"]["promotionName"] == "VIP"
    assert summary["payload"]["discountAmount"] == "5"


def test_execution_context_seeded_with_customer_facts():
    ctx = ExecutionContext(_customer())
    assert ctx.request_id
    assert ctx.get("annualIncome") == Decimal("1200000")
    assert ctx.has("evaluationTime")
    ctx.set("score", 42)
    snap = ctx.snapshot()
    ctx.set("score", 43)
    assert snap["score"] == 42
    assert ctx.get("score") == 43
