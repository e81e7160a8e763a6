"""Tests for expression-backed node commands."""

from decimal import Decimal

import pytest

from promotion_engine.commands.expression import ExpressionCommand, evaluate_expression
from promotion_engine.exceptions import CommandConfigurationError, ExpressionEvaluationError
from promotion_engine.models import NodeConfiguration, PromotionResult


def test_condition_true_and_false(make_config, context):
    assert ExpressionCommand(make_config("condition", "expression", "annualIncome >= 1000000")).execute(context).payload is True
    assert ExpressionCommand(make_config("condition", "expression", "creditScore < 700")).execute(context).payload is False


def test_condition_can_read_customer_mapping_and_params(make_config, context):
    command = ExpressionCommand(
        make_config(
            "condition",
            "expression",
            "customer['accountType'] == param_tier and customer.region in param_regions",
            tier="VIP",
            regions=["TW-TPE", "TW-TXG"],
        )
    )
    assert command.execute(context).payload is True


def test_condition_sees_accumulated_context(make_config, context):
    context.set("partnerScore", 90)
    command = ExpressionCommand(make_config("condition", "expression", "partnerScore > 80"))
    assert command.execute(context).payload is True


def test_calculation_from_number(make_config, context):
    command = ExpressionCommand(
        make_config(
            "calculation",
            "expression",
            "annualIncome * 0.02",
            promotionName="VIP Income Reward",
            promotionType="VIP",
            validityDays=90,
        )
    )
    result = command.execute(context)
    assert result.success
    promo = result.payload
    assert isinstance(promo, PromotionResult)
    assert promo.discount_amount == Decimal("40000")
    assert promo.promotion_name == "VIP Income Reward"
    assert promo.promotion_type == "VIP"
    assert promo.eligible is True
    assert promo.additional_details["calculationMethod"] == "EXPRESSION"
    assert promo.additional_details["nodeId"] == "N1"


def test_calculation_from_mapping(make_config, context):
    command = ExpressionCommand(
        make_config(
            "calculation",
            "expression",
            "{'discountAmount': round(min(annualIncome * 0.001, 500), 2), 'promotionName': 'Capped', "
            "'promotionType': 'CAP', 'discountPercentage': 2.5, 'eligible': creditScore > 900}",
        )
    )
    promo = command.execute(context).payload
    assert promo.discount_amount == Decimal("500")
    assert promo.discount_percentage == Decimal("2.5")
    assert promo.promotion_name == "Capped"
    assert promo.eligible is False


def test_calculation_percentage_derived_from_balance(make_config, context):
    promo = ExpressionCommand(make_config("calculation", "expression", "100")).execute(context).payload
    assert promo.discount_percentage == Decimal("5.0000")


def test_calculation_non_numeric_fails(make_config, context):
    result = ExpressionCommand(make_config("calculation", "expression", "'lots'")).execute(context)
    assert not result.success
    assert "non-numeric" in result.error_message


def test_negative_amount_fails_validation(make_config, context):
    result = ExpressionCommand(make_config("calculation", "expression", "0 - 10")).execute(context)
    assert not result.success


def test_unknown_name_is_a_failed_result(make_config, context):
    result = ExpressionCommand(make_config("condition", "expression", "missingField > 3")).execute(context)
    assert not result.success
    assert "missingField" in result.error_message


def test_syntax_error_rejected_at_construction(make_config):
    with pytest.raises(CommandConfigurationError, match="invalid expression"):
        ExpressionCommand(make_config("condition", "expression", "annualIncome >="))


def test_missing_expression_rejected(make_config):
    with pytest.raises(CommandConfigurationError, match="expression is required"):
        ExpressionCommand(make_config("condition", "expression", None))


def test_expression_from_parameters(context):
    configuration = NodeConfiguration(
        node_id="N1",
        node_type="condition",
        command_type="expression",
        parameters={"expression": "transactionCount > 10"},
    )
    command = ExpressionCommand(configuration)
    assert command.execute(context).payload is True


def test_decimal_and_float_arithmetic():
    assert evaluate_expression("x * 0.1 + 0.2", {"x": Decimal("10")}) == Decimal("1.2")
    assert evaluate_expression("max(x, 2.5)", {"x": Decimal("2")}) == 2.5


def test_division_by_zero_raises_evaluation_error():
    with pytest.raises(ExpressionEvaluationError):
        evaluate_expression("x / 0", {"x": Decimal("1")})
