"""Tests for scenario execution against decision trees."""

import json
from decimal import Decimal
from pathlib import Path

import pytest

from promotion_engine.models.decision_tree import DecisionTree
from promotion_engine.services import ScenarioCase, load_scenarios, run_all_scenarios, run_scenario

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


@pytest.fixture
def example_tree():
    definition = json.loads((EXAMPLES / "vip_promotion_tree.json").read_text(encoding="utf-8"))
    tree = DecisionTree.from_definition(definition)
    yield tree
    tree.close()


def _case(customer, **expected):
    return ScenarioCase.model_validate({"id": "case", "customer": customer.model_dump(by_alias=True), **expected})


def test_example_scenarios_all_pass(example_tree):
    suite = run_all_scenarios(example_tree, load_scenarios(EXAMPLES / "vip_promotion_scenarios.json"))
    assert suite.total == 3
    assert suite.failed == 0, [r.to_dict() for r in suite.results if not r.passed]
    standard = next(r for r in suite.results if r.scenario_id == "standard-active")
    assert standard.actual_path == ["INCOME_CHECK", "CREDIT_CHECK", "STANDARD_CALC"]
    assert standard.discount_amount == Decimal("120")


def test_path_mismatch_fails(t1_tree, vip_customer):
    result = run_scenario(t1_tree, _case(vip_customer, expectedPath=["INCOME_CHECK", "REJECT_CALC"]))
    assert not result.passed
    assert result.actual_path == ["INCOME_CHECK", "VIP_CALC"]


def test_amount_and_type_expectations(t1_tree, vip_customer):
    assert run_scenario(t1_tree, _case(vip_customer, expectedDiscountAmount=40000, expectedPromotionType="VIP")).passed
    assert not run_scenario(t1_tree, _case(vip_customer, expectedDiscountAmount=1)).passed
    assert not run_scenario(t1_tree, _case(vip_customer, expectedEligible=False)).passed


def test_expected_error(t1_tree, vip_customer):
    t1_tree.deactivate()
    result = run_scenario(t1_tree, _case(vip_customer, expectError=True))
    assert result.passed
    assert "not active" in result.error_message
    assert result.actual_path == []


def test_unexpected_error_fails(t1_tree, vip_customer):
    t1_tree.deactivate()
    result = run_scenario(t1_tree, _case(vip_customer))
    assert not result.passed
    assert result.eligible is None


def test_breaking_changes_against_previous_run(t1_tree, vip_customer):
    case = _case(vip_customer, expectedPromotionType="VIP")
    previous = [r.to_dict() for r in run_all_scenarios(t1_tree, [case]).results]
    t1_tree.deactivate()
    suite = run_all_scenarios(t1_tree, [case], previous_results=previous)
    assert suite.failed == 1
    assert suite.breaking_changes == ["Scenario case was passing, now failing"]
    assert suite.to_dict()["failed"] == 1
