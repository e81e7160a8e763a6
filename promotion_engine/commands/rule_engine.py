"""
Rule-engine backed node commands.

Rule sets compile into immutable CompiledRuleSet objects that the node
command holds, so a node keeps the rules it was built with until the tree
publishes a replacement node. The bundled engine evaluates JSON rule sets of
the form:

    {"rules": [
        {"name": "vip", "priority": 10,
         "when": "accountType == 'VIP' and annualIncome >= 1000000",
         "then": {"conditionResult": true},
         "compute": {"calculationResult": "annualIncome * 0.02"},
         "stop": true}
    ]}

Rules are tried in descending priority; each matching rule merges its
literal `then` values and its computed values into the results.
"""

import json
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from promotion_engine.commands.base import (
    NodeCommand,
    build_promotion_result,
    coerce_condition,
    to_decimal,
)
from promotion_engine.commands.expression import check_expression, evaluate_expression, evaluation_names
from promotion_engine.config import get_settings
from promotion_engine.exceptions import CommandConfigurationError, RuleEvaluationError
from promotion_engine.models.context import ExecutionContext
from promotion_engine.models.node import CommandType, NodeConfiguration, NodeType
from promotion_engine.models.results import NodeResult

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Rule set models
# -----------------------------------------------------------------------------


class RuleDefinition(BaseModel):
    """One rule: a condition plus the results it contributes when it fires."""

    name: str = Field(..., min_length=1)
    when: str = Field("True", description="Condition expression over the facts")
    then: dict[str, Any] = Field(default_factory=dict, description="Literal results set when the rule fires")
    compute: dict[str, str] = Field(default_factory=dict, description="Results computed from expressions")
    priority: int = Field(0, description="Higher priority rules are tried first")
    stop: bool = Field(False, description="Stop evaluating further rules once this one fires")

    model_config = {"extra": "forbid", "frozen": True}


class RuleSet(BaseModel):
    rules: list[RuleDefinition] = Field(..., min_length=1)


@dataclass(frozen=True)
class RuleOutcome:
    fired: list[str]
    results: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompiledRuleSet:
    """Validated rules in firing order. Never changes once compiled."""

    name: str
    rules: tuple[RuleDefinition, ...]

    def execute(self, facts: Mapping[str, Any]) -> RuleOutcome:
        fired: list[str] = []
        results: dict[str, Any] = {}
        for rule in self.rules:
            scope = {**facts, "results": dict(results)}
            if not coerce_condition(evaluate_expression(rule.when, scope)):
                continue
            fired.append(rule.name)
            results.update(rule.then)
            for key, expr in rule.compute.items():
                results[key] = evaluate_expression(expr, {**facts, "results": dict(results)})
            if rule.stop:
                break
        logger.debug("Rule set %s fired %s", self.name, fired)
        return RuleOutcome(fired=fired, results=results)


class RuleEngine(Protocol):
    """Rule runtime the command talks to."""

    def compile(self, rule_name: str, source: Union[str, Mapping[str, Any], list]) -> CompiledRuleSet: ...

    def lookup(self, rule_name: str) -> Optional[CompiledRuleSet]: ...


# -----------------------------------------------------------------------------
# DeclarativeRuleEngine
# -----------------------------------------------------------------------------


class DeclarativeRuleEngine:
    """
    In-process rule engine over JSON rule sets; conditions use the expression evaluator.

    compile() only validates and returns a CompiledRuleSet. register() also
    keeps it in the engine's library of named sets that nodes can refer to
    by `ruleName`.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._rule_sets: dict[str, CompiledRuleSet] = {}

    def compile(self, rule_name: str, source: Union[str, Mapping[str, Any], list]) -> CompiledRuleSet:
        try:
            raw = json.loads(source) if isinstance(source, str) else source
            if isinstance(raw, list):
                raw = {"rules": raw}
            rule_set = RuleSet.model_validate(dict(raw))
        except (json.JSONDecodeError, TypeError, ValueError, PydanticValidationError) as exc:
            raise RuleEvaluationError(f"Invalid rule set '{rule_name}': {exc}", rule_name=rule_name) from exc
        for rule in rule_set.rules:
            try:
                check_expression(rule.when, rule.name)
                for expr in rule.compute.values():
                    check_expression(expr, rule.name)
            except CommandConfigurationError as exc:
                raise RuleEvaluationError(str(exc), rule_name=rule_name) from exc
        ordered = tuple(sorted(rule_set.rules, key=lambda r: r.priority, reverse=True))
        return CompiledRuleSet(name=rule_name, rules=ordered)

    def register(self, rule_name: str, source: Union[str, Mapping[str, Any], list]) -> CompiledRuleSet:
        """Compile and publish a named rule set; commands built earlier keep the set they resolved."""
        compiled = self.compile(rule_name, source)
        with self._lock:
            replaced = rule_name in self._rule_sets
            self._rule_sets[rule_name] = compiled
        logger.info("%s rule set %s (%d rules)", "Replaced" if replaced else "Registered", rule_name, len(compiled.rules))
        return compiled

    def lookup(self, rule_name: str) -> Optional[CompiledRuleSet]:
        with self._lock:
            return self._rule_sets.get(rule_name)

    def has_rule_set(self, rule_name: str) -> bool:
        return self.lookup(rule_name) is not None

    def remove(self, rule_name: str) -> bool:
        with self._lock:
            return self._rule_sets.pop(rule_name, None) is not None

    def execute(self, rule_name: str, facts: Mapping[str, Any]) -> RuleOutcome:
        rule_set = self.lookup(rule_name)
        if rule_set is None:
            raise RuleEvaluationError(f"Rule set '{rule_name}' is not registered", rule_name=rule_name)
        return rule_set.execute(facts)


# -----------------------------------------------------------------------------
# RuleEngineCommand
# -----------------------------------------------------------------------------


class RuleEngineCommand(NodeCommand):
    """
    Runs a rule set against the execution context.

    The rule set comes from configuration.expression (JSON) or the `rules`
    parameter and belongs to this command alone. Without either, `ruleName`
    must be registered in the engine; the set is resolved once, here, so a
    later re-registration does not reach commands already built.
    Firing no rule is a failure.
    """

    command_type = CommandType.RULE_ENGINE

    def __init__(self, configuration: NodeConfiguration, engine: Optional[RuleEngine] = None):
        super().__init__(configuration)
        self.engine: RuleEngine = engine or DeclarativeRuleEngine()
        self.rule_name = self.get_str_param("ruleName") or self.node_id
        source = configuration.expression or self.parameters.get("rules")
        if source:
            try:
                rule_set = self.engine.compile(self.rule_name, source)
            except RuleEvaluationError as exc:
                raise CommandConfigurationError(f"Node '{self.node_id}': {exc}") from exc
        else:
            rule_set = self.engine.lookup(self.rule_name)
            if rule_set is None:
                raise CommandConfigurationError(
                    f"Node '{self.node_id}': no rule set provided and '{self.rule_name}' is not registered"
                )
        self.rule_set: CompiledRuleSet = rule_set

    def do_execute(self, context: ExecutionContext) -> NodeResult:
        facts = evaluation_names(context, self.parameters)
        outcome = self.rule_set.execute(facts)
        if not outcome.fired:
            return NodeResult.failure(f"No rules fired in rule set '{self.rule_name}' on node '{self.node_id}'")
        results = outcome.results
        if self.node_type == NodeType.CONDITION:
            next_node = results.get("nextNodeId")
            if isinstance(next_node, str) and next_node.strip():
                return NodeResult.ok(next_node.strip())
            if "conditionResult" in results:
                return NodeResult.ok(coerce_condition(results["conditionResult"]))
            return NodeResult.ok(bool(results))

        raw_amount = results.get("calculationResult", results.get("discountAmount"))
        amount = to_decimal(raw_amount, None)
        if amount is None:
            return NodeResult.failure(
                f"Rule set '{self.rule_name}' produced no numeric calculationResult on node '{self.node_id}'"
            )
        eligible = results.get("eligible")
        return NodeResult.ok(
            build_promotion_result(
                context,
                name=results.get("promotionName") or self.get_str_param("promotionName", "Rule Engine Promotion"),
                promotion_type=results.get("promotionType") or self.get_str_param("promotionType", "RULE_BASED"),
                amount=amount,
                percentage=to_decimal(results.get("discountPercentage"), None),
                description=results.get("description") or self.get_str_param("description"),
                validity_days=self.get_int_param("validityDays", get_settings().default_validity_days),
                eligible=coerce_condition(eligible) if eligible is not None else True,
                details={
                    "calculationMethod": "RULE_ENGINE",
                    "ruleName": self.rule_name,
                    "firedRules": outcome.fired,
                    "nodeId": self.node_id,
                },
            )
        )
