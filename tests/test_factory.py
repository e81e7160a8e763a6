"""Tests for the command factory registry."""

import pytest

from promotion_engine.commands import (
    CommandFactory,
    DatabaseQueryCommand,
    ExpressionCommand,
    ExternalSystemCommand,
    RuleEngineCommand,
)
from promotion_engine.commands.rule_engine import DeclarativeRuleEngine
from promotion_engine.exceptions import CommandConfigurationError
from promotion_engine.models import CommandType, NodeType


def test_default_registers_all_backends():
    registered = CommandFactory.default().registered_commands()
    assert set(registered) == {"expression", "rule_engine", "external_system", "database_query"}
    assert registered["expression"] == ["condition", "calculation"]


@pytest.mark.parametrize(
    "command_type, parameters, expected",
    [
        ("Expression", {"expression": "creditScore > 600"}, ExpressionCommand),
        ("RuleEngine", {"rules": [{"name": "r", "then": {"conditionResult": True}}]}, RuleEngineCommand),
        ("ExternalSystem", {"systemType": "REST", "endpoint": "http://x.test"}, ExternalSystemCommand),
        ("DatabaseQuery", {"connectionString": "sqlite://", "queryTemplate": "SELECT 1"}, DatabaseQueryCommand),
    ],
)
def test_create_builds_matching_command(make_config, command_type, parameters, expected):
    command = CommandFactory.default().create(make_config("condition", command_type, **parameters))
    assert isinstance(command, expected)
    assert command.node_id == "N1"
    command.close()


def test_rule_engine_nodes_share_the_factory_engine(make_config, context):
    engine = DeclarativeRuleEngine()
    engine.register("credit", [{"name": "approve", "then": {"conditionResult": True}}])
    factory = CommandFactory.default(rule_engine=engine)
    command = factory.create(make_config("condition", "rules", None, node_id="CREDIT", ruleName="credit"))
    assert command.rule_set is engine.lookup("credit")
    assert command.execute(context).payload is True
    factory.create(make_config("condition", "rules", None, node_id="INLINE", rules=[{"name": "r", "then": {"x": 1}}]))
    assert not engine.has_rule_set("INLINE")


def test_unregistered_command_type_rejected(make_config):
    factory = CommandFactory.default()
    assert factory.unregister(CommandType.DATABASE_QUERY)
    assert not factory.unregister(CommandType.DATABASE_QUERY)
    with pytest.raises(CommandConfigurationError, match="no command registered"):
        factory.create(make_config("condition", "database_query", connectionString="sqlite://", queryTemplate="SELECT 1"))


def test_unsupported_node_type_rejected(make_config):
    factory = CommandFactory.default()
    factory.register(CommandType.EXPRESSION, ExpressionCommand, node_types=(NodeType.CONDITION,))
    assert factory.is_supported(CommandType.EXPRESSION, NodeType.CONDITION)
    assert not factory.is_supported(CommandType.EXPRESSION, NodeType.CALCULATION)
    with pytest.raises(CommandConfigurationError, match="do not support calculation"):
        factory.create(make_config("calculation", "expression", "1"))


def test_creator_errors_become_configuration_errors(make_config):
    def broken(configuration):
        raise ValueError("pool exhausted")

    factory = CommandFactory()
    factory.register(CommandType.EXPRESSION, broken)
    with pytest.raises(CommandConfigurationError, match="pool exhausted") as exc_info:
        factory.create(make_config("condition", "expression", "1"))
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_command_configuration_errors_pass_through(make_config):
    with pytest.raises(CommandConfigurationError, match="expression is required"):
        CommandFactory.default().create(make_config("condition", "expression"))
