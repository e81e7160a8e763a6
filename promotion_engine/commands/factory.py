"""
Command factory: builds the NodeCommand for a node configuration.

Each command type is registered with a creator and the node types it
supports. Unknown command types, unsupported (command type, node type)
pairs and creator failures all surface as CommandConfigurationError.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from promotion_engine.commands.base import NodeCommand
from promotion_engine.commands.database_query import DatabaseQueryCommand
from promotion_engine.commands.expression import ExpressionCommand
from promotion_engine.commands.external import ExternalSystemCommand
from promotion_engine.commands.rule_engine import DeclarativeRuleEngine, RuleEngine, RuleEngineCommand
from promotion_engine.exceptions import CommandConfigurationError, PromotionEngineError
from promotion_engine.models.node import CommandType, NodeConfiguration, NodeType

logger = logging.getLogger(__name__)

CommandCreator = Callable[[NodeConfiguration], NodeCommand]

BOTH_NODE_TYPES = (NodeType.CONDITION, NodeType.CALCULATION)


@dataclass(frozen=True)
class CommandRegistration:
    creator: CommandCreator
    node_types: tuple[NodeType, ...]


class CommandFactory:
    """Registry of command creators keyed by CommandType."""

    def __init__(self):
        self._lock = threading.Lock()
        self._registry: dict[CommandType, CommandRegistration] = {}

    @classmethod
    def default(cls, rule_engine: Optional[RuleEngine] = None) -> "CommandFactory":
        """Factory with the four built-in backends; rule-engine nodes share one engine."""
        engine = rule_engine or DeclarativeRuleEngine()
        factory = cls()
        factory.register(CommandType.EXPRESSION, ExpressionCommand)
        factory.register(CommandType.RULE_ENGINE, lambda config: RuleEngineCommand(config, engine=engine))
        factory.register(CommandType.EXTERNAL_SYSTEM, ExternalSystemCommand)
        factory.register(CommandType.DATABASE_QUERY, DatabaseQueryCommand)
        return factory

    def register(
        self,
        command_type: CommandType,
        creator: CommandCreator,
        node_types: tuple[NodeType, ...] = BOTH_NODE_TYPES,
    ) -> None:
        """Register (or replace) the creator for command_type."""
        with self._lock:
            self._registry[command_type] = CommandRegistration(creator, tuple(node_types))
        logger.debug("Registered %s for %s", command_type.value, [t.value for t in node_types])

    def unregister(self, command_type: CommandType) -> bool:
        with self._lock:
            return self._registry.pop(command_type, None) is not None

    def is_supported(self, command_type: CommandType, node_type: NodeType) -> bool:
        with self._lock:
            registration = self._registry.get(command_type)
        return registration is not None and node_type in registration.node_types

    def registered_commands(self) -> dict[str, list[str]]:
        with self._lock:
            return {ct.value: [nt.value for nt in reg.node_types] for ct, reg in self._registry.items()}

    def create(self, configuration: NodeConfiguration) -> NodeCommand:
        with self._lock:
            registration = self._registry.get(configuration.command_type)
        if registration is None:
            raise CommandConfigurationError(
                f"Node '{configuration.node_id}': no command registered for '{configuration.command_type.value}'"
            )
        if configuration.node_type not in registration.node_types:
            raise CommandConfigurationError(
                f"Node '{configuration.node_id}': {configuration.command_type.value} commands "
                f"do not support {configuration.node_type.value} nodes"
            )
        try:
            return registration.creator(configuration)
        except CommandConfigurationError:
            raise
        except (PromotionEngineError, TypeError, ValueError) as exc:
            raise CommandConfigurationError(
                f"Node '{configuration.node_id}': cannot build {configuration.command_type.value} command: {exc}"
            ) from exc
