"""Per-evaluation execution context."""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from promotion_engine.models.customer import CustomerPayload


class ExecutionContext:
    """
    Customer payload plus a mutable scratch map shared by the nodes of one evaluation.

    context_data starts with the customer facts (camelCase) and evaluationTime.
    Never shared between evaluations.
    """

    __slots__ = ("customer", "context_data", "request_id", "tree_id")

    def __init__(
        self,
        customer: CustomerPayload,
        request_id: Optional[str] = None,
        tree_id: Optional[str] = None,
        initial_data: Optional[dict[str, Any]] = None,
    ):
        self.customer = customer
        self.request_id = request_id or str(uuid.uuid4())
        self.tree_id = tree_id
        self.context_data: dict[str, Any] = customer.to_facts()
        self.context_data["evaluationTime"] = datetime.now(timezone.utc)
        if initial_data:
            self.context_data.update(initial_data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.context_data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.context_data[key] = value

    def has(self, key: str) -> bool:
        return key in self.context_data

    def snapshot(self) -> dict[str, Any]:
        """Shallow copy of the context data."""
        return dict(self.context_data)
