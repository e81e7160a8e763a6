"""Promotion result and node result value objects."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class PromotionResult(BaseModel):
    """Offer produced by a calculation node."""

    promotion_id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="promotionId")
    promotion_name: str = Field(..., min_length=1, alias="promotionName")
    promotion_type: str = Field(..., min_length=1, alias="promotionType")
    discount_amount: Optional[Decimal] = Field(None, ge=0, alias="discountAmount")
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100, alias="discountPercentage")
    description: Optional[str] = Field(None)
    valid_until: Optional[datetime] = Field(None, alias="validUntil")
    additional_details: dict[str, Any] = Field(default_factory=dict, alias="additionalDetails")
    eligible: bool = Field(True, description="Whether the customer qualifies for the promotion")

    model_config = {"frozen": True, "populate_by_name": True, "str_strip_whitespace": True}

    @property
    def has_discount(self) -> bool:
        return bool(self.discount_amount) or bool(self.discount_percentage)


class NodeResult(BaseModel):
    """
    Outcome of executing one node command.

    payload is a bool (condition), a next-node id string (condition routing
    chosen by the command), a PromotionResult (calculation) or None on failure.
    """

    success: bool
    payload: Any = None
    error_message: Optional[str] = None
    fallback_used: bool = False
    fallback_reason: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def ok(cls, payload: Any) -> "NodeResult":
        return cls(success=True, payload=payload)

    @classmethod
    def fallback(cls, payload: Any, reason: str) -> "NodeResult":
        return cls(success=True, payload=payload, fallback_used=True, fallback_reason=reason)

    @classmethod
    def failure(cls, error_message: str) -> "NodeResult":
        return cls(success=False, error_message=error_message)

    def summary(self) -> dict[str, Any]:
        """JSON-friendly view for audit records."""
        payload = self.payload
        if isinstance(payload, PromotionResult):
            payload = payload.model_dump(mode="json", by_alias=True)
        return {
            "success": self.success,
            "payload": payload,
            "error_message": self.error_message,
            "fallback_used": self.fallback_used,
            "fallback_reason": self.fallback_reason,
        }
