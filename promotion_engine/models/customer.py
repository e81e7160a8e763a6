"""Customer payload submitted for promotion evaluation."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class CustomerPayload(BaseModel):
    """
    Customer facts an evaluation runs against.

    Field names are snake_case; the camelCase aliases are the names expressions,
    rules and external systems see (annualIncome, creditScore, ...).
    """

    customer_id: str = Field(..., min_length=1, alias="customerId", description="Customer identifier")
    account_type: str = Field(..., min_length=1, alias="accountType", description="Account type (e.g. VIP, PREMIUM, STANDARD)")
    annual_income: Decimal = Field(..., ge=0, alias="annualIncome", description="Annual income")
    credit_score: int = Field(..., ge=0, le=1000, alias="creditScore", description="Credit score, 0..1000")
    region: str = Field(..., min_length=1, alias="region", description="Region code")
    transaction_count: int = Field(..., ge=0, alias="transactionCount", description="Number of transactions")
    account_balance: Optional[Decimal] = Field(None, alias="accountBalance", description="Current account balance")
    transaction_history: Optional[list[dict[str, Any]]] = Field(
        None,
        alias="transactionHistory",
        description="Recent transactions, passed through to backends untouched",
    )

    model_config = {"frozen": True, "populate_by_name": True, "str_strip_whitespace": True}

    def to_facts(self) -> dict[str, Any]:
        """camelCase view used to seed the execution context."""
        return self.model_dump(by_alias=True)
