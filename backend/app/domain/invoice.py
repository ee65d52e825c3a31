"""
Invoice Domain Model

A Lightning payment request issued for one checkout. The BOLT11 string is
the identifier: every checkout gets a fresh one, and an invoice only ever
moves from unsettled to settled.
"""
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime, timezone


class Invoice(BaseModel):
    """
    Invoice domain model

    Fields:
        bolt11: BOLT11 payment request, doubles as the invoice ID
        amount: Requested amount in satoshis
        memo: Description shown in the payer's wallet
        settled: Whether the backend confirmed payment
        created_at: When the invoice was issued
    """

    bolt11: str = Field(..., description="BOLT11 payment request")
    amount: int = Field(..., description="Amount in satoshis", gt=0)
    memo: str = Field("", description="Invoice description")
    settled: bool = Field(False, description="Payment confirmed")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Issue timestamp",
    )

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> str:
        return self.bolt11

    def mark_settled(self) -> "Invoice":
        """Return the settled copy of this invoice"""
        return self.model_copy(update={"settled": True})
