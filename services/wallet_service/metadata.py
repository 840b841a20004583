"""
Typed, versioned provenance document stored in ``Transaction.metadata``.

The document is an append-only list of events, each tagged by ``kind``, so a
recharge keeps its full history (requested -> auto approved / reviewed /
cancelled).
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

METADATA_VERSION = 1


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RechargeRequested(BaseModel):
    kind: Literal["recharge_requested"] = "recharge_requested"
    payment_method: str
    reference: Optional[str] = None
    exchange_rate_ves: Optional[Decimal] = None
    amount_bs: Optional[Decimal] = None  # server-side expected amount in bolivares
    at: datetime = Field(default_factory=_now)


class OrderPurchase(BaseModel):
    kind: Literal["order_purchase"] = "order_purchase"
    order_number: str
    at: datetime = Field(default_factory=_now)


class BankAutoApproved(BaseModel):
    kind: Literal["bank_auto_approved"] = "bank_auto_approved"
    verification_id: Optional[int] = None
    bank_code: Optional[int] = None
    verified_amount_bs: Decimal
    requested_amount_bs: Decimal
    at: datetime = Field(default_factory=_now)


class ManualReview(BaseModel):
    kind: Literal["manual_review"] = "manual_review"
    reviewer_id: str
    approved: bool
    note: Optional[str] = None
    at: datetime = Field(default_factory=_now)


class UserCancelled(BaseModel):
    kind: Literal["user_cancelled"] = "user_cancelled"
    reason: str = "Cancelled by user before verification"
    at: datetime = Field(default_factory=_now)


MetadataEvent = Annotated[
    Union[RechargeRequested, OrderPurchase, BankAutoApproved, ManualReview, UserCancelled],
    Field(discriminator="kind"),
]


class TransactionMetadata(BaseModel):
    version: Literal[1] = METADATA_VERSION
    events: List[MetadataEvent] = []

    @classmethod
    def load(cls, raw: Optional[dict]) -> "TransactionMetadata":
        if not raw:
            return cls()
        return cls.model_validate(raw)

    def dump(self) -> dict:
        return self.model_dump(mode="json")

    def with_event(self, event) -> "TransactionMetadata":
        return TransactionMetadata(events=[*self.events, event])

    def latest(self, kind: str):
        for event in reversed(self.events):
            if event.kind == kind:
                return event
        return None
