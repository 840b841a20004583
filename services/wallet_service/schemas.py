from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import TransactionStatus, TransactionType


class RechargeCreate(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    payment_method: str = Field(min_length=1, max_length=32)
    reference: Optional[str] = Field(default=None, max_length=64)
    exchange_rate_ves: Optional[Decimal] = Field(default=None, gt=0)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReviewRequest(BaseModel):
    approve: bool
    note: Optional[str] = Field(default=None, max_length=500)


class TransactionResponse(BaseModel):
    id: int
    type: TransactionType
    status: TransactionStatus
    amount: float
    currency: str
    reference: Optional[str] = None
    payment_method: Optional[str] = None
    description: Optional[str] = None
    details: Optional[dict] = Field(default=None, serialization_alias="metadata")
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class BalanceResponse(BaseModel):
    user_id: str
    balance: float
    total_spent: float
    total_recharges: float
    currency: str
    transactions: List[TransactionResponse] = []

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
