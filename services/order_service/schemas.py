from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import OrderStatus, PaymentMethod, PaymentStatus


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderCreate(BaseModel):
    items: List[OrderItemCreate] = Field(min_length=1)
    currency: Literal["USD", "VES", "EUR"]
    total: Decimal = Field(gt=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    exchange_rate_ves: Optional[Decimal] = Field(default=None, gt=0, alias="exchangeRateVES")
    exchange_rate_eur: Optional[Decimal] = Field(default=None, gt=0, alias="exchangeRateEUR")
    payment_method: PaymentMethod
    delivery_method: str = Field(min_length=1, max_length=32)
    shipping_address: Optional[dict] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    applied_discount_ids: List[int] = []

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    shipping_carrier: Optional[str] = Field(default=None, max_length=64)
    tracking_number: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = Field(default=None, max_length=1000)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: Optional[str] = None
    product_type: str
    unit_price: float
    quantity: int
    line_total: float

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class OrderResponse(BaseModel):
    id: int
    order_number: str
    user_id: str
    currency: str
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float
    exchange_rate_ves: Optional[float] = Field(default=None, serialization_alias="exchangeRateVES")
    exchange_rate_eur: Optional[float] = Field(default=None, serialization_alias="exchangeRateEUR")
    payment_method: PaymentMethod
    delivery_method: str
    shipping_address: Optional[dict] = None
    shipping_carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    status: OrderStatus
    payment_status: PaymentStatus
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    processing_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
