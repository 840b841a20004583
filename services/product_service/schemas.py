from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReservationItem(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartReserveRequest(BaseModel):
    items: List[ReservationItem] = Field(min_length=1)


class ReservationResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    order_id: int | None
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class CartReserveResponse(BaseModel):
    success: bool = True
    expires_at: datetime | None
    reservations: List[ReservationResponse] = []
    message: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SweepResponse(BaseModel):
    deleted: int
