from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class OrderLimitsUpdate(BaseModel):
    min_order_amount_usd: Optional[Decimal] = Field(default=None, ge=0, alias="minOrderAmountUSD")
    max_order_amount_usd: Optional[Decimal] = Field(default=None, gt=0, alias="maxOrderAmountUSD")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_range(self):
        if (
            self.min_order_amount_usd is not None
            and self.max_order_amount_usd is not None
            and self.min_order_amount_usd > self.max_order_amount_usd
        ):
            raise ValueError("minOrderAmountUSD cannot be greater than maxOrderAmountUSD")
        return self


class OrderLimitsResponse(BaseModel):
    company_name: str
    min_order_amount_usd: Optional[float] = Field(default=None, serialization_alias="minOrderAmountUSD")
    max_order_amount_usd: Optional[float] = Field(default=None, serialization_alias="maxOrderAmountUSD")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
