from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import VerificationContext


class PagoMovilVerifyRequest(BaseModel):
    telefono_pagador: str = Field(min_length=1, max_length=20)
    banco_origen: str = Field(min_length=1, max_length=4)
    referencia: str = Field(min_length=1, max_length=16)
    fecha_pago: date
    importe: Decimal
    cedula_pagador: Optional[str] = Field(default=None, max_length=12)
    contexto: VerificationContext = VerificationContext.GENERAL
    transaction_id: Optional[int] = None
    order_id: Optional[int] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PagoMovilVerifyResponse(BaseModel):
    success: bool = True
    verified: bool
    auto_approved: Optional[bool] = None
    message: str
    amount: Optional[float] = None
    code: Optional[int] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
