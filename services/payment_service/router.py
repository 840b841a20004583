from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import DuplicateReferenceError
from shared.security import RATE_LIMITS, limiter
from shared.security.dependencies import RequestMeta, get_current_user, get_request_meta
from .schemas import PagoMovilVerifyRequest, PagoMovilVerifyResponse
from .service import PaymentVerificationGateway, get_payment_gateway

router = APIRouter(prefix="/pago-movil", tags=["Pago Movil"])


@router.post("/verificar", response_model=PagoMovilVerifyResponse, response_model_exclude_none=True)
@limiter.limit(RATE_LIMITS["sensitive"])
async def verify_pago_movil(
    request: Request,
    payload: PagoMovilVerifyRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentVerificationGateway = Depends(get_payment_gateway),
    meta: RequestMeta = Depends(get_request_meta),
):
    result = await gateway.verify(
        db,
        payer_phone=payload.telefono_pagador,
        bank_code=payload.banco_origen,
        reference=payload.referencia,
        payment_date=payload.fecha_pago,
        amount_bs=payload.importe,
        requester_id=user_id,
        payer_id=payload.cedula_pagador,
        context=payload.contexto,
        linked_transaction_id=payload.transaction_id,
        linked_order_id=payload.order_id,
        request_meta=meta,
    )
    if result.requires_contact:
        raise DuplicateReferenceError()

    return PagoMovilVerifyResponse(
        verified=result.verified,
        auto_approved=result.auto_approved,
        message=result.message,
        amount=result.amount,
        code=None if result.verified else result.code,
    )
