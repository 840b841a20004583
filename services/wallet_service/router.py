from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.jwt_handler import MANAGE_TRANSACTIONS
from shared.security.dependencies import (
    Principal,
    RequestMeta,
    get_current_user,
    get_request_meta,
    require_permission,
)
from .schemas import BalanceResponse, RechargeCreate, ReviewRequest, TransactionResponse
from .service import TransactionLedger, get_ledger

router = APIRouter(prefix="/balance", tags=["Wallet"])
admin_router = APIRouter(prefix="/admin/transactions", tags=["Wallet administration"])


@router.get("", response_model=BalanceResponse)
async def get_balance(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: TransactionLedger = Depends(get_ledger),
):
    balance, transactions = await ledger.get_balance(db, user_id)
    return BalanceResponse(
        user_id=balance.user_id,
        balance=balance.balance,
        total_spent=balance.total_spent,
        total_recharges=balance.total_recharges,
        currency=balance.currency,
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
    )


@router.post("/recharge", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_recharge(
    payload: RechargeCreate,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: TransactionLedger = Depends(get_ledger),
):
    return await ledger.create_recharge(
        db,
        user_id,
        payload.amount,
        payload.payment_method,
        reference=payload.reference,
        exchange_rate_ves=payload.exchange_rate_ves,
    )


@router.post("/recharge/{transaction_id}/cancel", response_model=TransactionResponse)
async def cancel_recharge(
    transaction_id: int,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: TransactionLedger = Depends(get_ledger),
    meta: RequestMeta = Depends(get_request_meta),
):
    return await ledger.cancel_recharge(db, transaction_id, user_id, request_meta=meta)


@admin_router.post("/{transaction_id}/review", response_model=TransactionResponse)
async def review_transaction(
    transaction_id: int,
    payload: ReviewRequest,
    principal: Principal = Depends(require_permission(MANAGE_TRANSACTIONS)),
    db: AsyncSession = Depends(get_db),
    ledger: TransactionLedger = Depends(get_ledger),
    meta: RequestMeta = Depends(get_request_meta),
):
    return await ledger.review_recharge(
        db, transaction_id, principal.user_id, payload.approve, note=payload.note, request_meta=meta
    )
