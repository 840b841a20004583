from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.jwt_handler import MANAGE_ORDERS
from shared.security.dependencies import (
    Principal,
    RequestMeta,
    get_current_principal,
    get_request_meta,
    require_permission,
)
from .models import OrderStatus
from .schemas import OrderCreate, OrderResponse, OrderUpdate
from .service import OrderService, get_order_service

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    # The owner is always the authenticated caller
    return await service.create_order(db, principal.user_id, payload, request_meta=meta)


@router.get("", response_model=List[OrderResponse])
async def list_orders(
    status: Optional[OrderStatus] = None,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
):
    return await service.list_orders(db, principal, status=status, user_id=user_id)


@router.patch("", response_model=OrderResponse)
async def update_order(
    payload: OrderUpdate,
    order_id: int = Query(alias="id"),
    principal: Principal = Depends(require_permission(MANAGE_ORDERS)),
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    return await service.update_order_status(db, order_id, payload, principal.user_id, request_meta=meta)
