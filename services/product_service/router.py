from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import get_current_user, verify_internal_api_key
from .schemas import CartReserveRequest, CartReserveResponse, ReservationResponse, SweepResponse
from .service import StockRequest, StockReservationManager

router = APIRouter(prefix="/cart", tags=["Stock reservations"])
internal_router = APIRouter(prefix="/cart", dependencies=[Depends(verify_internal_api_key)])


def get_reservation_manager(request: Request) -> StockReservationManager:
    return request.app.state.reservations


@router.post("/reserve", response_model=CartReserveResponse)
async def reserve_cart(
    payload: CartReserveRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    manager: StockReservationManager = Depends(get_reservation_manager),
):
    items = [StockRequest(i.product_id, i.quantity) for i in payload.items]
    try:
        reservations = await manager.reserve_cart(db, user_id, items)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    expires_at = max((r.expires_at for r in reservations), default=None)
    return CartReserveResponse(
        expires_at=expires_at,
        reservations=[ReservationResponse.model_validate(r) for r in reservations],
        message=f"Stock reserved for {int(manager.ttl.total_seconds() // 60)} minutes",
    )


@router.delete("/reserve", status_code=204)
async def release_cart(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    manager: StockReservationManager = Depends(get_reservation_manager),
):
    """Drops the caller's cart-level holds; holds backing pending orders stay."""
    await manager.release_for_user(db, user_id, cart_only=True)
    await db.commit()
    return


@internal_router.post("/reservations/sweep", response_model=SweepResponse)
async def sweep_reservations(
    db: AsyncSession = Depends(get_db),
    manager: StockReservationManager = Depends(get_reservation_manager),
):
    return SweepResponse(deleted=await manager.sweep_expired(db))
