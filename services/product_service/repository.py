from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import case, delete, func, or_, select, update
from .models import Product, StockReservation

class ProductRepository:

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalars().first()

    @staticmethod
    async def get_products_by_ids(db: AsyncSession, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        result = await db.execute(select(Product).where(Product.id.in_(ids)))
        return {p.id: p for p in result.scalars().all()}

    @staticmethod
    async def decrement_stock(db: AsyncSession, product_id: int, quantity: int) -> None:
        """Single-statement decrement floored at zero: stock' = max(0, stock - qty)."""
        await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=case((Product.stock >= quantity, Product.stock - quantity), else_=0))
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def increment_stock(db: AsyncSession, product_id: int, quantity: int) -> None:
        await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )


class ReservationRepository:

    @staticmethod
    async def add(db: AsyncSession, reservation: StockReservation) -> StockReservation:
        db.add(reservation)
        await db.flush()
        return reservation

    @staticmethod
    async def reserved_quantity(
        db: AsyncSession, product_id: int, now: datetime, cart_owner_id: Optional[str] = None
    ) -> int:
        # Expired holds are ignored even before the sweeper deletes them.
        # Order-bound holds always count; only the owner's own cart holds are skipped.
        stmt = select(func.coalesce(func.sum(StockReservation.quantity), 0)).where(
            StockReservation.product_id == product_id,
            StockReservation.expires_at > now,
        )
        if cart_owner_id is not None:
            stmt = stmt.where(or_(
                StockReservation.user_id != cart_owner_id,
                StockReservation.order_id.is_not(None),
            ))
        result = await db.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def delete_for_user(db: AsyncSession, user_id: str, cart_only: bool = False) -> int:
        stmt = delete(StockReservation).where(StockReservation.user_id == user_id)
        if cart_only:
            stmt = stmt.where(StockReservation.order_id.is_(None))
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount or 0

    @staticmethod
    async def delete_for_order(db: AsyncSession, order_id: int) -> int:
        result = await db.execute(
            delete(StockReservation)
            .where(StockReservation.order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    async def delete_expired(db: AsyncSession, now: datetime) -> int:
        result = await db.execute(
            delete(StockReservation)
            .where(StockReservation.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
