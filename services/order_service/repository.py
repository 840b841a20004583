from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from .models import DiscountRequest, DiscountStatus, Order, OrderCounter, OrderStatus


class OrderRepository:
    @staticmethod
    async def create_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order_for_update(db: AsyncSession, order_id: int) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        stmt = select(Order)
        if user_id:
            stmt = stmt.where(Order.user_id == user_id)
        if status:
            stmt = stmt.where(Order.status == status)
        result = await db.execute(stmt.order_by(Order.created_at.desc(), Order.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def next_order_number(db: AsyncSession, year: int) -> str:
        """ORD-<year>-<seq>. Insert-if-missing, then an atomic increment that returns the new value."""
        insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
        await db.execute(
            insert(OrderCounter).values(year=year, last_value=0).on_conflict_do_nothing(index_elements=["year"])
        )
        result = await db.execute(
            update(OrderCounter)
            .where(OrderCounter.year == year)
            .values(last_value=OrderCounter.last_value + 1)
            .returning(OrderCounter.last_value)
            .execution_options(synchronize_session=False)
        )
        return f"ORD-{year}-{result.scalar_one():04d}"


class DiscountRepository:
    @staticmethod
    async def mark_used(
        db: AsyncSession, user_id: str, discount_ids: Iterable[int], order_id: int, now: datetime
    ) -> int:
        """APPROVED -> USED for the caller's own requests. Returns how many rows flipped."""
        ids = set(discount_ids)
        if not ids:
            return 0
        result = await db.execute(
            update(DiscountRequest)
            .where(
                DiscountRequest.id.in_(ids),
                DiscountRequest.user_id == user_id,
                DiscountRequest.status == DiscountStatus.APPROVED,
            )
            .values(status=DiscountStatus.USED, order_id=order_id, used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
