"""
StockReservationManager: time-boxed holds on inventory.

WALLET orders deduct stock immediately and never reserve. Deferred payment
methods (Pago Movil, transfers, cash, ...) hold stock for a fixed TTL while the
payment is confirmed; the hold is deleted once stock is actually deducted or
when it expires. "Available" stock is raw stock minus every unexpired hold except the
caller's own cart-level holds, which the checkout is about to replace.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InsufficientStockError, ProductUnavailableError
from shared.observability import ecomm_reservations_swept_total
from .models import Product, StockReservation
from .repository import ProductRepository, ReservationRepository

logger = structlog.get_logger(__name__)

RESERVATION_TTL = timedelta(minutes=15)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StockRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class StockViolation:
    product_id: int
    reason: str  # 'not_found' | 'product_unavailable' | 'insufficient_stock'
    message: str
    available: Optional[int] = None
    requested: Optional[int] = None

    def to_dict(self) -> dict:
        data = {"productId": self.product_id, "reason": self.reason, "message": self.message}
        if self.available is not None:
            data["available"] = self.available
            data["requested"] = self.requested
        return data


class StockReservationManager:
    def __init__(self, ttl: timedelta = RESERVATION_TTL, clock: Callable[[], datetime] = utcnow):
        self.ttl = ttl
        self._clock = clock

    async def reserve(
        self,
        db: AsyncSession,
        user_id: str,
        product_id: int,
        quantity: int,
        order_id: Optional[int] = None,
    ) -> StockReservation:
        """Inserts a hold expiring ``ttl`` from now. Does not commit."""
        product = await ProductRepository.get_product_by_id(db, product_id)
        if product is None or not product.is_purchasable:
            raise ProductUnavailableError(f"Product {product_id} is not available")
        now = self._clock()
        reservation = StockReservation(
            user_id=user_id,
            product_id=product_id,
            order_id=order_id,
            quantity=quantity,
            created_at=now,
            expires_at=now + self.ttl,
        )
        return await ReservationRepository.add(db, reservation)

    async def release_for_user(self, db: AsyncSession, user_id: str, cart_only: bool = False) -> int:
        deleted = await ReservationRepository.delete_for_user(db, user_id, cart_only=cart_only)
        logger.info("reservations_released", user_id=user_id, cart_only=cart_only, deleted=deleted)
        return deleted

    async def release_for_order(self, db: AsyncSession, order_id: int) -> int:
        deleted = await ReservationRepository.delete_for_order(db, order_id)
        logger.info("reservations_released", order_id=order_id, deleted=deleted)
        return deleted

    async def reserved_quantity(self, db: AsyncSession, product_id: int,
                                cart_owner_id: Optional[str] = None) -> int:
        return await ReservationRepository.reserved_quantity(
            db, product_id, self._clock(), cart_owner_id=cart_owner_id
        )

    async def available_stock(self, db: AsyncSession, product: Product,
                              cart_owner_id: Optional[str] = None) -> int:
        reserved = await self.reserved_quantity(db, product.id, cart_owner_id=cart_owner_id)
        return max(0, product.stock - reserved)

    async def check_availability(
        self,
        db: AsyncSession,
        user_id: str,
        items: Iterable[StockRequest],
        products: Optional[dict[int, Product]] = None,
    ) -> list[StockViolation]:
        """Validates every item and returns all violations (never stops at the first)."""
        items = list(items)
        if products is None:
            products = await ProductRepository.get_products_by_ids(db, [i.product_id for i in items])

        requested: dict[int, int] = {}
        for item in items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        violations: list[StockViolation] = []
        for product_id, quantity in requested.items():
            product = products.get(product_id)
            if product is None:
                violations.append(StockViolation(product_id, "not_found", f"Product not found: {product_id}"))
                continue
            if not product.is_purchasable:
                violations.append(StockViolation(
                    product_id, "product_unavailable", f'Product "{product.name}" is not available'))
                continue
            if product.is_digital:
                continue
            available = await self.available_stock(db, product, cart_owner_id=user_id)
            if available < quantity:
                violations.append(StockViolation(
                    product_id,
                    "insufficient_stock",
                    f'Insufficient stock for "{product.name}". Available: {available}, requested: {quantity}',
                    available=available,
                    requested=quantity,
                ))
        return violations

    async def reserve_cart(self, db: AsyncSession, user_id: str,
                           items: Iterable[StockRequest]) -> list[StockReservation]:
        """Replaces the user's cart-level holds. Digital products are skipped."""
        items = list(items)
        await self.release_for_user(db, user_id, cart_only=True)
        products = await ProductRepository.get_products_by_ids(db, [i.product_id for i in items])
        violations = await self.check_availability(db, user_id, items, products)
        if violations:
            raise InsufficientStockError(details=[v.to_dict() for v in violations])

        reservations = []
        for item in items:
            if products[item.product_id].is_digital:
                continue
            reservations.append(await self.reserve(db, user_id, item.product_id, item.quantity))
        return reservations

    async def sweep_expired(self, db: AsyncSession) -> int:
        deleted = await ReservationRepository.delete_expired(db, self._clock())
        await db.commit()
        if deleted:
            ecomm_reservations_swept_total.inc(deleted)
            logger.info("reservations_swept", deleted=deleted)
        return deleted
