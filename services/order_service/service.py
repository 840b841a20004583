"""
OrderService: checkout and the order lifecycle.

``create_order`` runs the whole checkout as one unit of work: either the
wallet is charged and stock deducted, or (deferred payment methods) stock is
held for the reservation TTL. ``update_order_status`` drives the transition
table in ``transitions.py``.
"""
import time
from decimal import Decimal
from typing import Optional

import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.service import AuditAction, AuditLogger
from services.notification_service.service import NotificationDispatcher, NotificationType, dispatch_safely
from services.product_service.repository import ProductRepository
from services.product_service.service import StockRequest, StockReservationManager, utcnow
from services.wallet_service.service import TransactionLedger
from shared.config.store_settings import StoreSettingsProvider
from shared.errors import (
    InsufficientStockError,
    InvalidStatusTransitionError,
    NotFoundError,
    OrderAmountOutOfBoundsError,
    ServiceError,
    ValidationError,
)
from shared.observability import (
    ecomm_checkout_duration_seconds,
    ecomm_checkout_total,
    ecomm_order_transitions_total,
    ecomm_orders_created_total,
    ecomm_stock_restores_total,
)
from shared.security.dependencies import Principal, RequestMeta
from shared.security.jwt_handler import MANAGE_ORDERS
from .models import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from .repository import DiscountRepository, OrderRepository
from .schemas import OrderCreate, OrderUpdate
from .transitions import Effect, Transition, resolve_transition

logger = structlog.get_logger(__name__)

TOTAL_TOLERANCE = Decimal("0.01")


class OrderService:
    def __init__(
        self,
        reservations: StockReservationManager,
        ledger: TransactionLedger,
        store_settings: StoreSettingsProvider,
        notifier: NotificationDispatcher,
        audit: AuditLogger,
    ):
        self.reservations = reservations
        self.ledger = ledger
        self.store_settings = store_settings
        self.notifier = notifier
        self.audit = audit

    async def _check_amount_bounds(self, db: AsyncSession, total: Decimal) -> None:
        settings = await self.store_settings.get(db)
        if settings.min_order_amount_usd is not None and total < settings.min_order_amount_usd:
            raise OrderAmountOutOfBoundsError(f"The minimum order amount is ${settings.min_order_amount_usd}")
        if settings.max_order_amount_usd is not None and total > settings.max_order_amount_usd:
            raise OrderAmountOutOfBoundsError(f"The maximum order amount is ${settings.max_order_amount_usd}")

    async def create_order(
        self,
        db: AsyncSession,
        user_id: str,
        data: OrderCreate,
        request_meta: Optional[RequestMeta] = None,
    ) -> Order:
        started = time.perf_counter()
        try:
            order = await self._create_order(db, user_id, data)
            await db.commit()
            await db.refresh(order)
        except Exception as e:
            await db.rollback()
            outcome = "rejected" if isinstance(e, ServiceError) else "failed"
            ecomm_checkout_total.labels(status=outcome).inc()
            logger.warning("order_create_failed", user_id=user_id, outcome=outcome, error=str(e))
            raise
        finally:
            ecomm_checkout_duration_seconds.observe(time.perf_counter() - started)

        ecomm_checkout_total.labels(status="success").inc()
        ecomm_orders_created_total.labels(payment_method=order.payment_method.value).inc()
        logger.info("order_created", order_id=order.id, order_number=order.order_number, user_id=user_id,
                    payment_method=order.payment_method.value, total=str(order.total))
        await self._after_create(order, user_id, request_meta)
        return order

    async def _create_order(self, db: AsyncSession, user_id: str, data: OrderCreate) -> Order:
        await self._check_amount_bounds(db, data.total)

        requests = [StockRequest(i.product_id, i.quantity) for i in data.items]
        products = await ProductRepository.get_products_by_ids(db, [r.product_id for r in requests])
        violations = await self.reservations.check_availability(db, user_id, requests, products)
        if violations:
            raise InsufficientStockError(details=[v.to_dict() for v in violations])

        # Prices come from the catalogue, never from the client
        items = []
        subtotal = Decimal("0")
        for request in requests:
            product = products[request.product_id]
            line_total = product.price * request.quantity
            subtotal += line_total
            items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                product_type=product.product_type.value,
                unit_price=product.price,
                quantity=request.quantity,
                line_total=line_total,
            ))
        expected_total = subtotal + data.tax + data.shipping - data.discount
        if abs(expected_total - data.total) > TOTAL_TOLERANCE:
            raise ValidationError(
                "Order total does not match its items",
                details={"expectedTotal": float(expected_total), "submittedTotal": float(data.total)},
            )

        now = utcnow()
        order_number = await OrderRepository.next_order_number(db, now.year)
        order = Order(
            order_number=order_number,
            user_id=user_id,
            currency=data.currency,
            subtotal=subtotal,
            tax=data.tax,
            shipping=data.shipping,
            discount=data.discount,
            total=data.total,
            exchange_rate_ves=data.exchange_rate_ves,
            exchange_rate_eur=data.exchange_rate_eur,
            payment_method=data.payment_method,
            delivery_method=data.delivery_method,
            shipping_address=data.shipping_address,
            notes=data.notes,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            stock_committed=False,
            items=items,
        )

        if data.payment_method == PaymentMethod.WALLET:
            await self.ledger.charge_purchase(db, user_id, data.total, data.currency, order_number)
            order.status = OrderStatus.PROCESSING
            order.payment_status = PaymentStatus.PAID
            order.paid_at = now
            order.processing_at = now
            order.stock_committed = True
            await OrderRepository.create_order(db, order)
            for item in items:
                if not item.is_digital:
                    await ProductRepository.decrement_stock(db, item.product_id, item.quantity)
        else:
            await OrderRepository.create_order(db, order)
            # Order-bound holds replace whatever the cart was holding
            await self.reservations.release_for_user(db, user_id, cart_only=True)
            for item in items:
                if not item.is_digital:
                    await self.reservations.reserve(db, user_id, item.product_id, item.quantity, order_id=order.id)

        if data.applied_discount_ids:
            discount_ids = set(data.applied_discount_ids)
            flipped = await DiscountRepository.mark_used(db, user_id, discount_ids, order.id, now)
            if flipped != len(discount_ids):
                raise ValidationError(
                    "One or more discounts are not available",
                    details={"appliedDiscountIds": sorted(discount_ids)},
                )
        return order

    async def _after_create(self, order: Order, user_id: str, request_meta: Optional[RequestMeta]) -> None:
        context = {"order_id": order.id, "order_number": order.order_number}
        await dispatch_safely(
            self.notifier.notify(
                user_id,
                NotificationType.ORDER_RECEIVED,
                "Order received",
                f"We received your order #{order.order_number}.",
                link="/orders",
            ),
            **context,
        )
        if order.payment_status == PaymentStatus.PAID:
            await dispatch_safely(
                self.notifier.notify(
                    user_id,
                    NotificationType.ORDER_PAID,
                    "Payment confirmed",
                    f"Payment for order #{order.order_number} was confirmed with your wallet.",
                    link="/orders",
                ),
                **context,
            )
        await dispatch_safely(
            self.notifier.send_email(
                user_id,
                f"Order confirmation - {order.order_number}",
                "order_confirmation",
                {
                    "order_number": order.order_number,
                    "items": [
                        {"name": i.product_name, "quantity": i.quantity, "price": str(i.unit_price)}
                        for i in order.items
                    ],
                    "subtotal": str(order.subtotal),
                    "tax": str(order.tax),
                    "shipping": str(order.shipping),
                    "total": str(order.total),
                    "currency": order.currency,
                    "payment_method": order.payment_method.value,
                    "delivery_method": order.delivery_method,
                },
            ),
            **context,
        )
        await self.audit.log(
            AuditAction.ORDER_CREATED,
            actor_id=user_id,
            target_type="order",
            target_id=order.id,
            details={
                "order_number": order.order_number,
                "total": str(order.total),
                "payment_method": order.payment_method.value,
            },
            request_meta=request_meta,
        )

    async def _commit_stock(self, db: AsyncSession, order: Order) -> None:
        """First real deduction for a deferred-payment order; its holds are no longer needed."""
        if not order.stock_committed:
            for item in order.items:
                if not item.is_digital:
                    await ProductRepository.decrement_stock(db, item.product_id, item.quantity)
            order.stock_committed = True
        await self.reservations.release_for_order(db, order.id)

    async def _restore_stock(self, db: AsyncSession, order: Order) -> None:
        if order.stock_committed:
            for item in order.items:
                if not item.is_digital:
                    await ProductRepository.increment_stock(db, item.product_id, item.quantity)
            order.stock_committed = False
            ecomm_stock_restores_total.inc()
            logger.info("order_stock_restored", order_id=order.id)
        else:
            await self.reservations.release_for_order(db, order.id)

    async def update_order_status(
        self,
        db: AsyncSession,
        order_id: int,
        patch: OrderUpdate,
        actor_id: str,
        request_meta: Optional[RequestMeta] = None,
    ) -> Order:
        try:
            order = await OrderRepository.get_order_for_update(db, order_id)
            if order is None:
                raise NotFoundError("Order not found")

            previous_status = order.status
            transition: Optional[Transition] = None
            if patch.status is not None:
                try:
                    transition = resolve_transition(order.status, patch.status)
                except KeyError:
                    raise InvalidStatusTransitionError(
                        f"Cannot move an order from {order.status.value} to {patch.status.value}",
                        details={"from": order.status.value, "to": patch.status.value},
                    )

            now = utcnow()
            became_paid = (
                patch.payment_status == PaymentStatus.PAID and order.payment_status != PaymentStatus.PAID
            )
            if became_paid and (order.status == OrderStatus.CANCELLED or patch.status == OrderStatus.CANCELLED):
                raise InvalidStatusTransitionError("A cancelled order cannot be marked as paid")
            if became_paid:
                await self._commit_stock(db, order)
                order.paid_at = now
            if patch.payment_status is not None:
                order.payment_status = patch.payment_status

            if patch.shipping_carrier is not None:
                order.shipping_carrier = patch.shipping_carrier
            if patch.tracking_number is not None:
                order.tracking_number = patch.tracking_number
            if patch.notes is not None:
                order.notes = patch.notes

            if transition is not None:
                setattr(order, transition.timestamp_field, now)
                order.status = patch.status
                if Effect.RESTORE_STOCK in transition.effects:
                    await self._restore_stock(db, order)

            await db.commit()
            await db.refresh(order)
        except Exception:
            await db.rollback()
            raise

        if transition is not None:
            ecomm_order_transitions_total.labels(to_status=order.status.value).inc()
            logger.info("order_status_changed", order_id=order.id, from_status=previous_status.value,
                        to_status=order.status.value, actor_id=actor_id)
            await self._apply_effects(order, transition)
            await self.audit.log(
                AuditAction.ORDER_CANCELLED if order.status == OrderStatus.CANCELLED
                else AuditAction.ORDER_STATUS_CHANGED,
                actor_id=actor_id,
                target_type="order",
                target_id=order.id,
                details={"from": previous_status.value, "to": order.status.value},
                request_meta=request_meta,
            )
        if became_paid:
            await dispatch_safely(
                self.notifier.notify(
                    order.user_id,
                    NotificationType.ORDER_PAID,
                    "Payment confirmed",
                    f"Payment for order #{order.order_number} was confirmed.",
                    link="/orders",
                ),
                order_id=order.id,
            )
            await self.audit.log(
                AuditAction.ORDER_PAYMENT_UPDATED,
                actor_id=actor_id,
                target_type="order",
                target_id=order.id,
                details={"payment_status": order.payment_status.value},
                request_meta=request_meta,
            )
        return order

    async def _apply_effects(self, order: Order, transition: Transition) -> None:
        if Effect.NOTIFY in transition.effects:
            message = transition.message.format(
                order_number=order.order_number,
                carrier=order.shipping_carrier or "our carrier",
                tracking=order.tracking_number or "not available",
            )
            await dispatch_safely(
                self.notifier.notify(order.user_id, transition.notification, transition.title, message,
                                     link="/orders"),
                order_id=order.id,
            )
        if Effect.REVIEW_REMINDER in transition.effects:
            await dispatch_safely(
                self.notifier.schedule_review_reminder(order.user_id, order.order_number),
                order_id=order.id,
            )

    async def list_orders(
        self,
        db: AsyncSession,
        principal: Principal,
        status: Optional[OrderStatus] = None,
        user_id: Optional[str] = None,
    ) -> list[Order]:
        if not principal.can(MANAGE_ORDERS):
            user_id = principal.user_id
        return await OrderRepository.list_orders(db, user_id=user_id, status=status)


def get_order_service(request: Request) -> OrderService:
    return request.app.state.orders
