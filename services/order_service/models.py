import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.config.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, enum.Enum):
    WALLET = "WALLET"
    PAGO_MOVIL = "PAGO_MOVIL"
    BANK_TRANSFER = "BANK_TRANSFER"
    ZELLE = "ZELLE"
    CASH = "CASH"
    BINANCE = "BINANCE"


class DiscountStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    USED = "USED"
    REJECTED = "REJECTED"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(32), unique=True, nullable=False)
    user_id = Column(String(64), nullable=False, index=True)

    # Amounts are USD; currency is what the customer sees and pays in
    currency = Column(String(3), nullable=False, default="USD")
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    exchange_rate_ves = Column(Numeric(14, 4), nullable=True)
    exchange_rate_eur = Column(Numeric(14, 4), nullable=True)

    payment_method = Column(Enum(PaymentMethod, native_enum=False), nullable=False)
    delivery_method = Column(String(32), nullable=False)
    shipping_address = Column(JSON, nullable=True)
    shipping_carrier = Column(String(64), nullable=True)
    tracking_number = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(Enum(OrderStatus, native_enum=False), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(Enum(PaymentStatus, native_enum=False), nullable=False, default=PaymentStatus.PENDING)
    # True once Product.stock has actually been decremented for this order
    stock_committed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    processing_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", cascade="all, delete-orphan")


class OrderItem(Base):
    """Immutable snapshot of the product at purchase time."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(255), nullable=False)
    product_sku = Column(String(64), nullable=True)
    product_type = Column(String(16), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def is_digital(self) -> bool:
        return self.product_type == "DIGITAL"


class OrderCounter(Base):
    __tablename__ = "order_counters"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)


class DiscountRequest(Base):
    __tablename__ = "discount_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    percent = Column(Numeric(5, 2), nullable=False)
    status = Column(Enum(DiscountStatus, native_enum=False), nullable=False, default=DiscountStatus.PENDING)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
