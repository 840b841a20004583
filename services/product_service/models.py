import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, CheckConstraint
from sqlalchemy.sql import func
from shared.config.database import Base


class ProductStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class ProductType(str, enum.Enum):
    PHYSICAL = "PHYSICAL"
    DIGITAL = "DIGITAL"  # exempt from stock accounting


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(64), nullable=True, unique=True)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    status = Column(Enum(ProductStatus, native_enum=False), nullable=False, default=ProductStatus.DRAFT)
    product_type = Column(Enum(ProductType, native_enum=False), nullable=False, default=ProductType.PHYSICAL)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_digital(self) -> bool:
        return self.product_type == ProductType.DIGITAL

    @property
    def is_purchasable(self) -> bool:
        return self.status == ProductStatus.PUBLISHED


class StockReservation(Base):
    """Soft hold on inventory. Never touches Product.stock."""

    __tablename__ = "stock_reservations"
    __table_args__ = (
        Index("ix_stock_reservations_product_expires", "product_id", "expires_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    # NULL for cart-level holds; set for holds backing a deferred-payment order
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
