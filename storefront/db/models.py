
import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Mapped, Session, mapped_column, relationship
from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, Integer, JSON,
    Numeric, String, func, select, update,
)
from storefront.db.session import Base

ORDER_NUMBER_PATTERN = re.compile(r"^store-(?P<user_id>\d+)-(?P<order_id>\d+)$")

def _now() -> datetime:
    return datetime.now(timezone.utc)

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CHECKOUT = "checkout"
    PAID = "paid"
    DELIVERED = "delivered"
    FAILED = "failed"

class Provider(str, Enum):
    FREE = "free"
    PAYPAL = "paypal"
    CENTILI = "centili"
    XSOLLA = "xsolla"
    # restricted platform provider, exclusive to platform SKUs
    SHOPIFY = "shopify"

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    # NULL stock means unlimited
    stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_quantity: Mapped[int] = mapped_column(Integer, default=1)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    weight: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    shopify_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    custom_class: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    def is_available(self) -> bool:
        return bool(self.enabled)

    def in_stock(self, quantity: int = 1) -> bool:
        return self.stock is None or self.stock >= quantity

    def is_shopify(self) -> bool:
        return self.shopify_id is not None

    @property
    def requires_shipping(self) -> bool:
        return self.weight is not None

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    status: Mapped[OrderStatus] = mapped_column(SAEnum(OrderStatus), default=OrderStatus.PENDING)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")

    @property
    def order_number(self) -> str:
        return f"store-{self.user_id}-{self.id}"

    @staticmethod
    def parse_order_number(order_number: Optional[str]) -> Optional[tuple[int, int]]:
        """Returns ``(user_id, order_id)`` or None if the number is malformed."""
        match = ORDER_NUMBER_PATTERN.match(order_number or "")
        if match is None:
            return None
        return int(match["user_id"]), int(match["order_id"])

    @property
    def total(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))

    @property
    def requires_shipping(self) -> bool:
        return any(item.product is not None and item.product.requires_shipping for item in self.items)

    @property
    def should_use_restricted_provider(self) -> bool:
        return any(item.product is not None and item.product.is_shopify() for item in self.items)

    def can_checkout(self) -> bool:
        return self.status == OrderStatus.PENDING

    def is_processing(self) -> bool:
        return self.status == OrderStatus.PROCESSING

    def is_paid_or_delivered(self) -> bool:
        return self.status in (OrderStatus.PAID, OrderStatus.DELIVERED)

    def lock_self(self, db: Session) -> "Order":
        """Re-reads this order with a row lock held until the transaction ends."""
        stmt = (
            select(Order)
            .where(Order.id == self.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return db.execute(stmt).scalar_one()

    def reserve_items(self, db: Session) -> None:
        for item in self.items:
            item.reserve(db)

    def release_items(self, db: Session) -> None:
        for item in self.items:
            item.release(db)

    @classmethod
    def paid_count(cls, db: Session) -> int:
        stmt = select(func.count()).select_from(cls).where(cls.status == OrderStatus.PAID)
        return db.execute(stmt).scalar_one()

class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    product_id: Mapped[Optional[int]] = mapped_column(ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    extra_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    reserved: Mapped[bool] = mapped_column(Boolean, default=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    @property
    def subtotal(self) -> Decimal:
        return Decimal(self.cost or 0) * (self.quantity or 0)

    def validation_errors(self) -> list[str]:
        errors = []
        if self.quantity is None or self.quantity < 1:
            errors.append("Quantity must be at least 1.")
        if self.cost is not None and self.cost < 0:
            errors.append("Cost cannot be negative.")
        return errors

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def reserve(self, db: Session) -> None:
        if self.reserved or self.product_id is None:
            return
        self._adjust_stock(db, -self.quantity)
        self.reserved = True

    def release(self, db: Session) -> None:
        if not self.reserved or self.product_id is None:
            return
        self._adjust_stock(db, self.quantity)
        self.reserved = False

    def _adjust_stock(self, db: Session, delta: int) -> None:
        # decrement in SQL so concurrent orders for the same product don't lose updates;
        # a NULL (unlimited) stock stays NULL
        db.execute(
            update(Product)
            .where(Product.id == self.product_id)
            .values(stock=Product.stock + delta)
            .execution_options(synchronize_session=False)
        )
        if self.product is not None:
            db.expire(self.product, ["stock"])
