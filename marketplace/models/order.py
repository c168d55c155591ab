from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, Text, CheckConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from marketplace.db.base_class import Base


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# Orders counted as sold in sales reports.
TERMINAL_SALE_STATUSES = (OrderStatus.DELIVERED,)

# Orders whose items may be reviewed.
REVIEWABLE_STATUSES = (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, index=True)
    buyer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    address = Column(Text, nullable=False)

    # Stored by value ("Pending") so server-side procedures can compare literals.
    status = Column(
        Enum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Derived: SUM(price * quantity) over items, maintained on write.
    total = Column(Numeric(12, 2), default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    buyer = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, index=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    barcode = Column(String(100), ForeignKey("products.barcode"), nullable=False)
    variation_name = Column(String(100), nullable=False)

    price = Column(Numeric(12, 2), nullable=False)  # Snapshot at order time
    quantity = Column(Integer, nullable=False)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )


Index("ix_order_items_order_id", OrderItem.order_id)
Index("ix_order_items_barcode", OrderItem.barcode)
