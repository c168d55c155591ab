from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Union

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.exceptions import MissingLinkage, OrderNotFound, ValidationError, field_errors
from marketplace.core.ids import IdGenerator, IdKind, default_id_generator
from marketplace.core.permissions import Operation, authorize
from marketplace.db.transaction import atomic
from marketplace.models.order import Order, OrderItem, OrderStatus
from marketplace.models.product import Product
from marketplace.models.user import User, UserRole
from marketplace.schemas.order import OrderResponse, OrderSummary, SellerOrderRow
from marketplace.services.aggregates import recalculate_order_total

logger = structlog.get_logger()

VALID_STATUSES = ", ".join(s.value for s in OrderStatus)


def parse_status(value: Union[OrderStatus, str, None]) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    if value is None or not str(value).strip():
        raise ValidationError("Status is required", errors=field_errors(["status"]))
    try:
        return OrderStatus(str(value).strip())
    except ValueError as exc:
        raise ValidationError(
            f"Invalid status. Must be one of: {VALID_STATUSES}",
            errors=field_errors(["status"], reason="invalid"),
        ) from exc


def _parse_price(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite() or price < 0:
        return None
    return price


class OrderService:

    @staticmethod
    def create_order(
        db: Session,
        buyer_id: str,
        address: Optional[str],
        quantity: Optional[int],
        price: Any,
        barcode: Optional[str],
        variation_name: Optional[str],
        status: Union[OrderStatus, str, None] = None,
        ids: IdGenerator = default_id_generator,
    ) -> OrderResponse:
        """Create an order with its single item and computed total, atomically."""
        missing = [
            name
            for name, value in (("address", address), ("quantity", quantity), ("price", price))
            if value is None or (isinstance(value, str) and not value.strip())
        ]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                errors=field_errors(missing),
            )

        invalid = []
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            invalid.append("quantity")
        unit_price = _parse_price(price)
        if unit_price is None:
            invalid.append("price")
        if invalid:
            raise ValidationError(
                f"Invalid fields: {', '.join(invalid)}",
                errors=field_errors(invalid, reason="invalid"),
            )

        order_status = parse_status(status) if status else OrderStatus.PENDING

        with atomic(db, "create_order"):
            order_id = ids.new_id(IdKind.ORDER)
            order = Order(
                id=order_id,
                buyer_id=buyer_id,
                address=address.strip(),
                status=order_status,
                total=0,
            )
            db.add(order)
            db.flush()

            # The item row cannot be materialised without its product linkage.
            missing_links = [
                name
                for name, value in (("barcode", barcode), ("variationname", variation_name))
                if not value
            ]
            if missing_links:
                raise MissingLinkage(
                    "barcode and variationname are required to create the order item",
                    errors=field_errors(missing_links),
                )

            db.add(
                OrderItem(
                    id=ids.new_id(IdKind.ORDER_ITEM),
                    order_id=order_id,
                    barcode=barcode,
                    variation_name=variation_name,
                    price=unit_price,
                    quantity=quantity,
                )
            )
            db.flush()

            recalculate_order_total(db, order_id)

        db.refresh(order)
        logger.info(
            "order_created",
            order_id=order.id,
            buyer_id=buyer_id,
            total=str(order.total),
        )
        return OrderResponse.model_validate(order)

    @staticmethod
    def _seller_owns_order(db: Session, order_id: str, seller_id: str) -> bool:
        owned_items = (
            db.query(func.count(OrderItem.id))
            .join(Product, Product.barcode == OrderItem.barcode)
            .filter(OrderItem.order_id == order_id, Product.seller_id == seller_id)
            .scalar()
        )
        return bool(owned_items)

    @staticmethod
    def update_order_status(
        db: Session,
        order_id: str,
        status: Union[OrderStatus, str, None],
        user_id: str,
        role: Union[UserRole, str],
    ) -> OrderSummary:
        """Set a new status. Sellers must own at least one item in the order."""
        new_status = parse_status(status)

        with atomic(db, "update_order_status"):
            authorize(
                Operation.UPDATE_ORDER_STATUS,
                role,
                owns=lambda: OrderService._seller_owns_order(db, order_id, user_id),
                ownership_message="Order not found or seller not authorized to update this order",
            )

            order = db.query(Order).filter(Order.id == order_id).first()
            if not order:
                raise OrderNotFound()

            previous_status = order.status
            order.status = new_status
            db.flush()

        db.refresh(order)
        logger.info(
            "order_status_updated",
            order_id=order_id,
            previous_status=previous_status.value,
            new_status=new_status.value,
            changed_by=user_id,
        )
        return OrderSummary.model_validate(order)

    @staticmethod
    def get_seller_orders(
        db: Session,
        seller_id: str,
        status_filter: Union[OrderStatus, str, None] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = 0,
        search: Optional[str] = None,
    ) -> List[SellerOrderRow]:
        """Orders containing at least one of the seller's products, newest first."""
        limit = limit or settings.SELLER_ORDERS_DEFAULT_LIMIT
        limit = min(max(limit, 1), settings.SELLER_ORDERS_MAX_LIMIT)
        offset = max(offset or 0, 0)

        seller_order_ids = (
            select(OrderItem.order_id)
            .join(Product, Product.barcode == OrderItem.barcode)
            .where(Product.seller_id == seller_id)
        )

        item_count = (
            select(func.count(OrderItem.id))
            .where(OrderItem.order_id == Order.id)
            .correlate(Order)
            .scalar_subquery()
        )

        product_names = (
            select(
                func.aggregate_strings(
                    Product.name + " (" + OrderItem.variation_name + ")",
                    ", ",
                )
            )
            .select_from(OrderItem)
            .join(Product, Product.barcode == OrderItem.barcode)
            .where(OrderItem.order_id == Order.id)
            .correlate(Order)
            .scalar_subquery()
        )

        query = (
            select(
                Order.id.label("order_id"),
                Order.status.label("status"),
                Order.total.label("total"),
                Order.address.label("address"),
                Order.created_at.label("created_at"),
                Order.buyer_id.label("buyer_id"),
                func.coalesce(User.full_name, User.username, "N/A").label("buyer_name"),
                User.email.label("buyer_email"),
                item_count.label("item_count"),
                product_names.label("product_names"),
            )
            .join(User, User.id == Order.buyer_id)
            .where(Order.id.in_(seller_order_ids))
        )

        if status_filter:
            query = query.where(Order.status == parse_status(status_filter))

        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.where(or_(Order.id.ilike(pattern), User.full_name.ilike(pattern)))

        query = query.order_by(Order.created_at.desc(), Order.id).offset(offset).limit(limit)

        rows = db.execute(query).mappings().all()
        return [SellerOrderRow.model_validate(dict(row)) for row in rows]
