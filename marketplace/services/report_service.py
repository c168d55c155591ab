from typing import List, Optional, Union

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from marketplace.core.permissions import Operation, authorize
from marketplace.db.resilient import ProcedureCall, ResilientExecutor, StrategyResult
from marketplace.models.order import Order, OrderItem, OrderStatus, TERMINAL_SALE_STATUSES
from marketplace.models.product import Product
from marketplace.models.user import User, UserRole
from marketplace.schemas.report import OrderDetailRow, TopSellingProductRow

logger = structlog.get_logger()

ORDER_DETAILS_PROCEDURE = "usp_get_order_details"
TOP_SELLING_PROCEDURE = "usp_get_top_selling_products"


class ReportService:

    @staticmethod
    def order_details_query(status_filter: Optional[OrderStatus] = None, min_items: Optional[int] = None) -> Select:
        item_count = func.count(OrderItem.id)
        query = (
            select(
                Order.id.label("order_id"),
                Order.status.label("status"),
                Order.total.label("total"),
                Order.address.label("address"),
                Order.buyer_id.label("buyer_id"),
                func.coalesce(User.full_name, User.username).label("buyer_name"),
                item_count.label("item_count"),
                Order.created_at.label("created_at"),
            )
            .join(User, User.id == Order.buyer_id)
            .outerjoin(OrderItem, OrderItem.order_id == Order.id)
            .group_by(
                Order.id,
                Order.status,
                Order.total,
                Order.address,
                Order.buyer_id,
                User.full_name,
                User.username,
                Order.created_at,
            )
        )
        if status_filter is not None:
            query = query.where(Order.status == status_filter)
        if min_items is not None:
            query = query.having(item_count >= min_items)
        return query.order_by(Order.created_at.desc(), Order.id)

    @staticmethod
    def top_selling_query(min_quantity: Optional[int] = None, seller_id: Optional[str] = None) -> Select:
        quantity_sold = func.sum(OrderItem.quantity)
        query = (
            select(
                Product.barcode.label("barcode"),
                Product.name.label("product_name"),
                Product.seller_id.label("seller_id"),
                quantity_sold.label("total_quantity_sold"),
            )
            .join(OrderItem, OrderItem.barcode == Product.barcode)
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status.in_(TERMINAL_SALE_STATUSES))
            .group_by(Product.barcode, Product.name, Product.seller_id)
        )
        if seller_id:
            query = query.where(Product.seller_id == seller_id)
        if min_quantity is not None:
            query = query.having(quantity_sold >= min_quantity)
        return query.order_by(quantity_sold.desc(), Product.barcode)

    @staticmethod
    def run_order_details(
        db: Session,
        status_filter: Optional[OrderStatus] = None,
        min_items: Optional[int] = None,
    ) -> StrategyResult[List[dict]]:
        call = ProcedureCall(
            ORDER_DETAILS_PROCEDURE,
            {
                "p_status_filter": status_filter.value if status_filter else None,
                "p_min_items": min_items,
            },
        )
        return ResilientExecutor(db).fetch_rows(
            "order_details",
            call,
            ReportService.order_details_query(status_filter, min_items),
        )

    @staticmethod
    def get_order_details(
        db: Session,
        status_filter: Optional[OrderStatus] = None,
        min_items: Optional[int] = None,
    ) -> List[OrderDetailRow]:
        result = ReportService.run_order_details(db, status_filter, min_items)
        rows = result.unwrap()
        logger.info("order_details_fetched", outcome=result.outcome.value, rows=len(rows))
        return [OrderDetailRow.model_validate(row) for row in rows]

    @staticmethod
    def run_top_selling(
        db: Session,
        min_quantity: Optional[int] = None,
        seller_id: Optional[str] = None,
    ) -> StrategyResult[List[dict]]:
        call = ProcedureCall(
            TOP_SELLING_PROCEDURE,
            {"p_min_quantity": min_quantity, "p_seller_id": seller_id},
        )
        return ResilientExecutor(db).fetch_rows(
            "top_selling_products",
            call,
            ReportService.top_selling_query(min_quantity, seller_id),
        )

    @staticmethod
    def get_top_selling_products(
        db: Session,
        min_quantity: Optional[int] = None,
        seller_id: Optional[str] = None,
    ) -> List[TopSellingProductRow]:
        result = ReportService.run_top_selling(db, min_quantity, seller_id)
        rows = result.unwrap()
        logger.info(
            "top_selling_fetched",
            outcome=result.outcome.value,
            seller_id=seller_id,
            rows=len(rows),
        )
        return [TopSellingProductRow.model_validate(row) for row in rows]

    @staticmethod
    def resolve_seller_scope(
        role: Union[UserRole, str],
        caller_id: str,
        requested_seller_id: Optional[str] = None,
    ) -> Optional[str]:
        """Seller filter for the top-selling report.

        Sellers only ever see their own catalogue; admins see whatever they ask for.
        """
        authorize(
            Operation.VIEW_TOP_SELLING,
            role,
            owns=lambda: requested_seller_id in (None, caller_id),
            ownership_message="Sellers may only view their own sales",
        )
        if UserRole(role) is UserRole.SELLER:
            return caller_id
        return requested_seller_id or None
