from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional

from marketplace.api.deps import get_id_generator, permit
from marketplace.core.ids import IdGenerator
from marketplace.core.permissions import Operation
from marketplace.core.rate_limiter import limiter
from marketplace.db.session import get_db
from marketplace.models.user import User
from marketplace.schemas.order import OrderCreate, OrderStatusUpdate
from marketplace.services.order_service import OrderService, parse_status
from marketplace.services.report_service import ReportService
from marketplace.utils.response import success

router = APIRouter()


@router.post(
    "/",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Create new order",
    description="""
Creates an order with a single item for the authenticated buyer.

Process:
1. Validates address, quantity and price
2. Inserts the order
3. Inserts the item linked to the product barcode and variation
4. Recomputes the order total from its items
5. Commits, or rolls everything back on any failure
""",
    responses={
        201: {"description": "Order created successfully"},
        400: {"description": "Missing or invalid fields"},
        401: {"description": "Authentication required"},
        403: {"description": "Role not allowed to place orders"},
    },
)
@limiter.limit("10/minute")
def create_order(
    request: Request,
    order_data: OrderCreate,
    current_user: User = Depends(permit(Operation.CREATE_ORDER)),
    ids: IdGenerator = Depends(get_id_generator),
    db: Session = Depends(get_db),
):
    order = OrderService.create_order(
        db,
        buyer_id=current_user.id,
        address=order_data.address,
        quantity=order_data.quantity,
        price=order_data.price,
        barcode=order_data.barcode,
        variation_name=order_data.variation_name,
        status=order_data.status,
        ids=ids,
    )
    return success(data=order.model_dump(), message="Order created successfully")


@router.get("/details", response_model=dict)
@limiter.limit("60/minute")
def get_order_details(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    min_items: Optional[int] = Query(None, alias="minItems", ge=0),
    current_user: User = Depends(permit(Operation.VIEW_ORDER_DETAILS)),
    db: Session = Depends(get_db),
):
    """Order overview with buyer and item count, newest first."""
    parsed_status = parse_status(status_filter) if status_filter else None
    rows = ReportService.get_order_details(db, parsed_status, min_items)
    return success(
        data=[row.model_dump() for row in rows],
        message="Order details retrieved successfully",
    )


@router.get("/reports/top-selling", response_model=dict)
@limiter.limit("30/minute")
def get_top_selling_products(
    request: Request,
    min_quantity: Optional[int] = Query(None, alias="minQuantity", ge=0),
    seller_id: Optional[str] = Query(None, alias="sellerId"),
    current_user: User = Depends(permit(Operation.VIEW_TOP_SELLING)),
    db: Session = Depends(get_db),
):
    """Products ranked by quantity sold in delivered orders."""
    scoped_seller_id = ReportService.resolve_seller_scope(current_user.role, current_user.id, seller_id)
    rows = ReportService.get_top_selling_products(db, min_quantity, scoped_seller_id)
    return success(
        data=[row.model_dump() for row in rows],
        message="Top selling products retrieved successfully",
    )


@router.get("/seller", response_model=dict)
@limiter.limit("60/minute")
def get_seller_orders(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, max_length=100),
    current_user: User = Depends(permit(Operation.LIST_SELLER_ORDERS)),
    db: Session = Depends(get_db),
):
    """Orders that contain at least one of the caller's products."""
    rows = OrderService.get_seller_orders(
        db,
        seller_id=current_user.id,
        status_filter=status_filter,
        limit=limit,
        offset=offset,
        search=search,
    )
    return success(
        data=[row.model_dump() for row in rows],
        message="Seller orders retrieved successfully",
        meta={"offset": offset, "count": len(rows)},
    )


@router.patch("/{order_id}/status", response_model=dict)
@limiter.limit("30/minute")
def update_order_status(
    request: Request,
    order_id: str,
    status_data: OrderStatusUpdate,
    current_user: User = Depends(permit(Operation.UPDATE_ORDER_STATUS)),
    db: Session = Depends(get_db),
):
    order = OrderService.update_order_status(
        db,
        order_id=order_id,
        status=status_data.status,
        user_id=current_user.id,
        role=current_user.role,
    )
    return success(data=order.model_dump(), message="Order status updated successfully")
