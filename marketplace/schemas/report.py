from typing import Optional
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from marketplace.models.order import OrderStatus


# Row shapes shared by the procedure tier and the fallback query.

class OrderDetailRow(BaseModel):
    order_id: str
    status: OrderStatus
    total: Decimal
    address: str
    buyer_id: str
    buyer_name: Optional[str] = None
    item_count: int
    created_at: datetime


class TopSellingProductRow(BaseModel):
    barcode: str
    product_name: str
    seller_id: str
    total_quantity_sold: int
