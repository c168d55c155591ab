from typing import List, Optional
from datetime import datetime
from decimal import Decimal

import bleach
from pydantic import BaseModel, ConfigDict, Field, field_validator

from marketplace.models.order import OrderStatus


class OrderCreate(BaseModel):
    """Checkout payload. Required fields are optional here so the service
    can report every missing one at once with a 400."""
    model_config = ConfigDict(populate_by_name=True)

    address: Optional[str] = Field(None, max_length=500)
    quantity: Optional[int] = None
    price: Optional[Decimal] = None
    barcode: Optional[str] = Field(None, max_length=100)
    variation_name: Optional[str] = Field(None, alias="variationname", max_length=100)
    status: Optional[str] = None

    @field_validator("address")
    @classmethod
    def sanitize_address(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return bleach.clean(value, tags=[], attributes={}, strip=True).strip()

    @field_validator("barcode", "variation_name", "status")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return value.strip()


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: str
    barcode: str
    variation_name: str
    price: Decimal
    quantity: int

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: str
    buyer_id: str
    address: str
    status: OrderStatus
    total: Decimal
    created_at: datetime
    items: List[OrderItemResponse]

    class Config:
        from_attributes = True


class OrderSummary(BaseModel):
    id: str
    status: OrderStatus
    total: Decimal
    address: str
    created_at: datetime
    buyer_id: str

    class Config:
        from_attributes = True


class SellerOrderRow(BaseModel):
    order_id: str
    status: OrderStatus
    total: Decimal
    address: str
    created_at: datetime
    buyer_id: str
    buyer_name: str
    buyer_email: Optional[str] = None
    item_count: int
    product_names: Optional[str] = None
