from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime
import bleach


class ReviewCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(None, alias="orderId")
    order_item_id: Optional[str] = Field(None, alias="orderItemId")
    rating: int = Field(5, ge=1, le=5, description="Rating must be between 1 and 5")
    content: Optional[str] = Field(None, max_length=2000)

    @field_validator("content")
    @classmethod
    def sanitize_content(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return bleach.clean(value, tags=[], attributes={}, strip=True).strip()


class ReactionCreate(BaseModel):
    type: Optional[str] = None


class ReviewResponse(BaseModel):
    id: str
    rating: int
    user_id: Optional[str] = None
    username: Optional[str] = None  # Display name of the reviewer
    content: Optional[str] = None
    helpful_count: int = 0
    created_at: datetime


class ReviewSummary(BaseModel):
    id: str
    rating: int
    helpful_count: int
    created_at: datetime


class ReviewListResponse(BaseModel):
    reviews: List[ReviewResponse]
    total: int
    page: int
    per_page: int
