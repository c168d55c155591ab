from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional

from marketplace.api.deps import get_id_generator, permit
from marketplace.core.exceptions import ReviewNotFound
from marketplace.core.ids import IdGenerator
from marketplace.core.permissions import Operation
from marketplace.core.rate_limiter import limiter
from marketplace.db.session import get_db
from marketplace.models.user import User
from marketplace.schemas.review import ReactionCreate, ReviewCreate
from marketplace.services.reaction_service import ReactionService
from marketplace.services.review_service import ReviewService
from marketplace.utils.response import paginated_response, success

router = APIRouter()


@router.get("/", response_model=dict)
@limiter.limit("100/minute")
def get_product_reviews(
    request: Request,
    product_id: Optional[str] = Query(None, alias="productId"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, alias="perPage", ge=1, le=50),
    db: Session = Depends(get_db),
):
    """Get paginated reviews for a product. Public endpoint."""
    result = ReviewService.get_reviews_for_product(db, product_id, page, per_page)
    return paginated_response(
        [review.model_dump() for review in result.reviews],
        total=result.total,
        page=result.page,
        limit=result.per_page,
    )


@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/hour")
def create_review(
    request: Request,
    review_data: ReviewCreate,
    current_user: User = Depends(permit(Operation.CREATE_REVIEW)),
    ids: IdGenerator = Depends(get_id_generator),
    db: Session = Depends(get_db),
):
    """Create a new review for a purchased item. Requires verified purchase."""
    review = ReviewService.create_review(
        db,
        order_id=review_data.order_id,
        order_item_id=review_data.order_item_id,
        user_id=current_user.id,
        rating=review_data.rating,
        content=review_data.content,
        ids=ids,
    )
    return success(data=review.model_dump(), message="Review created successfully")


@router.post("/{review_id}/helpful", response_model=dict)
@limiter.limit("30/minute")
def mark_review_helpful(
    request: Request,
    review_id: str,
    current_user: User = Depends(permit(Operation.REACT_TO_REVIEW)),
    db: Session = Depends(get_db),
):
    review = ReactionService.mark_helpful(db, review_id, current_user.id)
    if review is None:
        raise ReviewNotFound()
    return success(data=review.model_dump(), message="Review marked as helpful")


@router.post("/{review_id}/reactions", response_model=dict)
@limiter.limit("30/minute")
def react_to_review(
    request: Request,
    review_id: str,
    reaction: ReactionCreate,
    current_user: User = Depends(permit(Operation.REACT_TO_REVIEW)),
    db: Session = Depends(get_db),
):
    review = ReactionService.upsert_reaction(db, review_id, current_user.id, reaction.type)
    if review is None:
        raise ReviewNotFound()
    return success(data=review.model_dump(), message="Reaction recorded")
