from typing import Optional

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, aliased

from marketplace.core.exceptions import ConflictError, MissingLinkage, OwnershipError, ValidationError, field_errors
from marketplace.core.ids import IdGenerator, IdKind, default_id_generator
from marketplace.db.transaction import atomic
from marketplace.models.order import REVIEWABLE_STATUSES, Order, OrderItem
from marketplace.models.review import HELPFUL_REACTION, Reaction, Review, ReviewLink, ReviewNote
from marketplace.models.user import User
from marketplace.schemas.review import ReviewListResponse, ReviewResponse, ReviewSummary
from marketplace.utils.enrichment import best_effort

logger = structlog.get_logger()


def _helpful_count():
    return (
        select(func.count())
        .select_from(Reaction)
        .where(Reaction.review_id == Review.id, Reaction.type == HELPFUL_REACTION)
        .correlate(Review)
        .scalar_subquery()
    )


class ReviewService:

    @staticmethod
    def _is_verified_purchase(db: Session, order_id: str, order_item_id: str, user_id: str) -> bool:
        match = (
            db.query(OrderItem.id)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(
                OrderItem.id == order_item_id,
                Order.id == order_id,
                Order.buyer_id == user_id,
                Order.status.in_(REVIEWABLE_STATUSES),
            )
            .first()
        )
        return match is not None

    @staticmethod
    def _resolve_display_name(db: Session, user_id: str) -> Optional[str]:
        user = db.query(User).filter(User.id == user_id).first()
        return user.display_name if user else None

    @staticmethod
    def create_review(
        db: Session,
        order_id: Optional[str],
        order_item_id: Optional[str],
        user_id: Optional[str],
        rating: Optional[int] = 5,
        content: Optional[str] = None,
        ids: IdGenerator = default_id_generator,
    ) -> ReviewResponse:
        """Create a review tied to a verified purchase.

        Review, link and note are written in one transaction. The
        reviewer's display name is looked up afterwards on a best-effort basis.
        """
        missing = [
            name
            for name, value in (("orderId", order_id), ("orderItemId", order_item_id), ("userId", user_id))
            if not value
        ]
        if missing:
            raise MissingLinkage(
                f"Missing required fields: {', '.join(missing)}",
                errors=field_errors(missing),
            )

        if rating is None:
            rating = 5
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError(
                "Rating must be between 1 and 5",
                errors=field_errors(["rating"], reason="invalid"),
            )

        body = (content or "").strip()
        if not body:
            raise ValidationError("Review content is required", errors=field_errors(["content"]))

        with atomic(db, "create_review"):
            # One review per purchased item per author
            existing = (
                db.query(ReviewLink.review_id)
                .filter(ReviewLink.order_item_id == order_item_id, ReviewLink.user_id == user_id)
                .first()
            )
            if existing:
                raise ConflictError("You have already reviewed this item")

            review = Review(id=ids.new_id(IdKind.REVIEW), rating=rating)
            db.add(review)
            db.flush()

            if not ReviewService._is_verified_purchase(db, order_id, order_item_id, user_id):
                raise OwnershipError("You can only review items from your own orders")

            db.add(
                ReviewLink(
                    review_id=review.id,
                    user_id=user_id,
                    order_item_id=order_item_id,
                    order_id=order_id,
                )
            )
            db.add(ReviewNote(review_id=review.id, author_id=user_id, content=body))
            db.flush()

        db.refresh(review)
        logger.info("review_created", review_id=review.id, user_id=user_id, order_item_id=order_item_id)

        display_name = best_effort(
            "resolve_display_name",
            ReviewService._resolve_display_name,
            db,
            user_id,
            review_id=review.id,
        )

        return ReviewResponse(
            id=review.id,
            rating=review.rating,
            user_id=user_id,
            username=display_name.value,
            content=body,
            helpful_count=0,
            created_at=review.created_at,
        )

    @staticmethod
    def get_reviews_for_product(
        db: Session,
        barcode: str,
        page: int = 1,
        per_page: int = 20,
    ) -> ReviewListResponse:
        """Public listing of a product's reviews, newest first."""
        if not barcode:
            raise ValidationError("productId is required", errors=field_errors(["productId"]))

        page = max(page, 1)
        per_page = min(max(per_page, 1), 100)

        first_note = aliased(ReviewNote)
        earliest_note_id = (
            select(func.min(first_note.id))
            .where(first_note.review_id == Review.id, first_note.author_id == ReviewLink.user_id)
            .correlate(Review, ReviewLink)
            .scalar_subquery()
        )

        base = (
            select(Review.id)
            .join(ReviewLink, ReviewLink.review_id == Review.id)
            .join(OrderItem, OrderItem.id == ReviewLink.order_item_id)
            .where(OrderItem.barcode == barcode)
        )
        total = db.execute(select(func.count()).select_from(base.subquery())).scalar_one()

        query = (
            select(
                Review.id.label("id"),
                Review.rating.label("rating"),
                ReviewLink.user_id.label("user_id"),
                func.coalesce(User.full_name, User.username).label("username"),
                ReviewNote.content.label("content"),
                _helpful_count().label("helpful_count"),
                Review.created_at.label("created_at"),
            )
            .join(ReviewLink, ReviewLink.review_id == Review.id)
            .join(OrderItem, OrderItem.id == ReviewLink.order_item_id)
            .outerjoin(User, User.id == ReviewLink.user_id)
            .outerjoin(
                ReviewNote,
                and_(ReviewNote.review_id == Review.id, ReviewNote.id == earliest_note_id),
            )
            .where(OrderItem.barcode == barcode)
            .order_by(Review.created_at.desc(), Review.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )

        rows = db.execute(query).mappings().all()
        return ReviewListResponse(
            reviews=[ReviewResponse.model_validate(dict(row)) for row in rows],
            total=total,
            page=page,
            per_page=per_page,
        )

    @staticmethod
    def get_review_summary(db: Session, review_id: str) -> Optional[ReviewSummary]:
        row = db.execute(
            select(
                Review.id.label("id"),
                Review.rating.label("rating"),
                _helpful_count().label("helpful_count"),
                Review.created_at.label("created_at"),
            ).where(Review.id == review_id)
        ).mappings().first()

        if row is None:
            return None
        return ReviewSummary.model_validate(dict(row))

