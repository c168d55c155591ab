from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from marketplace.db.base_class import Base


HELPFUL_REACTION = "helpful"


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True)
    rating = Column(Integer, nullable=False)  # 1-5 stars
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    link = relationship("ReviewLink", back_populates="review", uselist=False, cascade="all, delete-orphan")
    notes = relationship("ReviewNote", back_populates="review", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )


class ReviewLink(Base):
    """Ties a review to the purchase it was written for (verified purchase)."""
    __tablename__ = "review_links"

    review_id = Column(String(36), ForeignKey("reviews.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    order_item_id = Column(String(36), ForeignKey("order_items.id"), nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)

    # Relationships
    review = relationship("Review", back_populates="link")
    user = relationship("User")

    # One review per purchased item per author
    __table_args__ = (
        UniqueConstraint("order_item_id", "user_id", name="uq_review_links_item_user"),
    )


class ReviewNote(Base):
    """Authored text attached to a review; the author's first note is the review body."""
    __tablename__ = "review_notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(String(36), ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False)
    author_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    review = relationship("Review", back_populates="notes")


class Reaction(Base):
    """One typed reaction per (review, author); the type may change in place.

    ``review_id`` has no foreign key: reacting to an unknown review is
    accepted by the store and reported as not-found by the API.
    """
    __tablename__ = "reactions"

    review_id = Column(String(36), primary_key=True)
    author_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    type = Column(String(30), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


Index("ix_review_notes_review_author", ReviewNote.review_id, ReviewNote.author_id)
Index("ix_reactions_review_type", Reaction.review_id, Reaction.type)
