from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from marketplace.core.exceptions import ValidationError, field_errors
from marketplace.db.resilient import ProcedureCall, ResilientExecutor, StrategyResult
from marketplace.models.review import HELPFUL_REACTION, Reaction
from marketplace.schemas.review import ReviewSummary
from marketplace.services.review_service import ReviewService

logger = structlog.get_logger()

REACTION_UPSERT_PROCEDURE = "usp_reactions_upsert"
MAX_REACTION_TYPE_LENGTH = 30

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def normalize_reaction_type(value: Optional[str]) -> str:
    reaction_type = (value or "").strip().lower()
    if not reaction_type:
        raise ValidationError("Reaction type is required", errors=field_errors(["type"]))
    if len(reaction_type) > MAX_REACTION_TYPE_LENGTH:
        raise ValidationError(
            f"Reaction type cannot exceed {MAX_REACTION_TYPE_LENGTH} characters",
            errors=field_errors(["type"], reason="too_long"),
        )
    return reaction_type


class ReactionService:

    @staticmethod
    def merge_reaction(
        db: Session,
        review_id: str,
        author_id: str,
        reaction_type: str,
        dialect_name: Optional[str] = None,
    ) -> None:
        """Insert the (review, author) reaction or change its type in place."""
        dialect_name = dialect_name or db.get_bind().dialect.name
        now = datetime.utcnow()
        insert = _UPSERT_INSERTS.get(dialect_name)

        if insert is not None:
            statement = insert(Reaction).values(
                review_id=review_id,
                author_id=author_id,
                type=reaction_type,
                created_at=now,
                updated_at=now,
            )
            statement = statement.on_conflict_do_update(
                index_elements=[Reaction.review_id, Reaction.author_id],
                set_={"type": statement.excluded.type, "updated_at": now},
            )
            db.execute(statement)
            return

        existing = (
            db.query(Reaction)
            .filter(Reaction.review_id == review_id, Reaction.author_id == author_id)
            .with_for_update()
            .first()
        )
        if existing:
            existing.type = reaction_type
            existing.updated_at = now
        else:
            db.add(
                Reaction(
                    review_id=review_id,
                    author_id=author_id,
                    type=reaction_type,
                    created_at=now,
                    updated_at=now,
                )
            )
        db.flush()

    @staticmethod
    def run_upsert(db: Session, review_id: str, author_id: str, reaction_type: str) -> StrategyResult[None]:
        call = ProcedureCall(
            REACTION_UPSERT_PROCEDURE,
            {
                "p_review_id": review_id,
                "p_author_id": author_id,
                "p_reaction_type": reaction_type,
            },
            returns_rows=False,
        )

        def primary(session: Session) -> None:
            session.execute(call.render(session.get_bind().dialect.name), call.params)
            session.commit()

        def fallback(session: Session) -> None:
            ReactionService.merge_reaction(session, review_id, author_id, reaction_type)
            session.commit()

        return ResilientExecutor(db).run("reaction_upsert", primary, fallback)

    @staticmethod
    def upsert_reaction(
        db: Session,
        review_id: str,
        author_id: str,
        reaction_type: Optional[str],
    ) -> Optional[ReviewSummary]:
        """Record the caller's reaction and return the review with its helpful count.

        Returns None when the review does not exist.
        """
        reaction_type = normalize_reaction_type(reaction_type)

        result = ReactionService.run_upsert(db, review_id, author_id, reaction_type)
        result.unwrap()

        logger.info(
            "reaction_recorded",
            review_id=review_id,
            author_id=author_id,
            reaction_type=reaction_type,
            outcome=result.outcome.value,
        )
        return ReviewService.get_review_summary(db, review_id)

    @staticmethod
    def mark_helpful(db: Session, review_id: str, author_id: str) -> Optional[ReviewSummary]:
        return ReactionService.upsert_reaction(db, review_id, author_id, HELPFUL_REACTION)
