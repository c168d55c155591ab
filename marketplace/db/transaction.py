from contextlib import contextmanager
from typing import Iterator

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.core.exceptions import APIError
from marketplace.db.errors import detail_of, translate_db_error

logger = structlog.get_logger()


@contextmanager
def atomic(db: Session, operation: str) -> Iterator[Session]:
    """Run a block of dependent statements as one unit of work.

    Commits on clean exit. Any failure rolls back every statement issued in
    the block before propagating; store errors are re-raised as typed
    ``APIError`` subclasses chained to the driver exception.
    """
    try:
        yield db
        db.commit()
    except APIError as exc:
        db.rollback()
        logger.warning(
            "transaction_rolled_back",
            operation=operation,
            error_type=type(exc).__name__,
            detail=exc.message,
        )
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "transaction_rolled_back",
            operation=operation,
            error_type=type(exc).__name__,
            detail=detail_of(exc),
        )
        raise translate_db_error(exc) from exc
    except Exception:
        db.rollback()
        logger.exception("transaction_rolled_back", operation=operation)
        raise
