"""Two-tier execution: server-side procedure first, equivalent query second.

Exactly one attempt per tier. The fallback runs only when the primary
failure is structural (routine absent or broken); runtime failures such as
lost connections or constraint violations are reported without retrying.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Executable
from sqlalchemy.sql.elements import TextClause

from marketplace.core.exceptions import DependencyFailure
from marketplace.db.errors import FailureKind, classify_failure, detail_of, translate_db_error

logger = structlog.get_logger()

T = TypeVar("T")


class Outcome(str, enum.Enum):
    PRIMARY_SUCCEEDED = "primary_succeeded"
    FALLBACK_SUCCEEDED = "fallback_succeeded"
    PRIMARY_FAILED = "primary_failed"
    BOTH_FAILED = "both_failed"


@dataclass(frozen=True)
class StrategyResult(Generic[T]):
    operation: str
    outcome: Outcome
    value: Optional[T] = None
    primary_error: Optional[SQLAlchemyError] = None
    fallback_error: Optional[SQLAlchemyError] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (Outcome.PRIMARY_SUCCEEDED, Outcome.FALLBACK_SUCCEEDED)

    def unwrap(self) -> T:
        if self.succeeded:
            return self.value

        if self.outcome is Outcome.BOTH_FAILED:
            raise DependencyFailure(
                f"Database query failed: {self.operation}",
                errors=[
                    {"tier": "primary", "detail": detail_of(self.primary_error)},
                    {"tier": "fallback", "detail": detail_of(self.fallback_error)},
                ],
            ) from self.fallback_error

        raise translate_db_error(self.primary_error) from self.primary_error


@dataclass(frozen=True)
class ProcedureCall:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)
    returns_rows: bool = True

    def __post_init__(self):
        # Names are interpolated into SQL, values are always bound.
        for identifier in (self.name, *self.params):
            if not identifier.isidentifier():
                raise ValueError(f"Invalid SQL identifier: {identifier!r}")

    def render(self, dialect_name: str) -> TextClause:
        if dialect_name == "mssql":
            args = ", ".join(f"@{key} = :{key}" for key in self.params)
            return text(f"EXEC {self.name} {args}".rstrip())

        args = ", ".join(f":{key}" for key in self.params)
        if self.returns_rows:
            return text(f"SELECT * FROM {self.name}({args})")
        return text(f"CALL {self.name}({args})")


class ResilientExecutor:
    def __init__(self, db: Session):
        self.db = db

    def run(
        self,
        operation: str,
        primary: Callable[[Session], T],
        fallback: Callable[[Session], T],
    ) -> StrategyResult[T]:
        primary_error: Optional[DBAPIError] = None
        try:
            value = primary(self.db)
        except DBAPIError as exc:
            self.db.rollback()
            primary_error = exc

        if primary_error is None:
            return StrategyResult(operation, Outcome.PRIMARY_SUCCEEDED, value=value)

        if classify_failure(primary_error) is FailureKind.RUNTIME:
            logger.error(
                "primary_tier_failed",
                operation=operation,
                error_type=type(primary_error).__name__,
                error=detail_of(primary_error),
            )
            return StrategyResult(operation, Outcome.PRIMARY_FAILED, primary_error=primary_error)

        logger.warning(
            "primary_tier_unavailable",
            operation=operation,
            error_type=type(primary_error).__name__,
            error=detail_of(primary_error),
        )

        try:
            value = fallback(self.db)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "fallback_tier_failed",
                operation=operation,
                error_type=type(exc).__name__,
                error=detail_of(exc),
            )
            return StrategyResult(
                operation,
                Outcome.BOTH_FAILED,
                primary_error=primary_error,
                fallback_error=exc,
            )

        return StrategyResult(
            operation,
            Outcome.FALLBACK_SUCCEEDED,
            value=value,
            primary_error=primary_error,
        )

    def fetch_rows(
        self,
        operation: str,
        call: ProcedureCall,
        fallback: Executable,
    ) -> StrategyResult[List[dict]]:
        """Both tiers return plain dicts keyed by column label."""

        def run_procedure(db: Session) -> List[dict]:
            statement = call.render(db.get_bind().dialect.name)
            return [dict(row) for row in db.execute(statement, call.params).mappings().all()]

        def run_query(db: Session) -> List[dict]:
            return [dict(row) for row in db.execute(fallback).mappings().all()]

        return self.run(operation, run_procedure, run_query)
