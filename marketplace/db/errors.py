"""Structural classification of database failures.

Failures are classified from SQLSTATE codes (PostgreSQL drivers, ODBC)
and SQLite extended result codes, never from message text.
"""
import enum
from typing import Optional

from sqlalchemy.exc import DBAPIError, ProgrammingError, SQLAlchemyError

from marketplace.core.exceptions import (
    APIError,
    ConflictError,
    DependencyFailure,
    InternalError,
    MissingLinkage,
    ValidationError,
)


class FailureKind(str, enum.Enum):
    STRUCTURAL = "structural"  # routine missing, broken or raising internally
    RUNTIME = "runtime"  # data, constraint, locking or connectivity problem


# 42: syntax error / undefined object, 2F: SQL routine exception,
# 38: external routine exception, 39: external routine invocation,
# P0: PL/pgSQL raise
STRUCTURAL_SQLSTATE_CLASSES = frozenset({"42", "2F", "38", "39", "P0"})

NOT_NULL_VIOLATION = "23502"
FOREIGN_KEY_VIOLATION = "23503"
UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"
CONNECTION_EXCEPTION_CLASS = "08"
TRANSACTION_ROLLBACK_CLASS = "40"

# sqlite3 extended result codes
SQLITE_ERROR = 1
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_CONSTRAINT_CHECK = 275
SQLITE_CONSTRAINT_FOREIGNKEY = 787
SQLITE_CONSTRAINT_NOTNULL = 1299
SQLITE_CONSTRAINT_PRIMARYKEY = 1555
SQLITE_CONSTRAINT_UNIQUE = 2067


def sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", exc)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if isinstance(code, str) and len(code) == 5:
            return code.upper()
    # pyodbc puts the SQLSTATE first in args
    if type(orig).__module__ == "pyodbc":
        args = getattr(orig, "args", ())
        if args and isinstance(args[0], str) and len(args[0]) == 5:
            return args[0].upper()
    return None


def sqlite_code(exc: BaseException) -> Optional[int]:
    orig = getattr(exc, "orig", exc)
    return getattr(orig, "sqlite_errorcode", None)


def detail_of(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc)


def classify_failure(exc: DBAPIError) -> FailureKind:
    if exc.connection_invalidated:
        return FailureKind.RUNTIME

    code = sqlstate(exc)
    if code is not None:
        if code[:2] in STRUCTURAL_SQLSTATE_CLASSES:
            return FailureKind.STRUCTURAL
        return FailureKind.RUNTIME

    if sqlite_code(exc) == SQLITE_ERROR:
        return FailureKind.STRUCTURAL
    if isinstance(exc, ProgrammingError):
        return FailureKind.STRUCTURAL
    return FailureKind.RUNTIME


def translate_db_error(exc: SQLAlchemyError) -> APIError:
    """Map a store failure to the typed taxonomy, keeping the driver message."""
    detail = detail_of(exc)
    errors = [{"type": type(exc).__name__, "detail": detail}]

    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return DependencyFailure("Database connection lost", errors=errors)

        code = sqlstate(exc)
        lite = sqlite_code(exc)

        if code == NOT_NULL_VIOLATION or lite == SQLITE_CONSTRAINT_NOTNULL:
            return ValidationError(detail, errors=errors)
        if code == CHECK_VIOLATION or lite == SQLITE_CONSTRAINT_CHECK:
            return ValidationError(detail, errors=errors)
        if code == FOREIGN_KEY_VIOLATION or lite == SQLITE_CONSTRAINT_FOREIGNKEY:
            return MissingLinkage(detail, errors=errors)
        if code == UNIQUE_VIOLATION or lite in (SQLITE_CONSTRAINT_UNIQUE, SQLITE_CONSTRAINT_PRIMARYKEY):
            return ConflictError(detail, errors=errors)
        if (code and code[:2] == TRANSACTION_ROLLBACK_CLASS) or lite in (SQLITE_BUSY, SQLITE_LOCKED):
            return ConflictError("CONFLICT", errors=errors)
        if code and code[:2] == CONNECTION_EXCEPTION_CLASS:
            return DependencyFailure("Database connection failed", errors=errors)

    return InternalError("Database operation failed", errors=errors)
