import structlog
from typing import Callable
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from marketplace.core.exceptions import AuthenticationError, AuthorizationError
from marketplace.core.ids import IdGenerator, default_id_generator
from marketplace.core.permissions import Decision, Operation, evaluate
from marketplace.core.security import decode_token
from marketplace.db.session import get_db
from marketplace.models.user import User

logger = structlog.get_logger()


def _extract_token(request: Request) -> str:
    token = request.cookies.get("access_token")
    if token:
        return token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return ""


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user from cookie or bearer token."""
    token = _extract_token(request)
    if not token:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid authentication credentials")

    user = db.query(User).filter(User.id == str(user_id)).first()
    if not user:
        raise AuthenticationError("Invalid authentication credentials")

    if not user.is_active:
        raise AuthorizationError("Account is inactive")

    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user


def permit(operation: Operation) -> Callable[..., User]:
    """Upfront role check; ownership is decided later by the service."""

    def dependency(
        request: Request,
        current_user: User = Depends(get_current_user),
    ) -> User:
        if evaluate(operation, current_user.role) is Decision.DENY_ROLE:
            logger.warning(
                "access_denied",
                operation=operation.value,
                user_id=current_user.id,
                role=current_user.role.value,
                action=f"{request.method} {request.url.path}",
            )
            raise AuthorizationError("Access denied")
        return current_user

    return dependency


def get_id_generator() -> IdGenerator:
    return default_id_generator
