from fastapi import status
from typing import Any, List, Optional


class APIError(Exception):
    """Base of every typed failure raised below the HTTP boundary.

    The boundary maps ``status_code`` to the response; ``message`` and
    ``errors`` are passed through untouched so the cause stays visible.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class MissingLinkage(ValidationError):
    default_message = "Required linkage fields are missing"


class AuthenticationError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class AuthorizationError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class OwnershipError(AuthorizationError):
    default_message = "Not authorized to modify this resource"


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class OrderNotFound(NotFoundError):
    default_message = "Order not found"


class ReviewNotFound(NotFoundError):
    default_message = "Review not found"


class ConflictError(APIError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "CONFLICT"


class DependencyFailure(APIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Database query failed"


class InternalError(APIError):
    pass


def field_errors(fields: List[str], reason: str = "missing") -> List[dict]:
    return [{"field": field, "reason": reason} for field in fields]
