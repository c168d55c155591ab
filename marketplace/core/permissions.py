"""Single authorization policy for every gated operation."""
import enum
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Union

from marketplace.core.exceptions import AuthorizationError, OwnershipError
from marketplace.models.user import UserRole


class Operation(str, enum.Enum):
    CREATE_ORDER = "create_order"
    VIEW_ORDER_DETAILS = "view_order_details"
    VIEW_TOP_SELLING = "view_top_selling"
    LIST_SELLER_ORDERS = "list_seller_orders"
    UPDATE_ORDER_STATUS = "update_order_status"
    CREATE_REVIEW = "create_review"
    REACT_TO_REVIEW = "react_to_review"


class Decision(str, enum.Enum):
    PERMIT = "permit"
    DENY_ROLE = "deny_role"
    DENY_OWNERSHIP = "deny_ownership"


@dataclass(frozen=True)
class Rule:
    roles: FrozenSet[UserRole]
    # Roles whose access additionally depends on owning the target.
    owner_scoped: FrozenSet[UserRole] = frozenset()


ANY_ROLE = frozenset(UserRole)

POLICY: Dict[Operation, Rule] = {
    Operation.CREATE_ORDER: Rule(frozenset({UserRole.BUYER, UserRole.ADMIN})),
    Operation.VIEW_ORDER_DETAILS: Rule(ANY_ROLE),
    Operation.VIEW_TOP_SELLING: Rule(
        frozenset({UserRole.SELLER, UserRole.ADMIN}),
        owner_scoped=frozenset({UserRole.SELLER}),
    ),
    Operation.LIST_SELLER_ORDERS: Rule(frozenset({UserRole.SELLER, UserRole.ADMIN})),
    Operation.UPDATE_ORDER_STATUS: Rule(
        frozenset({UserRole.SELLER, UserRole.ADMIN}),
        owner_scoped=frozenset({UserRole.SELLER}),
    ),
    Operation.CREATE_REVIEW: Rule(ANY_ROLE),
    Operation.REACT_TO_REVIEW: Rule(ANY_ROLE),
}


def _coerce_role(role: Union[UserRole, str, None]) -> Optional[UserRole]:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def evaluate(
    operation: Operation,
    role: Union[UserRole, str, None],
    owns: Optional[Callable[[], bool]] = None,
) -> Decision:
    """Decide ``operation`` for ``role``.

    ``owns`` is only consulted for owner-scoped roles, so callers can pass a
    predicate that hits the database without paying for it on admin calls.
    """
    rule = POLICY[operation]
    resolved = _coerce_role(role)
    if resolved is None or resolved not in rule.roles:
        return Decision.DENY_ROLE
    if resolved in rule.owner_scoped and owns is not None and not owns():
        return Decision.DENY_OWNERSHIP
    return Decision.PERMIT


def authorize(
    operation: Operation,
    role: Union[UserRole, str, None],
    owns: Optional[Callable[[], bool]] = None,
    ownership_message: Optional[str] = None,
) -> None:
    decision = evaluate(operation, role, owns)
    if decision is Decision.DENY_ROLE:
        raise AuthorizationError("Access denied")
    if decision is Decision.DENY_OWNERSHIP:
        raise OwnershipError(ownership_message)
