from sqlalchemy import func, select
from sqlalchemy.orm import Session

from marketplace.models.order import Order, OrderItem


def recalculate_order_total(db: Session, order_id: str) -> None:
    """Persist SUM(price * quantity) of the order's items as its total.

    Must run inside the transaction that changed the items, before commit.
    """
    items_total = (
        select(func.coalesce(func.sum(OrderItem.price * OrderItem.quantity), 0))
        .where(OrderItem.order_id == order_id)
        .scalar_subquery()
    )

    db.query(Order).filter(Order.id == order_id).update(
        {Order.total: items_total},
        synchronize_session=False,
    )
