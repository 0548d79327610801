from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from storefront.models.order import Order, OrderItem, OrderStatus, ReturnStatus


class OrderRepository:
    """Persistence for orders and their embedded line items.

    Methods flush but never commit; the lifecycle service decides the
    transaction boundary.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()
        return order

    def get(self, order_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.id == order_id).first()

    def get_owned(self, order_id: str, user_id: int) -> Optional[Order]:
        return self.db.query(Order).filter(Order.id == order_id, Order.user_id == user_id).first()

    def find_by_idempotency_key(self, user_id: int, key: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id, Order.idempotency_key == key)
            .first()
        )

    def list_for_user(self, user_id: int) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def list_all(self, page: int = 0, size: int = 20) -> List[Order]:
        return (
            self.db.query(Order)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(page * size)
            .limit(size)
            .all()
        )

    def count(self) -> int:
        return self.db.query(Order).count()

    def transition_status(self, order_id: str, expected: OrderStatus, target: OrderStatus, at: datetime) -> bool:
        """Compare-and-set the order status; False if someone else moved it first."""
        values = {"status": target.value, "updated_at": at}
        if target is OrderStatus.DELIVERED:
            # first delivery anchors the return window, later re-entries keep it
            values["delivered_at"] = func.coalesce(Order.delivered_at, at)
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def claim_return(
        self,
        order_id: str,
        item_id: int,
        *,
        return_id: str,
        reason: str,
        comments: Optional[str],
        requested_at: datetime,
    ) -> bool:
        """Atomically move a line item from ``none`` to ``pending``.

        Returns False when the item already had an active return, so two
        racing requests can never both succeed.
        """
        result = self.db.execute(
            update(OrderItem)
            .where(
                OrderItem.id == item_id,
                OrderItem.order_id == order_id,
                OrderItem.return_status == ReturnStatus.NONE.value,
            )
            .values(
                return_status=ReturnStatus.PENDING.value,
                return_id=return_id,
                return_reason=reason,
                return_comments=comments,
                return_requested_at=requested_at,
                return_updated_at=requested_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(has_returns=True, updated_at=requested_at)
            .execution_options(synchronize_session=False)
        )
        return True

    def transition_return(
        self, order_id: str, item_id: int, expected: ReturnStatus, target: ReturnStatus, at: datetime
    ) -> bool:
        result = self.db.execute(
            update(OrderItem)
            .where(
                OrderItem.id == item_id,
                OrderItem.order_id == order_id,
                OrderItem.return_status == expected.value,
            )
            .values(return_status=target.value, return_updated_at=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_returns(self) -> List[Tuple[OrderItem, Order]]:
        return (
            self.db.query(OrderItem, Order)
            .join(Order, OrderItem.order_id == Order.id)
            .filter(OrderItem.return_status != ReturnStatus.NONE.value)
            .order_by(OrderItem.return_requested_at.desc(), OrderItem.id.desc())
            .all()
        )

    def paid_totals(self) -> Tuple[int, Decimal]:
        count, total = (
            self.db.query(func.count(Order.id), func.coalesce(func.sum(Order.total_price), 0))
            .filter(Order.is_paid.is_(True))
            .one()
        )
        return int(count or 0), Decimal(str(total or 0))

    def paid_since(self, since: datetime) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.is_paid.is_(True), Order.created_at >= since)
            .order_by(Order.created_at.asc())
            .all()
        )

    def recent_with_status(self, status: OrderStatus, since: datetime, limit: int = 10) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.created_at >= since, Order.status == status.value)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )
