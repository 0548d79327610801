"""Durable admin notification log and the admin-facing activity feed.

``NotificationStore`` is plain CRUD over the ``notifications`` table.
``ActivityFeed`` is the read path the admin panel uses: it merges stored
notifications with synthetic entries derived on the fly from recent pending
orders and new registrations. Synthetic entries are never written back.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import get_settings
from storefront.errors import DependencyError, NotFoundError, ValidationError
from storefront.models.notification import Notification, NotificationType
from storefront.models.order import OrderStatus
from storefront.models.user import User
from storefront.services.order_repository import OrderRepository
from storefront.utils.clock import utcnow, epoch_millis

logger = logging.getLogger(__name__)

SYNTHETIC_PREFIXES = ("order-", "user-")
STORED_FEED_WINDOW = 30
ACTIVITY_SOURCE_LIMIT = 10


def is_synthetic_id(notification_id: str) -> bool:
    return str(notification_id).startswith(SYNTHETIC_PREFIXES)


def parse_notification_type(value) -> NotificationType:
    try:
        return NotificationType(value)
    except ValueError:
        raise ValidationError(f"Invalid notification type: {value}")


class NotificationStore:
    def __init__(self, db: Session):
        self.db = db

    def append(self, type, message: str, data: Optional[Dict[str, Any]] = None) -> Notification:
        """Insert an unread notification.

        Database failures are re-raised as DependencyError; callers treat
        notifications as best-effort and log instead of failing.
        """
        notification = Notification(
            type=parse_notification_type(type).value,
            message=message,
            data=jsonable_encoder(data or {}),
            read=False,
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DependencyError(f"Could not store notification: {exc}") from exc
        self.db.refresh(notification)
        logger.info("Notification: %s", message)
        return notification

    def get(self, notification_id: int) -> Notification:
        notification = self.db.query(Notification).filter(Notification.id == notification_id).first()
        if not notification:
            raise NotFoundError("Notification not found")
        return notification

    def list_recent(self, limit: int = STORED_FEED_WINDOW, offset: int = 0) -> List[Notification]:
        return (
            self.db.query(Notification)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_by_type(self, type, limit: int = 50) -> List[Notification]:
        kind = parse_notification_type(type)
        return (
            self.db.query(Notification)
            .filter(Notification.type == kind.value)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.get(notification_id)
        if not notification.read:
            notification.read = True
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    def unread_count(self) -> int:
        return self.db.query(Notification).filter(Notification.read.is_(False)).count()

    def delete_one(self, notification_id: int) -> None:
        notification = self.get(notification_id)
        self.db.delete(notification)
        self.db.commit()

    def clear_all(self) -> int:
        removed = self.db.query(Notification).delete(synchronize_session=False)
        self.db.commit()
        return removed


def _money(value) -> float:
    return float(Decimal(str(value or 0)).quantize(Decimal("0.01")))


class ActivityFeed:
    """Stored notifications merged with synthetic recent-activity entries."""

    def __init__(self, db: Session, store: Optional[NotificationStore] = None, settings=None):
        self.db = db
        self.store = store or NotificationStore(db)
        self.settings = settings or get_settings()

    def stored_entries(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": str(n.id),
                "type": n.type,
                "message": n.message,
                "data": n.data or {},
                "read": bool(n.read),
                "createdAt": n.created_at,
                "isStored": True,
            }
            for n in self.store.list_recent(limit=STORED_FEED_WINDOW)
        ]

    def order_activities(self, since: datetime) -> List[Dict[str, Any]]:
        orders = OrderRepository(self.db).recent_with_status(OrderStatus.PENDING, since, limit=ACTIVITY_SOURCE_LIMIT)
        out = []
        for order in orders:
            amount = _money(order.total_price)
            out.append(
                {
                    "id": f"order-{order.id}-{epoch_millis(order.created_at)}",
                    "type": NotificationType.NEW_ORDER.value,
                    "message": f"New Order #{order.id[-6:]} - ₹{amount:.2f}",
                    "read": False,
                    "createdAt": order.created_at,
                    "data": {
                        "orderId": order.id,
                        "amount": amount,
                        "status": order.status,
                        "customerName": (order.user.full_name if order.user else "") or "Customer",
                        "isActivity": True,
                    },
                    "isStored": False,
                }
            )
        return out

    def user_activities(self, since: datetime) -> List[Dict[str, Any]]:
        users = (
            self.db.query(User)
            .filter(User.created_at >= since, User.role == "USER")
            .order_by(User.created_at.desc())
            .limit(ACTIVITY_SOURCE_LIMIT)
            .all()
        )
        return [
            {
                "id": f"user-{u.id}-{epoch_millis(u.created_at)}",
                "type": NotificationType.USER.value,
                "message": f"New user registered: {u.full_name or u.email}",
                "read": False,
                "createdAt": u.created_at,
                "data": {"userId": u.id, "name": u.full_name, "email": u.email, "isActivity": True},
                "isStored": False,
            }
            for u in users
        ]

    def build(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        since = now - timedelta(hours=self.settings.ACTIVITY_WINDOW_HOURS)
        activities = self.order_activities(since) + self.user_activities(since)
        merged = self.stored_entries() + activities
        merged.sort(key=lambda entry: entry["createdAt"], reverse=True)
        merged = merged[: self.settings.NOTIFICATION_FEED_LIMIT]
        return {
            "success": True,
            "notifications": merged,
            "unreadCount": self.store.unread_count(),
            "totalCount": len(merged),
            "hasActivities": bool(activities),
        }
