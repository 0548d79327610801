from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.models.user import get_db
from storefront.schemas.notification import (
    MessageOut,
    NotificationFeedOut,
    NotificationListOut,
    NotificationOut,
    UnreadCountOut,
)
from storefront.services.notification_store import ActivityFeed, NotificationStore, is_synthetic_id
from storefront.errors import NotFoundError
from storefront.utils.security import Caller, require_admin


router = APIRouter()


def _to_out(n) -> NotificationOut:
    return NotificationOut(
        id=n.id,
        type=n.type,
        message=n.message,
        data=n.data or {},
        read=n.read,
        createdAt=n.created_at,
    )


def _stored_id(notification_id: str) -> int:
    try:
        return int(notification_id)
    except ValueError:
        raise NotFoundError("Notification not found")


# Stored notifications merged with recent activity
@router.get("/", response_model=NotificationFeedOut)
def get_admin_notifications(db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    return ActivityFeed(db).build()


@router.get("/unread-count", response_model=UnreadCountOut)
def get_unread_count(db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    return UnreadCountOut(unreadCount=NotificationStore(db).unread_count())


@router.get("/type/{type}", response_model=NotificationListOut)
def get_notifications_by_type(type: str, db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    notifications = NotificationStore(db).list_by_type(type)
    return NotificationListOut(notifications=[_to_out(n) for n in notifications], count=len(notifications))


@router.put("/read-all", response_model=MessageOut)
def mark_all_notifications_as_read(db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    NotificationStore(db).mark_all_read()
    return MessageOut(message="All notifications marked as read")


@router.put("/{notification_id}/read")
def mark_notification_as_read(
    notification_id: str,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    # Activity entries only live in the feed; acknowledging them is a client-side affordance
    if not is_synthetic_id(notification_id):
        NotificationStore(db).mark_read(_stored_id(notification_id))
    return {"success": True, "message": "Notification marked as read", "notificationId": notification_id}


@router.delete("/{notification_id}", response_model=MessageOut)
def delete_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    if is_synthetic_id(notification_id):
        return MessageOut(message="Activity notification cannot be deleted")
    NotificationStore(db).delete_one(_stored_id(notification_id))
    return MessageOut(message="Notification deleted successfully")


@router.delete("/", response_model=MessageOut)
def clear_all_notifications(db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    NotificationStore(db).clear_all()
    return MessageOut(message="All notifications cleared successfully")
