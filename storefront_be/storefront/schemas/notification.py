from datetime import datetime
from pydantic import BaseModel
from typing import Any, Dict, List

from storefront.models.notification import NotificationType


class NotificationOut(BaseModel):
    id: int
    type: NotificationType
    message: str
    data: Dict[str, Any] = {}
    read: bool
    createdAt: datetime


class FeedEntryOut(BaseModel):
    id: str
    type: NotificationType
    message: str
    data: Dict[str, Any] = {}
    read: bool = False
    createdAt: datetime
    isStored: bool = False


class NotificationFeedOut(BaseModel):
    success: bool = True
    notifications: List[FeedEntryOut]
    unreadCount: int
    totalCount: int
    hasActivities: bool


class NotificationListOut(BaseModel):
    success: bool = True
    notifications: List[NotificationOut]
    count: int


class UnreadCountOut(BaseModel):
    success: bool = True
    unreadCount: int


class MessageOut(BaseModel):
    success: bool = True
    message: str
