import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from storefront.models.user import Base
from storefront.utils.clock import utcnow


class NotificationType(str, enum.Enum):
    NEW_ORDER = "new_order"
    RETURN_REQUEST = "return_request"
    USER = "user"
    PRODUCT = "product"
    SYSTEM = "system"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(30), nullable=False, index=True)
    message = Column(String(500), nullable=False)
    data = Column(JSON, default=dict)
    read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)
