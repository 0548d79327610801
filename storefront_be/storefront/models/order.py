import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    ForeignKey,
    DateTime,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from storefront.models.user import Base
from storefront.utils.clock import utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class ReturnStatus(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class PaymentMethod(str, enum.Enum):
    COD = "cod"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"
    PAYPAL = "paypal"

    @property
    def is_online(self) -> bool:
        return self is not PaymentMethod.COD


def _new_order_id() -> str:
    return uuid.uuid4().hex


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_orders_user_idempotency_key"),
    )

    id = Column(String(32), primary_key=True, default=_new_order_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # shipping address fields
    shipping_full_name = Column(String(255))
    shipping_phone = Column(String(50))
    shipping_street = Column(String(255))
    shipping_city = Column(String(100))
    shipping_state = Column(String(100))
    shipping_postal_code = Column(String(20))
    shipping_country = Column(String(100), default="India")

    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.COD.value)
    # payment outcome, only for confirmed online payments
    payment_transaction_id = Column(String(100))
    payment_status = Column(String(30))
    payment_email = Column(String(255))
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    delivered_at = Column(DateTime)
    has_returns = Column(Boolean, nullable=False, default=False)
    idempotency_key = Column(String(100))

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    user = relationship("User", lazy="joined")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(32), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # snapshot survives product deletion
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255))
    price = Column(Numeric(10, 2), nullable=False)  # unit price at time of order
    quantity = Column(Integer, nullable=False)
    image = Column(String(500))

    return_status = Column(String(20), nullable=False, default=ReturnStatus.NONE.value)
    return_id = Column(String(40), unique=True)
    return_reason = Column(String(500))
    return_comments = Column(String(1000))
    return_requested_at = Column(DateTime)
    return_updated_at = Column(DateTime)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
