"""Order lifecycle: checkout, status pipeline and per-item returns.

Status pipeline (anything not listed is rejected)::

    pending -> processing -> shipped -> out_for_delivery -> delivered -> returned
       \\___________\\____________\\______________\\-> cancelled

Cash-on-delivery orders start ``pending`` and unpaid; online orders are only
created once the gateway confirmed the payment, and start ``processing``.

Return sub-state of a line item::

    none -> pending -> approved | rejected -> completed

Notifications and broadcasts are side channels: they run after the business
change is committed and their failures are logged, never raised.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional
import logging
import secrets
import string

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.config import get_settings
from storefront.errors import (
    ConflictError,
    DependencyError,
    EmptyCartError,
    ExpiredError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from storefront.models.notification import NotificationType
from storefront.models.order import Order, OrderItem, OrderStatus, PaymentMethod, ReturnStatus
from storefront.models.product import Product
from storefront.realtime.broadcaster import Broadcaster
from storefront.schemas.order import (
    CustomerOut,
    OrderItemOut,
    OrderOut,
    PaymentResultOut,
    ProductSnapshotOut,
    ReturnRequestSummary,
    ShippingAddressOut,
)
from storefront.services.collaborators import CartCollaborator, CatalogCollaborator
from storefront.services.notification_store import NotificationStore
from storefront.services.order_repository import OrderRepository
from storefront.utils.clock import utcnow, epoch_millis

logger = logging.getLogger(__name__)

_TWO = Decimal("0.01")

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

RETURN_TRANSITIONS: Dict[ReturnStatus, FrozenSet[ReturnStatus]] = {
    ReturnStatus.NONE: frozenset({ReturnStatus.PENDING}),
    ReturnStatus.PENDING: frozenset({ReturnStatus.APPROVED, ReturnStatus.REJECTED}),
    ReturnStatus.APPROVED: frozenset({ReturnStatus.COMPLETED}),
    ReturnStatus.REJECTED: frozenset({ReturnStatus.COMPLETED}),
    ReturnStatus.COMPLETED: frozenset(),
}

REQUIRED_ADDRESS_FIELDS = ("full_name", "phone", "street", "city", "state", "postal_code")

RETURN_ID_ALPHABET = string.ascii_uppercase + string.digits


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target is current or target in ALLOWED_TRANSITIONS[current]


def to_money(val: Any) -> Decimal:
    """Normalize an amount to a non-negative Decimal with 2 places."""
    if val is None:
        d = Decimal("0")
    elif isinstance(val, Decimal):
        d = val
    else:
        try:
            d = Decimal(str(val))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {val!r}")
    if d < 0:
        raise ValidationError(f"Negative amount not allowed: {d}")
    return d.quantize(_TWO, rounding=ROUND_HALF_UP)


def order_total(items: Iterable[OrderItem]) -> Decimal:
    total = sum((to_money(i.price) * i.quantity for i in items), Decimal("0"))
    return total.quantize(_TWO, rounding=ROUND_HALF_UP)


def generate_return_id(now: Optional[datetime] = None) -> str:
    suffix = "".join(secrets.choice(RETURN_ID_ALPHABET) for _ in range(6))
    return f"RET{epoch_millis(now or utcnow())}{suffix}"


@dataclass
class PaymentResult:
    """What the payment gateway told the client; opaque apart from these fields."""

    transaction_id: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return (self.status or "").strip().lower() == "success"


def _parse_status(value, enum_cls, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {what}: {value}")


def _product_snapshot(product: Optional[Product]) -> Optional[ProductSnapshotOut]:
    if product is None:
        return None
    return ProductSnapshotOut(
        id=product.id,
        name=product.name,
        price=float(product.price or 0),
        images=list(product.images or []),
        description=product.description or "",
        category=product.category or "",
        brand=product.brand or "",
    )


def order_to_out(
    order: Order,
    *,
    fallback_name: str = "",
    default_country: str = "India",
    live_products: Optional[Dict[int, Product]] = None,
    include_customer: bool = False,
) -> OrderOut:
    """Serialize an order; order-time snapshots win over live catalog data."""
    live_products = live_products or {}
    items = []
    for i in order.items:
        product = live_products.get(i.product_id)
        items.append(
            OrderItemOut(
                id=i.id,
                productId=i.product_id,
                name=i.name or (product.name if product else None) or "Product",
                price=float(i.price if i.price is not None else (product.price if product else 0) or 0),
                quantity=i.quantity,
                image=i.image or (product.cover_image if product else None),
                product=_product_snapshot(product),
                returnRequested=i.return_status != ReturnStatus.NONE.value,
                returnStatus=i.return_status or ReturnStatus.NONE.value,
                returnId=i.return_id,
                returnReason=i.return_reason,
                returnRequestedAt=i.return_requested_at,
            )
        )
    shipping = ShippingAddressOut(
        fullName=order.shipping_full_name or fallback_name or "",
        phone=order.shipping_phone or "",
        street=order.shipping_street or "",
        city=order.shipping_city or "",
        state=order.shipping_state or "",
        postalCode=order.shipping_postal_code or "",
        country=order.shipping_country or default_country,
    )
    payment = None
    if order.payment_transaction_id:
        payment = PaymentResultOut(
            transactionId=order.payment_transaction_id,
            status=order.payment_status,
            email=order.payment_email,
        )
    customer = None
    if include_customer and order.user is not None:
        customer = CustomerOut(id=order.user.id, name=order.user.full_name, email=order.user.email)
    return OrderOut(
        id=order.id,
        userId=order.user_id,
        items=items,
        shippingAddress=shipping,
        paymentMethod=order.payment_method,
        paymentResult=payment,
        totalPrice=float(order.total_price or 0),
        isPaid=bool(order.is_paid),
        paidAt=order.paid_at,
        status=order.status,
        deliveredAt=order.delivered_at,
        hasReturns=bool(order.has_returns),
        customer=customer,
        createdAt=order.created_at,
        updatedAt=order.updated_at,
    )


class OrderLifecycleService:
    def __init__(
        self,
        db: Session,
        broadcaster: Optional[Broadcaster] = None,
        notifications: Optional[NotificationStore] = None,
        cart: Optional[CartCollaborator] = None,
        catalog: Optional[CatalogCollaborator] = None,
        clock: Callable[[], datetime] = utcnow,
        settings=None,
    ):
        self.db = db
        self.orders = OrderRepository(db)
        self.broadcaster = broadcaster
        self.notifications = notifications or NotificationStore(db)
        self.cart = cart or CartCollaborator(db)
        self.catalog = catalog or CatalogCollaborator(db)
        self.clock = clock
        self.settings = settings or get_settings()

    # ----------------------------------------------------------- side channels

    def _notify(self, type: NotificationType, message: str, data: Dict[str, Any]) -> None:
        try:
            self.notifications.append(type, message, data)
        except DependencyError as exc:
            logger.warning("Notification %s not stored: %s", type.value, exc, exc_info=True)

    def _broadcast_user(self, user_id: int, event_type: str, data: Dict[str, Any]) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.notify_user(user_id, event_type, data)
        except DependencyError as exc:
            logger.warning("Broadcast %s to user %s failed: %s", event_type, user_id, exc)

    def _broadcast_admins(self, event_type: str, data: Dict[str, Any], event: Optional[str] = None) -> None:
        if self.broadcaster is None:
            return
        try:
            if event:
                self.broadcaster.notify_admins(event_type, data, event=event)
            else:
                self.broadcaster.notify_admins(event_type, data)
        except DependencyError as exc:
            logger.warning("Broadcast %s to admins failed: %s", event_type, exc)

    # ------------------------------------------------------------------ checkout

    def _shipping_address(self, address: Dict[str, Any]) -> Dict[str, str]:
        address = dict(address or {})
        cleaned = {k: (str(address.get(k) or "")).strip() for k in REQUIRED_ADDRESS_FIELDS}
        missing = [k for k, v in cleaned.items() if not v]
        if missing:
            raise ValidationError(f"Missing shipping address fields: {', '.join(missing)}")
        cleaned["country"] = (str(address.get("country") or "")).strip() or self.settings.DEFAULT_COUNTRY
        return cleaned

    def _check_client_pricing(
        self,
        client_items: Optional[List[Dict[str, Any]]],
        client_total,
        items: List[OrderItem],
        total: Decimal,
    ) -> None:
        """Client supplied pricing is never used; mismatches are only logged."""
        if client_total is not None and to_money(client_total) != total:
            logger.warning("Client total %s differs from computed total %s, using computed", client_total, total)
        if client_items:
            server = {(i.product_id, i.quantity, to_money(i.price)) for i in items}
            client = {
                (int(c.get("productId")), int(c.get("quantity") or 0), to_money(c.get("price")))
                for c in client_items
            }
            if server != client:
                logger.warning("Client order items differ from cart contents, using cart")

    def _classify_payment(self, method: PaymentMethod, payment_result: Optional[PaymentResult]) -> Optional[PaymentResult]:
        if not method.is_online:
            return None
        if payment_result is None or not payment_result.succeeded:
            raise ValidationError("Payment was not confirmed by the payment gateway")
        if not payment_result.transaction_id:
            raise ValidationError("Payment result is missing a transaction id")
        return payment_result

    def create_order(
        self,
        caller,
        payment_method,
        shipping_address: Dict[str, Any],
        payment_result: Optional[PaymentResult] = None,
        order_items: Optional[List[Dict[str, Any]]] = None,
        total_price=None,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        method = _parse_status(payment_method or PaymentMethod.COD.value, PaymentMethod, "payment method")

        if idempotency_key:
            existing = self.orders.find_by_idempotency_key(caller.user_id, idempotency_key)
            if existing is not None:
                # the original request cleared the cart in its own commit; anything there now is newer
                logger.info("Replaying order %s for idempotency key %s", existing.id, idempotency_key)
                return existing

        lines = self.cart.lines(caller.user_id)
        if not lines:
            raise EmptyCartError()
        address = self._shipping_address(shipping_address)

        items = [
            OrderItem(
                product_id=line.product.id,
                name=line.product.name,
                price=to_money(line.product.price),
                quantity=line.quantity,
                image=line.product.cover_image,
            )
            for line in lines
        ]
        total = order_total(items)
        self._check_client_pricing(order_items, total_price, items, total)
        payment = self._classify_payment(method, payment_result)
        now = self.clock()

        order = Order(
            user_id=caller.user_id,
            items=items,
            shipping_full_name=address["full_name"],
            shipping_phone=address["phone"],
            shipping_street=address["street"],
            shipping_city=address["city"],
            shipping_state=address["state"],
            shipping_postal_code=address["postal_code"],
            shipping_country=address["country"],
            total_price=total,
            payment_method=method.value,
            is_paid=payment is not None,
            status=(OrderStatus.PROCESSING if payment is not None else OrderStatus.PENDING).value,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        if payment is not None:
            order.payment_transaction_id = payment.transaction_id
            order.payment_status = payment.status
            order.payment_email = payment.email
            order.paid_at = now

        try:
            self.orders.add(order)
            self.cart.clear(caller.user_id)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if idempotency_key:
                existing = self.orders.find_by_idempotency_key(caller.user_id, idempotency_key)
                if existing is not None:
                    return existing
            raise
        self.db.refresh(order)
        logger.info("Order %s created for user %s, total %s (%s)", order.id, caller.user_id, total, method.value)

        amount = float(total)
        self._notify(
            NotificationType.NEW_ORDER,
            f"New order #{order.id[-6:]} - ₹{amount:.2f} by {caller.name}",
            {"orderId": order.id, "userId": caller.user_id, "userName": caller.name, "amount": amount},
        )
        self._broadcast_admins(
            "new-order",
            {"orderId": order.id, "userId": caller.user_id, "amount": amount, "status": order.status},
        )
        return order

    # --------------------------------------------------------------------- reads

    def get_my_orders(self, caller) -> List[OrderOut]:
        orders = self.orders.list_for_user(caller.user_id)
        live = self.catalog.get_products(i.product_id for o in orders for i in o.items)
        return [
            order_to_out(
                o,
                fallback_name=caller.name,
                default_country=self.settings.DEFAULT_COUNTRY,
                live_products=live,
            )
            for o in orders
        ]

    def get_order_by_id(self, caller, order_id: str) -> Order:
        order = self.orders.get_owned(order_id, caller.user_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def get_order(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def list_all_orders(self, page: int = 0, size: int = 20) -> List[Order]:
        return self.orders.list_all(page=page, size=size)

    # ------------------------------------------------------------------- returns

    def request_return(self, caller, order_id: str, item_id: int, reason: str, comments: Optional[str] = None) -> str:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Return reason is required")

        order = self.orders.get_owned(order_id, caller.user_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status != OrderStatus.DELIVERED.value:
            raise InvalidStateError("Only delivered orders can be returned")
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Item not found in order")
        if item.return_status != ReturnStatus.NONE.value:
            raise ConflictError("Return already requested for this item")

        now = self.clock()
        window = timedelta(days=self.settings.RETURN_WINDOW_DAYS)
        if order.delivered_at is not None and now - order.delivered_at > window:
            raise ExpiredError(f"Return period ({self.settings.RETURN_WINDOW_DAYS} days) has expired")
        if order.delivered_at is None:
            logger.warning("Order %s is delivered without a delivery date, skipping window check", order.id)

        return_id = generate_return_id(now)
        item_name = item.name
        if not self.orders.claim_return(
            order.id, item.id, return_id=return_id, reason=reason, comments=comments, requested_at=now
        ):
            self.db.rollback()
            raise ConflictError("Return already requested for this item")
        self.db.commit()
        logger.info("Return %s requested for order %s item %s", return_id, order_id, item_id)

        data = {
            "orderId": order_id,
            "userId": caller.user_id,
            "itemId": item_id,
            "returnId": return_id,
            "reason": reason,
        }
        self._notify(
            NotificationType.RETURN_REQUEST,
            f"Return requested for order #{order_id[-6:]} - Item: {item_name}",
            data,
        )
        self._broadcast_admins("return-request", data)
        return return_id

    def list_returns(self) -> List[ReturnRequestSummary]:
        out = []
        for item, order in self.orders.list_returns():
            out.append(
                ReturnRequestSummary(
                    returnId=item.return_id,
                    orderId=order.id,
                    itemId=item.id,
                    userId=order.user_id,
                    customerName=order.user.full_name if order.user else "",
                    productName=item.name or "",
                    quantity=item.quantity,
                    price=float(item.price or 0),
                    reason=item.return_reason,
                    comments=item.return_comments,
                    status=item.return_status,
                    requestedAt=item.return_requested_at,
                    updatedAt=item.return_updated_at,
                )
            )
        return out

    def update_return_status(self, order_id: str, item_id: int, status, actor=None) -> OrderItem:
        target = _parse_status(status, ReturnStatus, "return status")
        order = self.get_order(order_id)
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Item not found in order")
        current = ReturnStatus(item.return_status)
        if target not in RETURN_TRANSITIONS[current] or current is ReturnStatus.NONE:
            # none -> pending only happens through a customer's return request
            raise InvalidTransitionError(current.value, target.value, what="return")

        now = self.clock()
        if not self.orders.transition_return(order.id, item.id, current, target, now):
            self.db.rollback()
            raise ConflictError("Return status was changed by someone else, reload and retry")
        self.db.commit()
        self.db.refresh(item)
        logger.info("Return %s moved %s -> %s by %s", item.return_id, current.value, target.value, _actor(actor))

        data = {
            "orderId": order.id,
            "itemId": item.id,
            "returnId": item.return_id,
            "status": target.value,
            "previousStatus": current.value,
            "admin": _actor(actor),
        }
        self._broadcast_user(order.user_id, "return-status-changed", data)
        self._broadcast_admins("return-status-changed", data)
        return item

    # -------------------------------------------------------------- admin status

    def update_order_status(self, order_id: str, status, actor=None) -> Order:
        target = _parse_status(status, OrderStatus, "order status")
        order = self.get_order(order_id)
        current = OrderStatus(order.status)
        if not can_transition(current, target):
            raise InvalidTransitionError(current.value, target.value)

        now = self.clock()
        if target is current:
            if target is OrderStatus.DELIVERED and order.delivered_at is None:
                order.delivered_at = now
                self.db.commit()
                self.db.refresh(order)
            return order

        if not self.orders.transition_status(order.id, current, target, now):
            self.db.rollback()
            raise ConflictError("Order status was changed by someone else, reload and retry")
        self.db.commit()
        self.db.refresh(order)
        logger.info("Order %s moved %s -> %s by %s", order.id, current.value, target.value, _actor(actor))

        data = {
            "orderId": order.id,
            "status": target.value,
            "previousStatus": current.value,
            "deliveredAt": order.delivered_at,
            "admin": _actor(actor),
        }
        self._broadcast_user(order.user_id, "order-status-changed", data)
        self._broadcast_admins("order-status-changed", dict(data, userId=order.user_id))
        return order


def _actor(actor) -> str:
    if actor is None:
        return "System"
    return getattr(actor, "email", None) or getattr(actor, "name", None) or "System"
