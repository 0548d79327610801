from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from storefront.config import get_settings
from storefront.models.user import get_db
from storefront.realtime.broadcaster import RoomBroadcaster, get_broadcaster
from storefront.schemas.order import (
    OrderCreate,
    OrderOut,
    OrderStatusUpdate,
    ReturnRequestIn,
    ReturnRequestOut,
    RevenueOut,
)
from storefront.services.order_lifecycle import OrderLifecycleService, PaymentResult, order_to_out
from storefront.services.reports import AdminReports
from storefront.utils.security import Caller, get_current_caller, require_admin


router = APIRouter()
admin_router = APIRouter()


def get_order_service(
    db: Session = Depends(get_db),
    broadcaster: RoomBroadcaster = Depends(get_broadcaster),
) -> OrderLifecycleService:
    return OrderLifecycleService(db, broadcaster=broadcaster)


def _out(order, caller: Optional[Caller] = None, include_customer: bool = False) -> OrderOut:
    return order_to_out(
        order,
        fallback_name=caller.name if caller else "",
        default_country=get_settings().DEFAULT_COUNTRY,
        include_customer=include_customer,
    )


# Create Order
@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key", max_length=100),
    service: OrderLifecycleService = Depends(get_order_service),
    caller: Caller = Depends(get_current_caller),
):
    payment = None
    if payload.paymentResult is not None:
        payment = PaymentResult(
            transaction_id=payload.paymentResult.transactionId or payload.paymentResult.id,
            status=payload.paymentResult.status,
            email=payload.paymentResult.email,
        )
    address = payload.shippingAddress
    order = service.create_order(
        caller,
        payment_method=payload.paymentMethod.value,
        shipping_address={
            "full_name": address.fullName,
            "phone": address.phone,
            "street": address.street,
            "city": address.city,
            "state": address.state,
            "postal_code": address.postalCode,
            "country": address.country,
        },
        payment_result=payment,
        order_items=[i.model_dump() for i in payload.orderItems] if payload.orderItems else None,
        total_price=payload.totalPrice,
        idempotency_key=idempotency_key,
    )
    return _out(order, caller)


# Get User Orders
@router.get("/my", response_model=List[OrderOut])
def get_my_orders(
    service: OrderLifecycleService = Depends(get_order_service),
    caller: Caller = Depends(get_current_caller),
):
    return service.get_my_orders(caller)


# Get Order by ID
@router.get("/{order_id}", response_model=OrderOut)
def get_order_by_id(
    order_id: str,
    service: OrderLifecycleService = Depends(get_order_service),
    caller: Caller = Depends(get_current_caller),
):
    return _out(service.get_order_by_id(caller, order_id), caller)


# Request a return for one line item of a delivered order
@router.post("/{order_id}/return", response_model=ReturnRequestOut)
def request_return(
    order_id: str,
    payload: ReturnRequestIn,
    service: OrderLifecycleService = Depends(get_order_service),
    caller: Caller = Depends(get_current_caller),
):
    return_id = service.request_return(caller, order_id, payload.itemId, payload.reason, payload.comments)
    return ReturnRequestOut(
        message="Return request submitted successfully",
        returnId=return_id,
        orderId=order_id,
    )


# Admin: Update Order Status (also mounted under /admin/orders)
@router.put("/{order_id}/status", response_model=OrderOut)
@admin_router.put("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    service: OrderLifecycleService = Depends(get_order_service),
    admin: Caller = Depends(require_admin),
):
    order = service.update_order_status(order_id, payload.status.value, actor=admin)
    return _out(order, include_customer=True)


# Admin: list all orders
@admin_router.get("/", response_model=List[OrderOut])
def get_admin_orders(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    service: OrderLifecycleService = Depends(get_order_service),
    admin: Caller = Depends(require_admin),
):
    return [_out(o, include_customer=True) for o in service.list_all_orders(page=page, size=size)]


# Admin: paid revenue
@admin_router.get("/revenue", response_model=RevenueOut)
def get_revenue(db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    return AdminReports(db).revenue()


# Admin: single order
@admin_router.get("/{order_id}", response_model=OrderOut)
def get_admin_order(
    order_id: str,
    service: OrderLifecycleService = Depends(get_order_service),
    admin: Caller = Depends(require_admin),
):
    return _out(service.get_order(order_id), include_customer=True)
