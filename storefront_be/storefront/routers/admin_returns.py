from fastapi import APIRouter, Depends
from typing import List

from storefront.routers.orders import get_order_service
from storefront.schemas.order import ReturnRequestSummary, ReturnStatusUpdate
from storefront.services.order_lifecycle import OrderLifecycleService
from storefront.utils.security import Caller, require_admin


router = APIRouter()


# Get Return Requests (Admin)
@router.get("/", response_model=List[ReturnRequestSummary])
def get_return_requests(
    service: OrderLifecycleService = Depends(get_order_service),
    admin: Caller = Depends(require_admin),
):
    return service.list_returns()


# Update Return Status (Admin)
@router.put("/{order_id}/items/{item_id}/status")
def update_return_status(
    order_id: str,
    item_id: int,
    payload: ReturnStatusUpdate,
    service: OrderLifecycleService = Depends(get_order_service),
    admin: Caller = Depends(require_admin),
):
    item = service.update_return_status(order_id, item_id, payload.status.value, actor=admin)
    return {
        "success": True,
        "message": "Return status updated",
        "orderId": order_id,
        "itemId": item.id,
        "returnId": item.return_id,
        "status": item.return_status,
    }
