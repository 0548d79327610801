from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from storefront.models.order import OrderStatus, PaymentMethod, ReturnStatus


class ShippingAddress(BaseModel):
    fullName: str
    phone: str
    street: str
    city: str
    state: str
    postalCode: str
    country: str = "India"


class PaymentResultIn(BaseModel):
    transactionId: Optional[str] = None
    # some gateways (PayPal) report the capture id as ``id``
    id: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None


class OrderItemIn(BaseModel):
    productId: int
    name: Optional[str] = None
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)
    image: Optional[str] = None


class OrderCreate(BaseModel):
    paymentMethod: PaymentMethod = PaymentMethod.COD
    paymentResult: Optional[PaymentResultIn] = None
    shippingAddress: ShippingAddress
    # Accepted for compatibility with older clients; the server always recomputes both
    orderItems: Optional[List[OrderItemIn]] = None
    totalPrice: Optional[float] = Field(default=None, ge=0)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class ReturnRequestIn(BaseModel):
    itemId: int
    reason: str = Field(min_length=1, max_length=500)
    comments: Optional[str] = Field(default=None, max_length=1000)


class ReturnRequestOut(BaseModel):
    success: bool = True
    message: str
    returnId: str
    orderId: str


class ReturnStatusUpdate(BaseModel):
    status: ReturnStatus


class ProductSnapshotOut(BaseModel):
    id: int
    name: str
    price: float
    images: List[str] = []
    description: str = ""
    category: str = ""
    brand: str = ""


class OrderItemOut(BaseModel):
    id: int
    productId: Optional[int] = None
    name: str
    price: float
    quantity: int
    image: Optional[str] = None
    product: Optional[ProductSnapshotOut] = None
    returnRequested: bool = False
    returnStatus: ReturnStatus = ReturnStatus.NONE
    returnId: Optional[str] = None
    returnReason: Optional[str] = None
    returnRequestedAt: Optional[datetime] = None


class ShippingAddressOut(BaseModel):
    fullName: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    postalCode: str = ""
    country: str = "India"


class PaymentResultOut(BaseModel):
    transactionId: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None


class CustomerOut(BaseModel):
    id: int
    name: str
    email: Optional[str] = None


class OrderOut(BaseModel):
    id: str
    userId: int
    items: List[OrderItemOut]
    shippingAddress: ShippingAddressOut
    paymentMethod: PaymentMethod
    paymentResult: Optional[PaymentResultOut] = None
    totalPrice: float
    isPaid: bool
    paidAt: Optional[datetime] = None
    status: OrderStatus
    deliveredAt: Optional[datetime] = None
    hasReturns: bool = False
    customer: Optional[CustomerOut] = None
    createdAt: datetime
    updatedAt: datetime


class RevenueOut(BaseModel):
    success: bool = True
    totalOrders: int
    totalRevenue: float


class ReturnRequestSummary(BaseModel):
    returnId: Optional[str] = None
    orderId: str
    itemId: int
    userId: int
    customerName: str = ""
    productName: str = ""
    quantity: int
    price: float
    reason: Optional[str] = None
    comments: Optional[str] = None
    status: ReturnStatus
    requestedAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
