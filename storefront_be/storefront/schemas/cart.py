from pydantic import BaseModel, Field
from typing import List, Optional


class CartItemIn(BaseModel):
    productId: int
    quantity: int = Field(gt=0)


class CartItemOut(BaseModel):
    productId: int
    name: str
    price: float
    quantity: int
    image: Optional[str] = None


class CartOut(BaseModel):
    items: List[CartItemOut]
    subtotal: float
