from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.models.cart import Cart
from storefront.models.user import get_db
from storefront.schemas.cart import CartItemIn, CartOut, CartItemOut
from storefront.services.collaborators import CartCollaborator, CatalogCollaborator
from storefront.services.order_lifecycle import to_money
from storefront.utils.security import Caller, get_current_caller


router = APIRouter()


def _serialize_cart(cart: Cart) -> CartOut:
    items = [
        CartItemOut(
            productId=i.product_id,
            name=i.product.name if i.product else "Product",
            price=float(i.product.price) if i.product else 0.0,
            quantity=i.quantity,
            image=i.product.cover_image if i.product else None,
        )
        for i in cart.items
    ]
    subtotal = sum((to_money(i.price) * i.quantity for i in items), to_money(0))
    return CartOut(items=items, subtotal=float(subtotal))


# Get Cart
@router.get("/", response_model=CartOut)
def get_cart(db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    cart = CartCollaborator(db).get_or_create(caller.user_id)
    db.commit()  # ensure cart persisted if created
    db.refresh(cart)
    return _serialize_cart(cart)


# Add/Update Cart Item
@router.post("/", response_model=CartOut)
def add_cart_item(
    payload: CartItemIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    if not CatalogCollaborator(db).get_product(payload.productId):
        raise HTTPException(status_code=404, detail="Product not found")
    cart = CartCollaborator(db).add_item(caller.user_id, payload.productId, payload.quantity)
    db.commit()
    db.refresh(cart)
    return _serialize_cart(cart)


# Clear Cart
@router.delete("/clear", response_model=CartOut)
def clear_cart(db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    carts = CartCollaborator(db)
    carts.clear(caller.user_id)
    cart = carts.get_or_create(caller.user_id)
    db.commit()
    db.refresh(cart)
    return _serialize_cart(cart)


# Remove Cart Item
@router.delete("/", response_model=CartOut)
def remove_cart_item(
    productId: int = Query(...),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    carts = CartCollaborator(db)
    if not carts.remove_item(caller.user_id, productId):
        raise HTTPException(status_code=404, detail="Cart item not found")
    cart = carts.get_or_create(caller.user_id)
    db.commit()
    db.refresh(cart)
    return _serialize_cart(cart)
