from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    product: Product
    quantity: int


class CartCollaborator:
    """Read and clear a user's cart. Never commits; the caller owns the transaction."""

    def __init__(self, db: Session):
        self.db = db

    def get_or_create(self, user_id: int) -> Cart:
        cart = self.db.query(Cart).filter(Cart.user_id == user_id).first()
        if not cart:
            cart = Cart(user_id=user_id)
            self.db.add(cart)
            self.db.flush()
        return cart

    def lines(self, user_id: int) -> List[CartLine]:
        cart = self.db.query(Cart).filter(Cart.user_id == user_id).first()
        if not cart:
            return []
        out = []
        for item in cart.items:
            if item.product is None:
                logger.warning("Cart %s references missing product %s, skipping", cart.id, item.product_id)
                continue
            out.append(CartLine(product=item.product, quantity=item.quantity))
        return out

    def add_item(self, user_id: int, product_id: int, quantity: int) -> Cart:
        cart = self.get_or_create(user_id)
        existing = (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart.id, CartItem.product_id == product_id)
            .first()
        )
        if existing:
            existing.quantity = existing.quantity + quantity
        else:
            cart.items.append(CartItem(product_id=product_id, quantity=quantity))
        self.db.flush()
        return cart

    def remove_item(self, user_id: int, product_id: int) -> bool:
        cart = self.get_or_create(user_id)
        removed = (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart.id, CartItem.product_id == product_id)
            .delete(synchronize_session="fetch")
        )
        return bool(removed)

    def clear(self, user_id: int) -> int:
        """Empty the cart. Safe to repeat: clearing an empty cart is a no-op."""
        cart = self.db.query(Cart).filter(Cart.user_id == user_id).first()
        if not cart:
            return 0
        removed = len(cart.items)
        cart.items.clear()
        self.db.flush()
        return removed


class CatalogCollaborator:
    """Read-only lookups into the product and user catalog."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_products(self, product_ids: Iterable[Optional[int]]) -> Dict[int, Product]:
        ids = {pid for pid in product_ids if pid is not None}
        if not ids:
            return {}
        return {p.id: p for p in self.db.query(Product).filter(Product.id.in_(ids)).all()}

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()
