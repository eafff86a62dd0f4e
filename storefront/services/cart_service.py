"""
Carts and wishlists
"""

from decimal import Decimal
from typing import List, Optional

from storefront.core.exceptions import InventoryError, NotFoundError, ValidationError
from storefront.core.logger import logger
from storefront.database.models import ZERO, Cart, CartItem, Wishlist, WishlistItem, from_row
from .inventory_service import InventoryService


class CartService:
    """Per-user or per-session product selections"""

    def __init__(self, db, inventory: Optional[InventoryService] = None):
        self.db = db
        self.inventory = inventory or InventoryService(db)

    # Carts
    def get_or_create_cart(self, user_id: Optional[int] = None,
                           session_id: Optional[str] = None) -> Cart:
        """Latest cart of a user, or of an anonymous session"""
        if user_id is None and not session_id:
            raise ValidationError("A cart needs a user or a session")
        if user_id is not None:
            row = self.db.fetch_one(
                'SELECT * FROM carts WHERE user_id = ? ORDER BY cart_id DESC LIMIT 1', (user_id,))
        else:
            row = self.db.fetch_one('''
                SELECT * FROM carts WHERE session_id = ? AND user_id IS NULL
                ORDER BY cart_id DESC LIMIT 1
            ''', (session_id,))
        if row:
            return from_row(Cart, row)

        cart_id = self.db.execute_query(
            'INSERT INTO carts (user_id, session_id) VALUES (?, ?)', (user_id, session_id))
        return self.get_cart(cart_id)

    def get_cart(self, cart_id: int) -> Cart:
        row = self.db.fetch_one('SELECT * FROM carts WHERE cart_id = ?', (cart_id,))
        if not row:
            raise NotFoundError(f"Cart {cart_id} not found")
        return from_row(Cart, row)

    def add_item(self, cart_id: int, product_id: int, quantity: int = 1) -> CartItem:
        """Add units of a product; repeated adds accumulate"""
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")
        product = self.db.fetch_one('SELECT is_active FROM products WHERE product_id = ?', (product_id,))
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        if not product['is_active']:
            raise ValidationError(f"Product {product_id} is not available")

        current = self._quantity(cart_id, product_id)
        if current + quantity > self.inventory.available(product_id):
            raise InventoryError(f"Not enough stock for product {product_id}")

        self.db.execute_query('''
            INSERT INTO cart_items (cart_id, product_id, quantity) VALUES (?, ?, ?)
            ON CONFLICT (cart_id, product_id) DO UPDATE SET quantity = quantity + excluded.quantity
        ''', (cart_id, product_id, quantity))
        self._touch(cart_id)
        return self._item(cart_id, product_id)

    def set_quantity(self, cart_id: int, product_id: int, quantity: int) -> Optional[CartItem]:
        """Set a line's quantity; zero removes the line"""
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")
        if quantity == 0:
            self.remove_item(cart_id, product_id)
            return None
        if quantity > self.inventory.available(product_id):
            raise InventoryError(f"Not enough stock for product {product_id}")
        if not self.db.execute_update(
                'UPDATE cart_items SET quantity = ? WHERE cart_id = ? AND product_id = ?',
                (quantity, cart_id, product_id)):
            raise NotFoundError(f"Product {product_id} is not in cart {cart_id}")
        self._touch(cart_id)
        return self._item(cart_id, product_id)

    def remove_item(self, cart_id: int, product_id: int) -> bool:
        removed = self.db.execute_update(
            'DELETE FROM cart_items WHERE cart_id = ? AND product_id = ?', (cart_id, product_id))
        if removed:
            self._touch(cart_id)
        return bool(removed)

    def clear(self, cart_id: int):
        self.db.execute_update('DELETE FROM cart_items WHERE cart_id = ?', (cart_id,))
        self._touch(cart_id)

    def items(self, cart_id: int) -> List[CartItem]:
        rows = self.db.execute_query('''
            SELECT ci.cart_id, ci.product_id, ci.quantity, ci.added_at, p.sku, p.name, p.price
            FROM cart_items ci
            JOIN products p ON p.product_id = ci.product_id
            WHERE ci.cart_id = ?
            ORDER BY ci.added_at, ci.product_id
        ''', (cart_id,))
        return [from_row(CartItem, row) for row in rows]

    def total(self, cart_id: int) -> Decimal:
        """Cart value at current catalog prices"""
        return sum((item.line_total for item in self.items(cart_id)), ZERO)

    def merge_session_cart(self, session_id: str, user_id: int) -> Cart:
        """Fold an anonymous session cart into the user's cart after login"""
        user_cart = self.get_or_create_cart(user_id=user_id)
        with self.db.transaction() as conn:
            session_carts = self.db.execute(conn, '''
                SELECT cart_id FROM carts WHERE session_id = ? AND user_id IS NULL
            ''', (session_id,)).fetchall()
            for row in session_carts:
                self.db.execute(conn, '''
                    INSERT INTO cart_items (cart_id, product_id, quantity, added_at)
                    SELECT ?, product_id, quantity, added_at FROM cart_items WHERE cart_id = ?
                    ON CONFLICT (cart_id, product_id) DO UPDATE SET quantity = quantity + excluded.quantity
                ''', (user_cart.cart_id, row['cart_id']))
                self.db.execute(conn, 'DELETE FROM carts WHERE cart_id = ?', (row['cart_id'],))
        if session_carts:
            logger.info(f"Merged session cart into cart {user_cart.cart_id} of user {user_id}")
            self._touch(user_cart.cart_id)
        return user_cart

    def _quantity(self, cart_id: int, product_id: int) -> int:
        row = self.db.fetch_one(
            'SELECT quantity FROM cart_items WHERE cart_id = ? AND product_id = ?', (cart_id, product_id))
        return row['quantity'] if row else 0

    def _item(self, cart_id: int, product_id: int) -> CartItem:
        return next(item for item in self.items(cart_id) if item.product_id == product_id)

    def _touch(self, cart_id: int):
        self.db.execute_update(
            'UPDATE carts SET updated_at = CURRENT_TIMESTAMP WHERE cart_id = ?', (cart_id,))

    # Wishlists
    def create_wishlist(self, user_id: int, name: Optional[str] = None) -> Wishlist:
        if name:
            wishlist_id = self.db.execute_query(
                'INSERT INTO wishlists (user_id, name) VALUES (?, ?)', (user_id, name))
        else:
            wishlist_id = self.db.execute_query(
                'INSERT INTO wishlists (user_id) VALUES (?)', (user_id,))
        return self.get_wishlist(wishlist_id)

    def get_wishlist(self, wishlist_id: int) -> Wishlist:
        row = self.db.fetch_one('SELECT * FROM wishlists WHERE wishlist_id = ?', (wishlist_id,))
        if not row:
            raise NotFoundError(f"Wishlist {wishlist_id} not found")
        return from_row(Wishlist, row)

    def user_wishlists(self, user_id: int) -> List[Wishlist]:
        rows = self.db.execute_query(
            'SELECT * FROM wishlists WHERE user_id = ? ORDER BY wishlist_id', (user_id,))
        return [from_row(Wishlist, row) for row in rows]

    def add_to_wishlist(self, wishlist_id: int, product_id: int) -> bool:
        """Returns False when the product was already on the list"""
        return bool(self.db.execute_update('''
            INSERT OR IGNORE INTO wishlist_items (wishlist_id, product_id) VALUES (?, ?)
        ''', (wishlist_id, product_id)))

    def remove_from_wishlist(self, wishlist_id: int, product_id: int) -> bool:
        return bool(self.db.execute_update(
            'DELETE FROM wishlist_items WHERE wishlist_id = ? AND product_id = ?',
            (wishlist_id, product_id)))

    def wishlist_items(self, wishlist_id: int) -> List[WishlistItem]:
        rows = self.db.execute_query('''
            SELECT * FROM wishlist_items WHERE wishlist_id = ? ORDER BY added_at, product_id
        ''', (wishlist_id,))
        return [from_row(WishlistItem, row) for row in rows]

    def move_to_cart(self, wishlist_id: int, product_id: int, cart_id: int) -> CartItem:
        """Put a wishlist product in the cart and drop it from the list"""
        item = self.add_item(cart_id, product_id, 1)
        self.remove_from_wishlist(wishlist_id, product_id)
        return item
