"""
Order processing: checkout, order numbers, status transitions
"""

import random
import sqlite3
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from storefront.core.config import config
from storefront.core.exceptions import (
    NotFoundError, OrderStateError, UniqueViolation, ValidationError
)
from storefront.core.logger import logger
from storefront.core.utils import format_price, format_timestamp, to_money, utcnow
from storefront.database.models import (
    ORDER_STATUSES, ORDER_TRANSITIONS, ZERO, Order, OrderItem, from_row
)
from .coupon_service import CouponService, compute_discount
from .inventory_service import InventoryService

# Statuses during which order lines hold reserved stock
RESERVING_STATUSES = ('pending', 'paid')


def generate_order_number(prefix: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Timestamp plus a three-digit random suffix, e.g. ORD-20240501120000-042

    Not unique on its own: two orders in the same second collide with
    roughly 1/1000 odds. Callers rely on the unique constraint and retry.
    """
    if prefix is None:
        prefix = config.orders.number_prefix
    moment = now or utcnow()
    return f"{prefix}{moment:%Y%m%d%H%M%S}-{random.randrange(1000):03d}"


class OrderService:
    """Checkout and the order lifecycle"""

    def __init__(self, db, inventory: Optional[InventoryService] = None,
                 coupons: Optional[CouponService] = None,
                 number_generator: Callable[[], str] = generate_order_number,
                 number_attempts: Optional[int] = None):
        self.db = db
        self.inventory = inventory or InventoryService(db)
        self.coupons = coupons or CouponService(db)
        self.number_generator = number_generator
        self.number_attempts = number_attempts or config.orders.number_attempts

    def checkout(self, items: Iterable[Tuple[int, int]], user_id: Optional[int] = None,
                 billing_address_id: Optional[int] = None,
                 shipping_address_id: Optional[int] = None,
                 coupon_code: Optional[str] = None, shipping_amount=ZERO) -> Order:
        """Reserve stock and place an order atomically

        items is a sequence of (product_id, quantity); user_id None is a
        guest checkout.
        """
        with self.db.transaction() as conn:
            order_id = self._place_order(conn, items, user_id, billing_address_id,
                                         shipping_address_id, coupon_code, shipping_amount)
        return self.get_order(order_id)

    def checkout_cart(self, cart_id: int, billing_address_id: Optional[int] = None,
                      shipping_address_id: Optional[int] = None,
                      coupon_code: Optional[str] = None, shipping_amount=ZERO) -> Order:
        """Convert a cart into an order and empty the cart"""
        with self.db.transaction() as conn:
            cart = self.db.execute(conn, 'SELECT user_id FROM carts WHERE cart_id = ?',
                                   (cart_id,)).fetchone()
            if not cart:
                raise NotFoundError(f"Cart {cart_id} not found")
            items = [(row['product_id'], row['quantity']) for row in self.db.execute(conn, '''
                SELECT product_id, quantity FROM cart_items WHERE cart_id = ? ORDER BY added_at, product_id
            ''', (cart_id,)).fetchall()]
            order_id = self._place_order(conn, items, cart['user_id'], billing_address_id,
                                         shipping_address_id, coupon_code, shipping_amount)
            self.db.execute(conn, 'DELETE FROM cart_items WHERE cart_id = ?', (cart_id,))
        return self.get_order(order_id)

    def _place_order(self, conn: sqlite3.Connection, items: Iterable[Tuple[int, int]],
                     user_id: Optional[int], billing_address_id: Optional[int],
                     shipping_address_id: Optional[int], coupon_code: Optional[str],
                     shipping_amount) -> int:
        quantities = {}
        for product_id, quantity in items:
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise ValidationError(f"Invalid quantity {quantity!r} for product {product_id}")
            quantities[product_id] = quantities.get(product_id, 0) + quantity
        if not quantities:
            raise ValidationError("Cannot place an empty order")

        lines: List[OrderItem] = []
        for product_id, quantity in quantities.items():
            product = self.db.execute(conn, '''
                SELECT sku, name, price, is_active FROM products WHERE product_id = ?
            ''', (product_id,)).fetchone()
            if not product:
                raise NotFoundError(f"Product {product_id} not found")
            if not product['is_active']:
                raise ValidationError(f"Product {product['sku']} is not available")
            self.inventory.reserve(product_id, quantity, conn=conn)
            lines.append(OrderItem(
                product_id=product_id,
                sku=product['sku'],
                product_name=product['name'],
                unit_price=product['price'],
                quantity=quantity,
                total_price=to_money(product['price'] * quantity),
            ))

        subtotal = sum((line.total_price for line in lines), ZERO)
        discount = ZERO
        if coupon_code:
            coupon = self.coupons.validate(coupon_code, subtotal, conn=conn)
            coupon_code = coupon.coupon_code
            discount = compute_discount(coupon, subtotal)
        shipping = to_money(shipping_amount)
        if shipping < ZERO:
            raise ValidationError("Shipping amount cannot be negative")
        total = to_money(subtotal - discount + shipping)

        order_id, order_number = self._insert_order(conn, {
            'user_id': user_id,
            'total_amount': total,
            'shipping_amount': shipping,
            'discount_amount': discount,
            'coupon_code': coupon_code or None,
            'billing_address_id': billing_address_id,
            'shipping_address_id': shipping_address_id,
        })
        for line in lines:
            self.db.execute(conn, '''
                INSERT INTO order_items (order_id, product_id, sku, product_name,
                                         unit_price, quantity, total_price)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (order_id, line.product_id, line.sku, line.product_name,
                  line.unit_price, line.quantity, line.total_price))

        logger.info(f"Order {order_number} placed for "
                    f"{'user ' + str(user_id) if user_id else 'guest'}: "
                    f"{format_price(total, config.orders.currency)}")
        return order_id

    def _insert_order(self, conn: sqlite3.Connection, values: dict) -> Tuple[int, str]:
        columns = ['order_number'] + list(values)
        query = (f"INSERT INTO orders ({', '.join(columns)}) "
                 f"VALUES ({', '.join('?' for _ in columns)})")
        last_error = None
        for attempt in range(1, self.number_attempts + 1):
            order_number = self.number_generator()
            try:
                cursor = self.db.execute(conn, query, [order_number] + list(values.values()))
                return cursor.lastrowid, order_number
            except UniqueViolation as e:
                if 'order_number' not in e.constraint:
                    raise
                last_error = e
                logger.warning(f"Order number {order_number} already taken "
                               f"(attempt {attempt}/{self.number_attempts})")
        raise UniqueViolation(
            f"No free order number after {self.number_attempts} attempts",
            last_error.constraint if last_error else 'orders.order_number')

    def get_order(self, order_id: int) -> Order:
        row = self.db.fetch_one('SELECT * FROM orders WHERE order_id = ?', (order_id,))
        if not row:
            raise NotFoundError(f"Order {order_id} not found")
        return self._with_items(from_row(Order, row))

    def get_order_by_number(self, order_number: str) -> Order:
        row = self.db.fetch_one('SELECT * FROM orders WHERE order_number = ?', (order_number,))
        if not row:
            raise NotFoundError(f"Order {order_number} not found")
        return self._with_items(from_row(Order, row))

    def _with_items(self, order: Order) -> Order:
        rows = self.db.execute_query(
            'SELECT * FROM order_items WHERE order_id = ? ORDER BY product_id', (order.order_id,))
        order.items = [from_row(OrderItem, row) for row in rows]
        return order

    def list_orders(self, user_id: Optional[int] = None, status: Optional[str] = None) -> List[Order]:
        """Orders, newest first"""
        conditions, params = [], []
        if user_id is not None:
            conditions.append('user_id = ?')
            params.append(user_id)
        if status is not None:
            conditions.append('status = ?')
            params.append(status)
        query = 'SELECT * FROM orders'
        if conditions:
            query += ' WHERE ' + ' AND '.join(conditions)
        query += ' ORDER BY created_at DESC, order_id DESC'
        return [from_row(Order, row) for row in self.db.execute_query(query, params)]

    def change_status(self, order_id: int, new_status: str) -> Order:
        """Move an order along its lifecycle"""
        with self.db.transaction() as conn:
            self.transition(conn, order_id, new_status)
        return self.get_order(order_id)

    def cancel(self, order_id: int) -> Order:
        return self.change_status(order_id, 'cancelled')

    def transition(self, conn: sqlite3.Connection, order_id: int, new_status: str) -> str:
        """Apply a status change inside an open transaction; returns the old status"""
        if new_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {new_status}")

        row = self.db.execute(conn, 'SELECT status FROM orders WHERE order_id = ?',
                              (order_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Order {order_id} not found")
        current = row['status']
        if new_status not in ORDER_TRANSITIONS[current]:
            raise OrderStateError(f"Order {order_id} cannot go from {current} to {new_status}")

        updated = self.db.execute(conn, '''
            UPDATE orders SET status = ? WHERE order_id = ? AND status = ?
        ''', (new_status, order_id, current)).rowcount
        if not updated:
            raise OrderStateError(f"Order {order_id} changed status concurrently")

        items = self.db.execute(conn, '''
            SELECT product_id, quantity FROM order_items WHERE order_id = ?
        ''', (order_id,)).fetchall()
        if new_status == 'shipped':
            for item in items:
                self.inventory.fulfil(item['product_id'], item['quantity'], conn=conn)
        elif new_status in ('cancelled', 'refunded') and current in RESERVING_STATUSES:
            for item in items:
                self.inventory.release(item['product_id'], item['quantity'], conn=conn)

        logger.info(f"Order {order_id}: {current} -> {new_status}")
        return current

    def expire_stale_orders(self, max_age_minutes: Optional[int] = None,
                            now: Optional[datetime] = None) -> List[str]:
        """Cancel pending orders older than the reservation TTL and free their stock"""
        if max_age_minutes is None:
            max_age_minutes = config.orders.reservation_ttl_minutes
        cutoff = format_timestamp((now or utcnow()) - timedelta(minutes=max_age_minutes))

        expired = []
        with self.db.transaction() as conn:
            rows = self.db.execute(conn, '''
                SELECT order_id, order_number FROM orders
                WHERE status = 'pending' AND created_at < ?
                ORDER BY order_id
            ''', (cutoff,)).fetchall()
            for row in rows:
                self.transition(conn, row['order_id'], 'cancelled')
                expired.append(row['order_number'])
        if expired:
            logger.info(f"Expired {len(expired)} stale pending orders")
        return expired
