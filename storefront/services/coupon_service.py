"""
Coupons: storage, validation and discount computation
"""

import sqlite3
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from storefront.core.exceptions import CouponError, NotFoundError, ValidationError
from storefront.core.logger import logger
from storefront.core.utils import CENT, to_money, to_naive_utc, utcnow
from storefront.database.models import DISCOUNT_TYPES, ZERO, Coupon, from_row

HUNDRED = Decimal('100')


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount for a subtotal; never more than the subtotal itself"""
    subtotal = to_money(subtotal)
    if coupon.discount_type == 'percent':
        discount = (subtotal * coupon.discount_value / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        discount = to_money(coupon.discount_value)
    return min(discount, subtotal)


class CouponService:
    """Discount codes and their usage rules"""

    def __init__(self, db):
        self.db = db

    def create_coupon(self, code: str, discount_type: str, discount_value,
                      description: Optional[str] = None, min_order_amount=ZERO,
                      usage_limit: Optional[int] = None,
                      expires_at: Optional[datetime] = None) -> Coupon:
        code = (code or '').strip().upper()
        if not code:
            raise ValidationError("Coupon code is required")
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationError(f"Unknown discount type: {discount_type}")
        value = to_money(discount_value)
        if value <= ZERO:
            raise ValidationError("Discount value must be positive")
        if discount_type == 'percent' and value > HUNDRED:
            raise ValidationError("Percent discount cannot exceed 100")

        self.db.execute_query('''
            INSERT INTO coupons (coupon_code, description, discount_type, discount_value,
                                 min_order_amount, usage_limit, expires_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (code, description, discount_type, value, to_money(min_order_amount),
              usage_limit, to_naive_utc(expires_at)))
        logger.info(f"Coupon {code} created")
        return self.get_coupon(code)

    def get_coupon(self, code: str) -> Coupon:
        row = self.db.fetch_one('SELECT * FROM coupons WHERE coupon_code = ?',
                                ((code or '').strip().upper(),))
        if not row:
            raise NotFoundError(f"Coupon {code!r} not found")
        return from_row(Coupon, row)

    def deactivate(self, code: str):
        if not self.db.execute_update('UPDATE coupons SET is_active = 0 WHERE coupon_code = ?',
                                      ((code or '').strip().upper(),)):
            raise NotFoundError(f"Coupon {code!r} not found")

    def delete_coupon(self, code: str):
        """Delete a coupon; orders that used it keep their totals"""
        if not self.db.execute_update('DELETE FROM coupons WHERE coupon_code = ?',
                                      ((code or '').strip().upper(),)):
            raise NotFoundError(f"Coupon {code!r} not found")

    def times_used(self, code: str, conn: Optional[sqlite3.Connection] = None) -> int:
        """Number of non-cancelled orders that applied the coupon"""
        query = '''
            SELECT COUNT(*) FROM orders WHERE coupon_code = ? AND status != 'cancelled'
        '''
        if conn is not None:
            return self.db.execute(conn, query, (code,)).fetchone()[0]
        return self.db.execute_query(query, (code,))[0][0]

    def validate(self, code: str, subtotal: Decimal,
                 conn: Optional[sqlite3.Connection] = None,
                 now: Optional[datetime] = None) -> Coupon:
        """Check that the coupon can be applied to an order of this subtotal"""
        code = (code or '').strip().upper()
        query = 'SELECT * FROM coupons WHERE coupon_code = ?'
        if conn is not None:
            row = self.db.execute(conn, query, (code,)).fetchone()
        else:
            row = self.db.fetch_one(query, (code,))
        if not row:
            raise CouponError(f"Unknown coupon: {code}")

        coupon = from_row(Coupon, row)
        if not coupon.is_active:
            raise CouponError(f"Coupon {code} is not active")
        expires_at = to_naive_utc(coupon.expires_at)
        if expires_at is not None and expires_at <= to_naive_utc(now or utcnow()):
            raise CouponError(f"Coupon {code} has expired")
        if to_money(subtotal) < to_money(coupon.min_order_amount or ZERO):
            raise CouponError(f"Coupon {code} requires an order of at least {coupon.min_order_amount}")
        if coupon.usage_limit is not None and self.times_used(code, conn) >= coupon.usage_limit:
            raise CouponError(f"Coupon {code} has reached its usage limit")
        return coupon
