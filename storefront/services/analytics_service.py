"""
Reporting over orders
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from storefront.core.exceptions import NotFoundError
from storefront.core.utils import to_money
from storefront.database.models import ORDER_STATUSES, ZERO, UserOrderTotals

# Cancelled and refunded orders never count as revenue
REVENUE_EXCLUDED = ('cancelled', 'refunded')


def _cents_to_money(cents: int) -> Decimal:
    return to_money(Decimal(cents) / 100)


def _totals_from_row(row) -> UserOrderTotals:
    return UserOrderTotals(
        user_id=row['user_id'],
        email=row['email'],
        orders_count=row['orders_count'],
        total_spent=to_money(row['total_spent']),
    )


class AnalyticsService:
    """Read-only reports; nothing here writes"""

    def __init__(self, db):
        self.db = db

    def user_order_totals(self) -> List[UserOrderTotals]:
        """Every user with order count and amount spent, including users without orders"""
        rows = self.db.execute_query(
            'SELECT user_id, email, orders_count, total_spent FROM v_user_order_totals ORDER BY user_id')
        return [_totals_from_row(row) for row in rows]

    def user_totals(self, user_id: int) -> UserOrderTotals:
        row = self.db.fetch_one('''
            SELECT user_id, email, orders_count, total_spent FROM v_user_order_totals WHERE user_id = ?
        ''', (user_id,))
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        return _totals_from_row(row)

    def top_customers(self, limit: int = 10) -> List[UserOrderTotals]:
        rows = self.db.execute_query('''
            SELECT user_id, email, orders_count, total_spent FROM v_user_order_totals
            WHERE orders_count > 0
            ORDER BY total_spent_cents DESC, user_id
            LIMIT ?
        ''', (limit,))
        return [_totals_from_row(row) for row in rows]

    def order_status_breakdown(self) -> Dict[str, Dict[str, Any]]:
        """Order count and amount per status; every status is present"""
        rows = self.db.execute_query('''
            SELECT status, COUNT(*) AS orders_count,
                   COALESCE(SUM(CAST(ROUND(total_amount * 100) AS INTEGER)), 0) AS amount_cents
            FROM orders
            GROUP BY status
        ''')
        breakdown = {status: {'orders_count': 0, 'amount': ZERO} for status in ORDER_STATUSES}
        for row in rows:
            breakdown[row['status']] = {
                'orders_count': row['orders_count'],
                'amount': _cents_to_money(row['amount_cents']),
            }
        return breakdown

    def dashboard_stats(self, since: Optional[str] = None) -> Dict[str, Any]:
        """Headline numbers; since is an optional 'YYYY-MM-DD' lower bound on order dates"""
        excluded = ', '.join('?' for _ in REVENUE_EXCLUDED)
        params: list = list(REVENUE_EXCLUDED)
        date_filter = ''
        if since:
            date_filter = 'AND DATE(created_at) >= ?'
            params.append(since)

        row = self.db.fetch_one(f'''
            SELECT COUNT(*) AS total_orders,
                   COUNT(DISTINCT user_id) AS buyers,
                   COALESCE(SUM(CAST(ROUND(total_amount * 100) AS INTEGER)), 0) AS revenue_cents
            FROM orders
            WHERE status NOT IN ({excluded}) {date_filter}
        ''', params)
        total_users = self.db.fetch_one('SELECT COUNT(*) AS n FROM users')['n']

        revenue = _cents_to_money(row['revenue_cents'])
        total_orders = row['total_orders']
        return {
            'total_users': total_users,
            'buyers': row['buyers'],
            'total_orders': total_orders,
            'total_revenue': revenue,
            'avg_order_value': to_money(revenue / total_orders) if total_orders else ZERO,
            'conversion_rate': round(row['buyers'] / total_users * 100, 2) if total_users else 0.0,
        }
