"""
Payments: initiation, provider callbacks, refunds
"""

from typing import Any, Dict, List, Optional

from storefront.core.config import config
from storefront.core.exceptions import NotFoundError, PaymentError, ValidationError
from storefront.core.logger import logger
from storefront.core.utils import format_price, to_money, utcnow
from storefront.database.models import PAYMENT_METHODS, Payment, from_row
from .order_service import OrderService


class BasePaymentProvider:
    """Interprets the callback payload of a payment provider"""

    def verify_payment(self, payment_data: Dict[str, Any]) -> bool:
        raise NotImplementedError


class CardProvider(BasePaymentProvider):
    def verify_payment(self, payment_data: Dict[str, Any]) -> bool:
        return payment_data.get('status') == 'succeeded'


class MobileMoneyProvider(BasePaymentProvider):
    def verify_payment(self, payment_data: Dict[str, Any]) -> bool:
        return str(payment_data.get('ResultCode')) == '0'


class PayPalProvider(BasePaymentProvider):
    def verify_payment(self, payment_data: Dict[str, Any]) -> bool:
        return payment_data.get('status') == 'COMPLETED'


class BankTransferProvider(BasePaymentProvider):
    def verify_payment(self, payment_data: Dict[str, Any]) -> bool:
        return payment_data.get('status') == 'settled'


class CashOnDeliveryProvider(BasePaymentProvider):
    def verify_payment(self, payment_data: Dict[str, Any]) -> bool:
        return bool(payment_data.get('collected'))


class PaymentService:
    """Payment records and their effect on orders"""

    def __init__(self, db, orders: Optional[OrderService] = None):
        self.db = db
        self.orders = orders or OrderService(db)
        self.providers = {
            'card': CardProvider(),
            'mobile_money': MobileMoneyProvider(),
            'paypal': PayPalProvider(),
            'bank_transfer': BankTransferProvider(),
            'cash_on_delivery': CashOnDeliveryProvider(),
        }

    def initiate(self, order_id: int, payment_method: str, amount=None,
                 currency: Optional[str] = None,
                 provider_transaction_id: Optional[str] = None) -> Payment:
        """Record a payment attempt for a pending order"""
        if payment_method not in PAYMENT_METHODS:
            raise PaymentError(f"Unsupported payment method: {payment_method}")

        order = self.orders.get_order(order_id)
        if order.status != 'pending':
            raise PaymentError(f"Order {order.order_number} is {order.status}, not pending")
        amount = order.total_amount if amount is None else to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive")

        payment_id = self.db.execute_query('''
            INSERT INTO payments (order_id, payment_method, provider_transaction_id, amount, currency)
            VALUES (?, ?, ?, ?, ?)
        ''', (order_id, payment_method, provider_transaction_id, amount,
              currency or config.orders.currency))
        logger.info(f"Payment {payment_id} initiated for order {order.order_number}: "
                    f"{format_price(amount, currency or config.orders.currency)} via {payment_method}")
        return self.get_payment(payment_id)

    def get_payment(self, payment_id: int) -> Payment:
        row = self.db.fetch_one('SELECT * FROM payments WHERE payment_id = ?', (payment_id,))
        if not row:
            raise NotFoundError(f"Payment {payment_id} not found")
        return from_row(Payment, row)

    def get_by_transaction(self, provider_transaction_id: str) -> Payment:
        row = self.db.fetch_one('SELECT * FROM payments WHERE provider_transaction_id = ?',
                                (provider_transaction_id,))
        if not row:
            raise NotFoundError(f"Payment with transaction {provider_transaction_id} not found")
        return from_row(Payment, row)

    def list_payments(self, order_id: int) -> List[Payment]:
        rows = self.db.execute_query(
            'SELECT * FROM payments WHERE order_id = ? ORDER BY payment_id', (order_id,))
        return [from_row(Payment, row) for row in rows]

    def complete(self, payment_id: int, provider_transaction_id: Optional[str] = None) -> Payment:
        """Mark a payment completed and the order paid"""
        with self.db.transaction() as conn:
            payment = self._locked_payment(conn, payment_id, expected='initiated')
            order_status = self.db.execute(conn, 'SELECT status FROM orders WHERE order_id = ?',
                                           (payment['order_id'],)).fetchone()['status']
            if order_status not in ('pending', 'paid'):
                raise PaymentError(f"Order {payment['order_id']} is {order_status}; payment not accepted")
            self.db.execute(conn, '''
                UPDATE payments
                SET status = 'completed', paid_at = ?,
                    provider_transaction_id = COALESCE(?, provider_transaction_id)
                WHERE payment_id = ?
            ''', (utcnow(), provider_transaction_id, payment_id))
            if order_status == 'pending':
                self.orders.transition(conn, payment['order_id'], 'paid')
        logger.info(f"Payment {payment_id} completed")
        return self.get_payment(payment_id)

    def fail(self, payment_id: int) -> Payment:
        with self.db.transaction() as conn:
            self._locked_payment(conn, payment_id, expected='initiated')
            self.db.execute(conn, "UPDATE payments SET status = 'failed' WHERE payment_id = ?",
                            (payment_id,))
        logger.warning(f"Payment {payment_id} failed")
        return self.get_payment(payment_id)

    def refund(self, payment_id: int) -> Payment:
        """Refund a completed payment and the order it paid for"""
        with self.db.transaction() as conn:
            payment = self._locked_payment(conn, payment_id, expected='completed')
            self.db.execute(conn, "UPDATE payments SET status = 'refunded' WHERE payment_id = ?",
                            (payment_id,))
            self.orders.transition(conn, payment['order_id'], 'refunded')
        logger.info(f"Payment {payment_id} refunded")
        return self.get_payment(payment_id)

    def handle_callback(self, provider_transaction_id: str, payload: Dict[str, Any]) -> Payment:
        """Apply a provider notification to the matching payment"""
        payment = self.get_by_transaction(provider_transaction_id)
        provider = self.providers[payment.payment_method]
        if provider.verify_payment(payload):
            return self.complete(payment.payment_id)
        return self.fail(payment.payment_id)

    def _locked_payment(self, conn, payment_id: int, expected: str):
        row = self.db.execute(conn, 'SELECT * FROM payments WHERE payment_id = ?',
                              (payment_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Payment {payment_id} not found")
        if row['status'] != expected:
            raise PaymentError(f"Payment {payment_id} is {row['status']}, expected {expected}")
        return row
