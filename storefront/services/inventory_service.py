"""
Inventory: restocking and checkout reservations
"""

import sqlite3
from typing import Callable, List, Optional

from storefront.core.exceptions import InventoryError, NotFoundError, ValidationError
from storefront.core.logger import logger
from storefront.core.utils import utcnow
from storefront.database.models import InventoryRecord, from_row


class InventoryService:
    """Stock levels per product and supplier

    reserve/release/fulfil accept an open connection so checkout and status
    changes can adjust stock inside their own transaction; without one they
    open a transaction of their own.
    """

    def __init__(self, db):
        self.db = db

    def _in_transaction(self, conn: Optional[sqlite3.Connection],
                        operation: Callable[[sqlite3.Connection], None]):
        if conn is not None:
            return operation(conn)
        with self.db.transaction() as own_conn:
            return operation(own_conn)

    def restock(self, product_id: int, quantity: int, supplier_id: Optional[int] = None,
                location: Optional[str] = None) -> InventoryRecord:
        """Add units to the product's stock row for the supplier/location"""
        if quantity <= 0:
            raise ValidationError("Restock quantity must be positive")

        with self.db.transaction() as conn:
            row = self.db.execute(conn, '''
                SELECT inventory_id FROM inventory
                WHERE product_id = ? AND supplier_id IS ? AND location IS ?
                ORDER BY inventory_id LIMIT 1
            ''', (product_id, supplier_id, location)).fetchone()
            if row:
                inventory_id = row['inventory_id']
                self.db.execute(conn, '''
                    UPDATE inventory SET quantity = quantity + ?, last_restocked = ?
                    WHERE inventory_id = ?
                ''', (quantity, utcnow(), inventory_id))
            else:
                inventory_id = self.db.execute(conn, '''
                    INSERT INTO inventory (product_id, supplier_id, quantity, location, last_restocked)
                    VALUES (?, ?, ?, ?, ?)
                ''', (product_id, supplier_id, quantity, location, utcnow())).lastrowid
        logger.info(f"Restocked product {product_id} with {quantity} units")
        return self.get_record(inventory_id)

    def get_record(self, inventory_id: int) -> InventoryRecord:
        row = self.db.fetch_one('SELECT * FROM inventory WHERE inventory_id = ?', (inventory_id,))
        if not row:
            raise NotFoundError(f"Inventory record {inventory_id} not found")
        return from_row(InventoryRecord, row)

    def records(self, product_id: int) -> List[InventoryRecord]:
        rows = self.db.execute_query(
            'SELECT * FROM inventory WHERE product_id = ? ORDER BY inventory_id', (product_id,))
        return [from_row(InventoryRecord, row) for row in rows]

    def available(self, product_id: int) -> int:
        """Units on hand that are not reserved"""
        row = self.db.fetch_one('''
            SELECT COALESCE(SUM(quantity - reserved), 0) AS available
            FROM inventory WHERE product_id = ?
        ''', (product_id,))
        return row['available']

    def reserve(self, product_id: int, quantity: int,
                conn: Optional[sqlite3.Connection] = None):
        """Reserve units across stock rows; all or nothing"""
        self._in_transaction(conn, lambda c: self._reserve(c, product_id, quantity))

    def release(self, product_id: int, quantity: int,
                conn: Optional[sqlite3.Connection] = None):
        """Return reserved units to available stock"""
        self._in_transaction(conn, lambda c: self._release(c, product_id, quantity, consume=False))

    def fulfil(self, product_id: int, quantity: int,
               conn: Optional[sqlite3.Connection] = None):
        """Remove reserved units from stock once they leave the warehouse"""
        self._in_transaction(conn, lambda c: self._release(c, product_id, quantity, consume=True))

    def _reserve(self, conn: sqlite3.Connection, product_id: int, quantity: int):
        if quantity <= 0:
            raise ValidationError("Reservation quantity must be positive")

        rows = self.db.execute(conn, '''
            SELECT inventory_id, quantity - reserved AS available FROM inventory
            WHERE product_id = ? AND quantity > reserved
            ORDER BY inventory_id
        ''', (product_id,)).fetchall()
        if sum(row['available'] for row in rows) < quantity:
            raise InventoryError(f"Insufficient stock for product {product_id}")

        remaining = quantity
        for row in rows:
            if remaining == 0:
                break
            take = min(row['available'], remaining)
            # Compare-and-swap: only succeeds if the row still has the units
            updated = self.db.execute(conn, '''
                UPDATE inventory SET reserved = reserved + ?
                WHERE inventory_id = ? AND quantity - reserved >= ?
            ''', (take, row['inventory_id'], take)).rowcount
            if not updated:
                raise InventoryError(
                    f"Stock for product {product_id} changed during reservation")
            remaining -= take

    def _release(self, conn: sqlite3.Connection, product_id: int, quantity: int, consume: bool):
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")

        rows = self.db.execute(conn, '''
            SELECT inventory_id, reserved FROM inventory
            WHERE product_id = ? AND reserved > 0
            ORDER BY inventory_id DESC
        ''', (product_id,)).fetchall()
        if sum(row['reserved'] for row in rows) < quantity:
            raise InventoryError(f"Product {product_id} has fewer than {quantity} reserved units")

        if consume:
            statement = '''
                UPDATE inventory SET quantity = quantity - ?, reserved = reserved - ?
                WHERE inventory_id = ? AND reserved >= ?
            '''
        else:
            statement = '''
                UPDATE inventory SET reserved = reserved - ?
                WHERE inventory_id = ? AND reserved >= ?
            '''

        remaining = quantity
        for row in rows:
            if remaining == 0:
                break
            take = min(row['reserved'], remaining)
            params = (take, take, row['inventory_id'], take) if consume else (take, row['inventory_id'], take)
            if not self.db.execute(conn, statement, params).rowcount:
                raise InventoryError(f"Reserved stock for product {product_id} changed concurrently")
            remaining -= take
