"""
Database manager: connections, transactions, schema bootstrap
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from werkzeug.security import generate_password_hash

from storefront.core.config import config
from storefront.core.exceptions import (
    StorefrontException, DatabaseError, IntegrityViolation, UniqueViolation,
    ForeignKeyViolation, RestrictedDeleteError, CheckViolation, TransientDatabaseError
)
from storefront.core.logger import logger
from .schema import ALL_STATEMENTS

sqlite3.register_adapter(Decimal, str)
sqlite3.register_adapter(datetime, lambda moment: moment.isoformat(sep=' '))
sqlite3.register_converter('DECIMAL_TEXT', lambda raw: Decimal(raw.decode()))
sqlite3.register_converter('TIMESTAMP', lambda raw: datetime.fromisoformat(raw.decode()))
sqlite3.register_converter('BOOLEAN', lambda raw: raw not in (b'0', b''))

_TRANSIENT_MARKERS = ('database is locked', 'database table is locked', 'database is busy')


class DatabaseManager:
    """SQLite-backed store database"""

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[float] = None,
                 seed_demo_data: Optional[bool] = None):
        self.db_path = db_path or config.database.path
        self.timeout = timeout if timeout is not None else config.database.timeout
        self.seed_demo_data = config.database.seed_demo_data if seed_demo_data is None else seed_demo_data
        self.ensure_database_directory()
        self.init_database()

    def ensure_database_directory(self):
        """Create the directory holding the database file"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: statements autocommit unless a transaction is opened explicitly
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            detect_types=sqlite3.PARSE_DECLTYPES,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Connection context manager"""
        conn = None
        try:
            conn = self._connect()
            yield conn
        except sqlite3.Error as e:
            raise self._translate_error(e) from e
        finally:
            if conn:
                conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically under an immediate write lock"""
        with self.get_connection() as conn:
            self.execute(conn, 'BEGIN IMMEDIATE')
            try:
                yield conn
            except (StorefrontException, sqlite3.Error):
                conn.execute('ROLLBACK')
                raise
            except Exception:
                conn.execute('ROLLBACK')
                logger.error("Transaction rolled back on unexpected error", exc_info=True)
                raise
            else:
                self.execute(conn, 'COMMIT')

    def execute(self, conn: sqlite3.Connection, query: str,
                params: Sequence = ()) -> sqlite3.Cursor:
        """Execute on an open connection, translating engine errors"""
        try:
            return conn.execute(query, params)
        except sqlite3.Error as e:
            raise self._translate_error(e, query) from e

    def execute_query(self, query: str, params: Optional[Sequence] = None):
        """Execute one statement: rows for queries, lastrowid otherwise"""
        with self.get_connection() as conn:
            cursor = self.execute(conn, query, params or ())
            if cursor.description is not None:
                return cursor.fetchall()
            return cursor.lastrowid

    def execute_update(self, query: str, params: Optional[Sequence] = None) -> int:
        """Execute an UPDATE/DELETE and return the affected row count"""
        with self.get_connection() as conn:
            return self.execute(conn, query, params or ()).rowcount

    def fetch_one(self, query: str, params: Optional[Sequence] = None) -> Optional[sqlite3.Row]:
        rows = self.execute_query(query, params)
        return rows[0] if rows else None

    def _translate_error(self, error: sqlite3.Error, query: str = "") -> DatabaseError:
        message = str(error)
        constraint = message.split(':', 1)[1].strip() if ':' in message else ""

        if isinstance(error, sqlite3.IntegrityError):
            if message.startswith('UNIQUE'):
                translated = UniqueViolation(message, constraint)
            elif message.startswith('FOREIGN KEY'):
                if query.lstrip().upper().startswith('DELETE'):
                    translated = RestrictedDeleteError(
                        "Row is still referenced by dependent records", constraint)
                else:
                    translated = ForeignKeyViolation(message, constraint)
            elif message.startswith('CHECK'):
                translated = CheckViolation(message, constraint)
            else:
                translated = IntegrityViolation(message, constraint)
            logger.warning(f"Constraint violation: {message}")
            return translated

        if isinstance(error, sqlite3.OperationalError) and any(
                marker in message for marker in _TRANSIENT_MARKERS):
            logger.warning(f"Transient database failure: {message}")
            return TransientDatabaseError(message)

        logger.error(f"Database error: {message}")
        return DatabaseError(f"Database error: {message}")

    def init_database(self):
        """Create tables, indexes, triggers and views"""
        with self.get_connection() as conn:
            self.execute(conn, 'PRAGMA journal_mode = WAL')
            self.execute(conn, 'BEGIN IMMEDIATE')
            try:
                for statement in ALL_STATEMENTS:
                    self.execute(conn, statement)
                if self.seed_demo_data and self._is_database_empty(conn):
                    self._create_initial_data(conn)
            except StorefrontException:
                conn.execute('ROLLBACK')
                logger.error("Database initialization failed", exc_info=True)
                raise
            self.execute(conn, 'COMMIT')
        logger.info(f"Database initialized at {self.db_path}")

    def schema_objects(self) -> Dict[str, List[str]]:
        """Names of the schema objects grouped by type"""
        rows = self.execute_query(
            "SELECT type, name FROM sqlite_master "
            "WHERE name NOT LIKE 'sqlite_%' ORDER BY type, name"
        )
        objects: Dict[str, List[str]] = {}
        for row in rows:
            objects.setdefault(row['type'], []).append(row['name'])
        return objects

    def _is_database_empty(self, conn: sqlite3.Connection) -> bool:
        return self.execute(conn, 'SELECT COUNT(*) FROM categories').fetchone()[0] == 0

    def _create_initial_data(self, conn: sqlite3.Connection):
        """Demo catalog, coupons and the admin account"""
        security = config.security
        if security.admin_email and security.admin_password:
            self.execute(conn, '''
                INSERT OR IGNORE INTO users (first_name, last_name, email, password_hash, role)
                VALUES (?, ?, ?, ?, 'admin')
            ''', (security.admin_name, '', security.admin_email,
                  generate_password_hash(security.admin_password)))
            logger.info(f"Admin account created: {security.admin_email}")

        categories = [
            ('Electronics', 'electronics', None, 'Phones, laptops and gadgets'),
            ('Clothing', 'clothing', None, "Men's and women's clothing"),
            ('Home & Garden', 'home-garden', None, 'Goods for home and garden'),
            ('Smartphones', 'smartphones', 'electronics', 'Mobile phones'),
            ('Laptops', 'laptops', 'electronics', 'Notebooks and ultrabooks'),
        ]
        for name, slug, parent_slug, description in categories:
            self.execute(conn, '''
                INSERT INTO categories (name, slug, parent_id, description)
                VALUES (?, ?, (SELECT category_id FROM categories WHERE slug = ?), ?)
            ''', (name, slug, parent_slug, description))

        supplier_id = self.execute(conn, '''
            INSERT INTO suppliers (name, contact_email) VALUES (?, ?)
        ''', ('Acme Distribution', 'orders@acme.example')).lastrowid

        products = [
            ('PHN-001', 'Pixel Phone', Decimal('699.00'), Decimal('520.00'), 'smartphones', 25),
            ('PHN-002', 'Galaxy Phone', Decimal('899.99'), Decimal('650.00'), 'smartphones', 30),
            ('LAP-001', 'Ultrabook 14', Decimal('1299.00'), Decimal('980.00'), 'laptops', 15),
            ('TSH-001', 'Cotton T-Shirt', Decimal('19.99'), Decimal('6.50'), 'clothing', 100),
            ('LMP-001', 'Desk Lamp', Decimal('34.50'), Decimal('12.00'), 'home-garden', 40),
        ]
        for sku, name, price, cost_price, category_slug, stock in products:
            product_id = self.execute(conn, '''
                INSERT INTO products (sku, name, price, cost_price) VALUES (?, ?, ?, ?)
            ''', (sku, name, price, cost_price)).lastrowid
            self.execute(conn, '''
                INSERT INTO product_categories (product_id, category_id)
                SELECT ?, category_id FROM categories WHERE slug = ?
            ''', (product_id, category_slug))
            self.execute(conn, '''
                INSERT INTO inventory (product_id, supplier_id, quantity, last_restocked)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ''', (product_id, supplier_id, stock))

        coupons = [
            ('WELCOME10', 'Welcome discount', 'percent', Decimal('10.00'), Decimal('0.00'), None),
            ('SAVE20', 'Save 20% on orders from 100', 'percent', Decimal('20.00'), Decimal('100.00'), 100),
        ]
        for coupon in coupons:
            self.execute(conn, '''
                INSERT INTO coupons (coupon_code, description, discount_type, discount_value,
                                     min_order_amount, usage_limit)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', coupon)
        logger.info("Demo data created")
