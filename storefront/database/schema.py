"""
Table, index, trigger and view definitions for the store

Money columns are declared DECIMAL_TEXT so SQLite keeps them with TEXT
affinity; the manager converts them to and from decimal.Decimal.
"""

from typing import Iterable

from .models import (
    USER_ROLES, ORDER_STATUSES, PAYMENT_METHODS, PAYMENT_STATUSES, DISCOUNT_TYPES
)


def _one_of(column: str, values: Iterable[str]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"CHECK ({column} IN ({quoted}))"


def _non_negative(column: str) -> str:
    return f"CHECK ({column} IS NULL OR CAST({column} AS NUMERIC) >= 0)"


TABLES = [
    # Identity
    f"""
    CREATE TABLE IF NOT EXISTS users (
        user_id INTEGER PRIMARY KEY AUTOINCREMENT,
        first_name VARCHAR(100) NOT NULL,
        last_name VARCHAR(100) NOT NULL,
        email VARCHAR(255) NOT NULL,
        password_hash VARCHAR(255) NOT NULL,
        phone VARCHAR(50),
        role VARCHAR(20) NOT NULL DEFAULT 'customer' {_one_of('role', USER_ROLES)},
        is_active BOOLEAN NOT NULL DEFAULT 1,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT uq_users_email UNIQUE (email)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS addresses (
        address_id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NULL,
        label VARCHAR(50) DEFAULT 'home',
        recipient_name VARCHAR(200),
        line1 VARCHAR(255) NOT NULL,
        line2 VARCHAR(255),
        city VARCHAR(100) NOT NULL,
        state VARCHAR(100),
        postal_code VARCHAR(30),
        country VARCHAR(100) NOT NULL,
        phone VARCHAR(50),
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT fk_addresses_user FOREIGN KEY (user_id) REFERENCES users (user_id)
            ON DELETE SET NULL ON UPDATE CASCADE
    )
    """,
    # Catalog
    """
    CREATE TABLE IF NOT EXISTS categories (
        category_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(150) NOT NULL,
        slug VARCHAR(200) NOT NULL,
        parent_id INTEGER DEFAULT NULL,
        description TEXT,
        is_active BOOLEAN NOT NULL DEFAULT 1,
        CONSTRAINT uq_categories_slug UNIQUE (slug),
        CONSTRAINT ck_categories_not_own_parent CHECK (parent_id IS NULL OR parent_id <> category_id),
        CONSTRAINT fk_categories_parent FOREIGN KEY (parent_id) REFERENCES categories (category_id)
            ON DELETE SET NULL ON UPDATE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS suppliers (
        supplier_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(255) NOT NULL,
        contact_email VARCHAR(255),
        contact_phone VARCHAR(50),
        address TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT uq_suppliers_name UNIQUE (name)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS products (
        product_id INTEGER PRIMARY KEY AUTOINCREMENT,
        sku VARCHAR(100) NOT NULL,
        name VARCHAR(255) NOT NULL,
        short_description VARCHAR(500),
        description TEXT,
        price DECIMAL_TEXT(10,2) NOT NULL {_non_negative('price')},
        retail_price DECIMAL_TEXT(10,2) {_non_negative('retail_price')},
        cost_price DECIMAL_TEXT(10,2) {_non_negative('cost_price')},
        weight_kg DECIMAL_TEXT(8,3) {_non_negative('weight_kg')},
        is_active BOOLEAN NOT NULL DEFAULT 1,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT uq_products_sku UNIQUE (sku)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_images (
        image_id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER NOT NULL,
        url VARCHAR(1024) NOT NULL,
        alt_text VARCHAR(255),
        position INTEGER NOT NULL DEFAULT 0 CHECK (position >= 0),
        is_primary BOOLEAN NOT NULL DEFAULT 0,
        CONSTRAINT fk_product_images_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_categories (
        product_id INTEGER NOT NULL,
        category_id INTEGER NOT NULL,
        PRIMARY KEY (product_id, category_id),
        CONSTRAINT fk_pc_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE CASCADE ON UPDATE CASCADE,
        CONSTRAINT fk_pc_category FOREIGN KEY (category_id) REFERENCES categories (category_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_attributes (
        attr_id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER NOT NULL,
        attr_key VARCHAR(100) NOT NULL,
        attr_value VARCHAR(255) NOT NULL,
        CONSTRAINT fk_prod_attr_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    # Inventory
    """
    CREATE TABLE IF NOT EXISTS inventory (
        inventory_id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER NOT NULL,
        supplier_id INTEGER,
        quantity INTEGER NOT NULL DEFAULT 0,
        reserved INTEGER NOT NULL DEFAULT 0,
        location VARCHAR(255),
        last_restocked TIMESTAMP NULL,
        CONSTRAINT ck_inventory_counts CHECK (quantity >= 0 AND reserved >= 0 AND reserved <= quantity),
        CONSTRAINT fk_inventory_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE CASCADE ON UPDATE CASCADE,
        CONSTRAINT fk_inventory_supplier FOREIGN KEY (supplier_id) REFERENCES suppliers (supplier_id)
            ON DELETE SET NULL ON UPDATE CASCADE
    )
    """,
    # Promotions
    f"""
    CREATE TABLE IF NOT EXISTS coupons (
        coupon_code VARCHAR(50) NOT NULL PRIMARY KEY,
        description VARCHAR(255),
        discount_type VARCHAR(10) NOT NULL {_one_of('discount_type', DISCOUNT_TYPES)},
        discount_value DECIMAL_TEXT(10,2) NOT NULL {_non_negative('discount_value')},
        min_order_amount DECIMAL_TEXT(10,2) DEFAULT '0.00' {_non_negative('min_order_amount')},
        usage_limit INTEGER DEFAULT NULL CHECK (usage_limit IS NULL OR usage_limit >= 0),
        expires_at TIMESTAMP DEFAULT NULL,
        is_active BOOLEAN DEFAULT 1,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Order processing
    f"""
    CREATE TABLE IF NOT EXISTS orders (
        order_id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NULL,
        order_number VARCHAR(50) NOT NULL,
        status VARCHAR(20) NOT NULL DEFAULT 'pending' {_one_of('status', ORDER_STATUSES)},
        total_amount DECIMAL_TEXT(12,2) NOT NULL {_non_negative('total_amount')},
        shipping_amount DECIMAL_TEXT(10,2) NOT NULL DEFAULT '0.00' {_non_negative('shipping_amount')},
        discount_amount DECIMAL_TEXT(10,2) NOT NULL DEFAULT '0.00' {_non_negative('discount_amount')},
        coupon_code VARCHAR(50) DEFAULT NULL,
        billing_address_id INTEGER DEFAULT NULL,
        shipping_address_id INTEGER DEFAULT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT uq_orders_number UNIQUE (order_number),
        CONSTRAINT fk_orders_user FOREIGN KEY (user_id) REFERENCES users (user_id)
            ON DELETE SET NULL ON UPDATE CASCADE,
        CONSTRAINT fk_orders_coupon FOREIGN KEY (coupon_code) REFERENCES coupons (coupon_code)
            ON DELETE SET NULL ON UPDATE CASCADE,
        CONSTRAINT fk_orders_billing_address FOREIGN KEY (billing_address_id) REFERENCES addresses (address_id)
            ON DELETE SET NULL ON UPDATE CASCADE,
        CONSTRAINT fk_orders_shipping_address FOREIGN KEY (shipping_address_id) REFERENCES addresses (address_id)
            ON DELETE SET NULL ON UPDATE CASCADE
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS order_items (
        order_id INTEGER NOT NULL,
        product_id INTEGER NOT NULL,
        sku VARCHAR(100) NOT NULL,
        product_name VARCHAR(255) NOT NULL,
        unit_price DECIMAL_TEXT(10,2) NOT NULL {_non_negative('unit_price')},
        quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity >= 1),
        total_price DECIMAL_TEXT(12,2) NOT NULL {_non_negative('total_price')},
        PRIMARY KEY (order_id, product_id),
        CONSTRAINT fk_order_items_order FOREIGN KEY (order_id) REFERENCES orders (order_id)
            ON DELETE CASCADE ON UPDATE CASCADE,
        CONSTRAINT fk_order_items_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE RESTRICT ON UPDATE CASCADE
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS payments (
        payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        payment_method VARCHAR(20) NOT NULL {_one_of('payment_method', PAYMENT_METHODS)},
        provider_transaction_id VARCHAR(255),
        amount DECIMAL_TEXT(12,2) NOT NULL {_non_negative('amount')},
        currency VARCHAR(10) NOT NULL DEFAULT 'USD',
        status VARCHAR(20) NOT NULL DEFAULT 'initiated' {_one_of('status', PAYMENT_STATUSES)},
        paid_at TIMESTAMP NULL,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT uq_payments_provider_tx UNIQUE (provider_transaction_id),
        CONSTRAINT fk_payments_order FOREIGN KEY (order_id) REFERENCES orders (order_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    # Feedback
    """
    CREATE TABLE IF NOT EXISTS reviews (
        review_id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
        title VARCHAR(255),
        body TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT uq_reviews_user_product UNIQUE (product_id, user_id),
        CONSTRAINT fk_reviews_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE CASCADE ON UPDATE CASCADE,
        CONSTRAINT fk_reviews_user FOREIGN KEY (user_id) REFERENCES users (user_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    # Cart / wishlist
    """
    CREATE TABLE IF NOT EXISTS carts (
        cart_id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER DEFAULT NULL,
        session_id VARCHAR(255) DEFAULT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT ck_carts_owner CHECK (user_id IS NOT NULL OR session_id IS NOT NULL),
        CONSTRAINT fk_carts_user FOREIGN KEY (user_id) REFERENCES users (user_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cart_items (
        cart_id INTEGER NOT NULL,
        product_id INTEGER NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity >= 1),
        added_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (cart_id, product_id),
        CONSTRAINT fk_cart_items_cart FOREIGN KEY (cart_id) REFERENCES carts (cart_id)
            ON DELETE CASCADE ON UPDATE CASCADE,
        CONSTRAINT fk_cart_items_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS wishlists (
        wishlist_id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        name VARCHAR(150) DEFAULT 'My Wishlist',
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT fk_wishlists_user FOREIGN KEY (user_id) REFERENCES users (user_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS wishlist_items (
        wishlist_id INTEGER NOT NULL,
        product_id INTEGER NOT NULL,
        added_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (wishlist_id, product_id),
        CONSTRAINT fk_wishlist_items_wishlist FOREIGN KEY (wishlist_id) REFERENCES wishlists (wishlist_id)
            ON DELETE CASCADE ON UPDATE CASCADE,
        CONSTRAINT fk_wishlist_items_product FOREIGN KEY (product_id) REFERENCES products (product_id)
            ON DELETE CASCADE ON UPDATE CASCADE
    )
    """,
]

INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_addresses_user ON addresses (user_id)',
    'CREATE INDEX IF NOT EXISTS idx_categories_parent ON categories (parent_id)',
    'CREATE INDEX IF NOT EXISTS idx_products_name ON products (name)',
    'CREATE INDEX IF NOT EXISTS idx_product_images_product ON product_images (product_id)',
    'CREATE INDEX IF NOT EXISTS idx_product_categories_category ON product_categories (category_id)',
    'CREATE INDEX IF NOT EXISTS idx_prod_attr_product ON product_attributes (product_id)',
    'CREATE INDEX IF NOT EXISTS idx_inventory_product ON inventory (product_id)',
    'CREATE INDEX IF NOT EXISTS idx_orders_user ON orders (user_id)',
    'CREATE INDEX IF NOT EXISTS idx_orders_status_created ON orders (status, created_at)',
    'CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items (order_id)',
    'CREATE INDEX IF NOT EXISTS idx_order_items_product ON order_items (product_id)',
    'CREATE INDEX IF NOT EXISTS idx_payments_order ON payments (order_id)',
    'CREATE INDEX IF NOT EXISTS idx_reviews_user ON reviews (user_id)',
    'CREATE INDEX IF NOT EXISTS idx_carts_user ON carts (user_id)',
    'CREATE INDEX IF NOT EXISTS idx_carts_session ON carts (session_id)',
    'CREATE INDEX IF NOT EXISTS idx_cart_items_product ON cart_items (product_id)',
    'CREATE INDEX IF NOT EXISTS idx_wishlists_user ON wishlists (user_id)',
    'CREATE INDEX IF NOT EXISTS idx_wishlist_items_product ON wishlist_items (product_id)',
]

# Tables whose updated_at follows every row update
TOUCHED_TABLES = {
    'users': 'user_id',
    'products': 'product_id',
    'orders': 'order_id',
    'carts': 'cart_id',
}

TRIGGERS = [
    f"""
    CREATE TRIGGER IF NOT EXISTS trg_{table}_updated_at
    AFTER UPDATE ON {table} FOR EACH ROW
    WHEN NEW.updated_at = OLD.updated_at
    BEGIN
        UPDATE {table} SET updated_at = CURRENT_TIMESTAMP WHERE {key} = NEW.{key};
    END
    """
    for table, key in TOUCHED_TABLES.items()
]

# total_spent is a two-place text rendering of the exact sum; compare and
# sort on total_spent_cents, which is an INTEGER
VIEWS = [
    'DROP VIEW IF EXISTS v_user_order_totals',
    """
    CREATE VIEW v_user_order_totals AS
    SELECT user_id, email, orders_count,
           printf('%d.%02d', spent_cents / 100, spent_cents % 100) AS total_spent,
           spent_cents AS total_spent_cents
    FROM (
        SELECT u.user_id AS user_id,
               u.email AS email,
               COUNT(o.order_id) AS orders_count,
               COALESCE(SUM(CAST(ROUND(o.total_amount * 100) AS INTEGER)), 0) AS spent_cents
        FROM users u
        LEFT JOIN orders o ON o.user_id = u.user_id
        GROUP BY u.user_id, u.email
    )
    """,
]

ALL_STATEMENTS = TABLES + INDEXES + TRIGGERS + VIEWS
