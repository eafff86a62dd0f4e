"""
Schema objects, constraints and referential actions
"""

import sqlite3
from decimal import Decimal

import pytest

from storefront.core.exceptions import (
    CheckViolation, ForeignKeyViolation, RestrictedDeleteError, TransientDatabaseError,
    UniqueViolation
)
from storefront.database.manager import DatabaseManager
from storefront.database.schema import TABLES

EXPECTED_TABLES = {
    'users', 'addresses', 'categories', 'suppliers', 'products', 'product_images',
    'product_categories', 'product_attributes', 'inventory', 'coupons', 'orders',
    'order_items', 'payments', 'reviews', 'carts', 'cart_items', 'wishlists', 'wishlist_items',
}


def test_all_objects_created(db):
    objects = db.schema_objects()
    assert EXPECTED_TABLES <= set(objects['table'])
    assert len(TABLES) == len(EXPECTED_TABLES)
    assert 'v_user_order_totals' in objects['view']
    assert {'trg_users_updated_at', 'trg_orders_updated_at'} <= set(objects['trigger'])
    assert 'idx_orders_status_created' in objects['index']


def test_init_is_idempotent(db):
    again = DatabaseManager(db_path=db.db_path, seed_demo_data=False)
    assert again.schema_objects() == db.schema_objects()


def test_foreign_keys_enforced(db):
    with pytest.raises(ForeignKeyViolation):
        db.execute_query('INSERT INTO reviews (product_id, user_id, rating) VALUES (999, 999, 5)')


def test_money_round_trips_as_decimal(make_product):
    product = make_product(price='19.99')
    assert product.price == Decimal('19.99')
    assert isinstance(product.price, Decimal)


def test_negative_price_rejected(db):
    with pytest.raises(CheckViolation):
        db.execute_query("INSERT INTO products (sku, name, price) VALUES ('NEG', 'Negative', '-1.00')")


def test_unknown_status_rejected(db, orders, make_product):
    order = orders.checkout([(make_product().product_id, 1)])
    with pytest.raises(CheckViolation):
        db.execute_update("UPDATE orders SET status = 'lost' WHERE order_id = ?", (order.order_id,))


def test_reserved_cannot_exceed_quantity(db, make_product):
    product = make_product(stock=2)
    with pytest.raises(CheckViolation):
        db.execute_update('UPDATE inventory SET reserved = 3 WHERE product_id = ?', (product.product_id,))


def test_duplicate_email_rejected(make_user):
    make_user(email='same@example.com')
    with pytest.raises(UniqueViolation):
        make_user(email='same@example.com')


def test_updated_at_trigger(db, catalog, make_product):
    product = make_product()
    db.execute_update("UPDATE products SET updated_at = '2000-01-01 00:00:00' WHERE product_id = ?",
                      (product.product_id,))
    catalog.update_product(product.product_id, name='Renamed')
    assert catalog.get_product(product.product_id).updated_at.year > 2000


def test_product_delete_blocked_by_order_history(catalog, orders, make_product):
    product = make_product()
    orders.checkout([(product.product_id, 1)])

    with pytest.raises(RestrictedDeleteError):
        catalog.delete_product(product.product_id)
    assert catalog.get_product(product.product_id).sku == product.sku


def test_product_delete_cascades_to_dependents(db, catalog, carts, make_user, make_product):
    user = make_user()
    product = make_product()
    category = catalog.create_category('Gadgets')
    catalog.add_product_to_category(product.product_id, category.category_id)
    catalog.add_image(product.product_id, 'https://cdn.example.com/p.png', is_primary=True)
    catalog.set_attribute(product.product_id, 'color', 'black')
    cart = carts.get_or_create_cart(user_id=user.user_id)
    carts.add_item(cart.cart_id, product.product_id, 2)
    wishlist = carts.create_wishlist(user.user_id)
    carts.add_to_wishlist(wishlist.wishlist_id, product.product_id)

    catalog.delete_product(product.product_id)

    for table in ('inventory', 'product_images', 'product_attributes',
                  'product_categories', 'cart_items', 'wishlist_items'):
        count = db.execute_query(f'SELECT COUNT(*) FROM {table} WHERE product_id = ?',
                                 (product.product_id,))[0][0]
        assert count == 0, table
    assert catalog.get_category(category.category_id).name == 'Gadgets'


def test_user_delete_detaches_history(db, users, orders, carts, reviews, make_user,
                                      make_product, make_address):
    user = make_user()
    product = make_product()
    address = make_address(user.user_id)
    order = orders.checkout([(product.product_id, 1)], user_id=user.user_id,
                            shipping_address_id=address.address_id)
    carts.get_or_create_cart(user_id=user.user_id)
    carts.create_wishlist(user.user_id)
    reviews.add_review(product.product_id, user.user_id, 4)

    users.delete_user(user.user_id)

    kept = orders.get_order(order.order_id)
    assert kept.user_id is None
    assert kept.shipping_address_id == address.address_id
    assert users.get_address(address.address_id).user_id is None
    for table in ('carts', 'wishlists', 'reviews'):
        count = db.execute_query(f'SELECT COUNT(*) FROM {table} WHERE user_id = ?', (user.user_id,))[0][0]
        assert count == 0, table


def test_supplier_delete_keeps_stock(catalog, inventory, make_product):
    supplier = catalog.create_supplier('Parts Co')
    product = make_product(stock=0)
    record = inventory.restock(product.product_id, 5, supplier_id=supplier.supplier_id)

    catalog.delete_supplier(supplier.supplier_id)

    record = inventory.get_record(record.inventory_id)
    assert record.supplier_id is None
    assert record.quantity == 5


def test_coupon_delete_keeps_order_totals(coupons, orders, make_product):
    coupons.create_coupon('TENOFF', 'fixed', Decimal('10.00'))
    order = orders.checkout([(make_product(price='50.00').product_id, 1)], coupon_code='tenoff')

    coupons.delete_coupon('TENOFF')

    kept = orders.get_order(order.order_id)
    assert kept.coupon_code is None
    assert kept.total_amount == Decimal('40.00')
    assert kept.discount_amount == Decimal('10.00')


def test_held_write_lock_surfaces_as_transient(db):
    impatient = DatabaseManager(db_path=db.db_path, timeout=0.1, seed_demo_data=False)
    holder = sqlite3.connect(db.db_path, isolation_level=None)
    try:
        holder.execute('BEGIN IMMEDIATE')
        with pytest.raises(TransientDatabaseError):
            with impatient.transaction():
                pass
    finally:
        holder.execute('ROLLBACK')
        holder.close()

    with impatient.transaction() as conn:
        assert impatient.execute(conn, 'SELECT 1').fetchone()[0] == 1
