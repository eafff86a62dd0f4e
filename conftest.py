"""
Shared fixtures: a fresh database per test and the services over it
"""

import itertools
from decimal import Decimal

import pytest

from storefront.database.manager import DatabaseManager
from storefront.services.analytics_service import AnalyticsService
from storefront.services.cart_service import CartService
from storefront.services.catalog_service import CatalogService
from storefront.services.coupon_service import CouponService
from storefront.services.inventory_service import InventoryService
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService
from storefront.services.review_service import ReviewService
from storefront.services.user_service import UserService


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(db_path=str(tmp_path / "store.db"), timeout=10, seed_demo_data=False)


@pytest.fixture
def users(db):
    return UserService(db)


@pytest.fixture
def catalog(db):
    return CatalogService(db)


@pytest.fixture
def inventory(db):
    return InventoryService(db)


@pytest.fixture
def coupons(db):
    return CouponService(db)


@pytest.fixture
def orders(db, inventory, coupons):
    return OrderService(db, inventory=inventory, coupons=coupons)


@pytest.fixture
def payments(db, orders):
    return PaymentService(db, orders=orders)


@pytest.fixture
def carts(db, inventory):
    return CartService(db, inventory=inventory)


@pytest.fixture
def reviews(db):
    return ReviewService(db)


@pytest.fixture
def analytics(db):
    return AnalyticsService(db)


@pytest.fixture
def make_user(users):
    counter = itertools.count(1)

    def factory(**overrides):
        n = next(counter)
        values = {
            'first_name': 'Test',
            'last_name': f'User{n}',
            'email': f'user{n}@example.com',
            'password': 'secret-password',
        }
        values.update(overrides)
        return users.create_user(**values)
    return factory


@pytest.fixture
def make_product(catalog, inventory):
    """Product with stock on hand; stock=0 leaves it without an inventory row"""
    counter = itertools.count(1)

    def factory(price='10.00', stock=10, **overrides):
        n = next(counter)
        values = {'sku': f'SKU-{n:03d}', 'name': f'Product {n}', 'price': Decimal(price)}
        values.update(overrides)
        product = catalog.create_product(**values)
        if stock:
            inventory.restock(product.product_id, stock)
        return product
    return factory


@pytest.fixture
def make_address(users):
    def factory(user_id):
        return users.add_address(user_id, '1 Main Street', 'Springfield', 'US', postal_code='12345')
    return factory
