"""
Checkout, stock reservation, order numbers and the order lifecycle
"""

import re
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront.core.exceptions import (
    CouponError, InventoryError, NotFoundError, OrderStateError, UniqueViolation, ValidationError
)
from storefront.core.utils import utcnow
from storefront.services.order_service import OrderService, generate_order_number


def test_order_number_format():
    number = generate_order_number(prefix='ORD-', now=datetime(2024, 5, 1, 12, 0, 0))
    assert re.fullmatch(r'ORD-20240501120000-\d{3}', number)


def test_checkout_snapshots_lines(catalog, orders, make_user, make_product, make_address):
    user = make_user()
    address = make_address(user.user_id)
    phone = make_product(price='100.00', name='Phone')
    case = make_product(price='9.99', name='Case')

    order = orders.checkout([(phone.product_id, 1), (case.product_id, 2), (case.product_id, 1)],
                            user_id=user.user_id, billing_address_id=address.address_id,
                            shipping_address_id=address.address_id, shipping_amount='5.00')

    assert order.status == 'pending'
    assert order.total_amount == Decimal('134.97')
    assert order.shipping_amount == Decimal('5.00')
    lines = {item.product_id: item for item in order.items}
    assert lines[case.product_id].quantity == 3
    assert lines[case.product_id].total_price == Decimal('29.97')

    catalog.update_product(phone.product_id, price='150.00', name='Phone v2')
    kept = orders.get_order(order.order_id).items
    assert {i.product_name for i in kept} == {'Phone', 'Case'}
    assert {i.product_id: i.unit_price for i in kept}[phone.product_id] == Decimal('100.00')


def test_guest_checkout(orders, make_product):
    order = orders.checkout([(make_product().product_id, 1)])
    assert order.user_id is None
    assert orders.get_order_by_number(order.order_number).order_id == order.order_id


def test_checkout_reserves_stock(inventory, orders, make_product):
    product = make_product(stock=5)
    orders.checkout([(product.product_id, 2)])

    record = inventory.records(product.product_id)[0]
    assert (record.quantity, record.reserved) == (5, 2)
    assert inventory.available(product.product_id) == 3


def test_checkout_is_atomic(inventory, orders, make_product):
    plenty = make_product(stock=10)
    scarce = make_product(stock=1)

    with pytest.raises(InventoryError):
        orders.checkout([(plenty.product_id, 3), (scarce.product_id, 2)])

    assert inventory.available(plenty.product_id) == 10
    assert orders.list_orders() == []


@pytest.mark.parametrize('items', [[], [(1, 0)], [(1, -2)]])
def test_checkout_rejects_bad_lines(orders, make_product, items):
    make_product()
    with pytest.raises(ValidationError):
        orders.checkout(items)


def test_checkout_unknown_product(orders):
    with pytest.raises(NotFoundError):
        orders.checkout([(404, 1)])


def test_stock_split_across_rows(catalog, inventory, orders, make_product):
    supplier = catalog.create_supplier('Second Source')
    product = make_product(stock=2)
    inventory.restock(product.product_id, 3, supplier_id=supplier.supplier_id)

    orders.checkout([(product.product_id, 4)])

    assert [r.reserved for r in inventory.records(product.product_id)] == [2, 2]
    assert inventory.available(product.product_id) == 1


def test_concurrent_checkout_of_last_unit(db, inventory, make_product):
    product = make_product(stock=1)
    barrier = threading.Barrier(2)
    results = []

    def buy():
        service = OrderService(db)
        barrier.wait()
        try:
            results.append(service.checkout([(product.product_id, 1)]))
        except InventoryError as e:
            results.append(e)

    threads = [threading.Thread(target=buy) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for r in results if isinstance(r, InventoryError)) == 1
    assert sum(1 for r in results if not isinstance(r, InventoryError)) == 1
    record = inventory.records(product.product_id)[0]
    assert (record.quantity, record.reserved) == (1, 1)


def test_order_number_collision_is_retried(db, make_product):
    product = make_product()
    numbers = iter(['ORD-1', 'ORD-1', 'ORD-1', 'ORD-2'])
    service = OrderService(db, number_generator=lambda: next(numbers))

    first = service.checkout([(product.product_id, 1)])
    second = service.checkout([(product.product_id, 1)])

    assert first.order_number == 'ORD-1'
    assert second.order_number == 'ORD-2'


def test_order_number_attempts_exhausted(db, inventory, make_product):
    product = make_product(stock=5)
    service = OrderService(db, number_generator=lambda: 'ORD-SAME', number_attempts=3)
    service.checkout([(product.product_id, 1)])

    with pytest.raises(UniqueViolation):
        service.checkout([(product.product_id, 1)])
    assert inventory.available(product.product_id) == 4


def test_percent_coupon(coupons, orders, make_product):
    coupons.create_coupon('save20', 'percent', Decimal('20'), min_order_amount='100.00')
    assert coupons.get_coupon('SAVE20').discount_value == Decimal('20.00')

    order = orders.checkout([(make_product(price='100.00').product_id, 1)], coupon_code='SAVE20')
    assert order.discount_amount == Decimal('20.00')
    assert order.total_amount == Decimal('80.00')
    assert order.coupon_code == 'SAVE20'


def test_fixed_coupon_capped_at_subtotal(coupons, orders, make_product):
    coupons.create_coupon('BIG', 'fixed', Decimal('50.00'))
    order = orders.checkout([(make_product(price='30.00').product_id, 1)],
                            coupon_code='BIG', shipping_amount='4.99')
    assert order.discount_amount == Decimal('30.00')
    assert order.total_amount == Decimal('4.99')


def test_percent_coupon_over_hundred_rejected(coupons):
    with pytest.raises(ValidationError):
        coupons.create_coupon('TOOMUCH', 'percent', Decimal('120'))


def test_coupon_rules(coupons, orders, make_product):
    product = make_product(price='20.00')
    coupons.create_coupon('MIN50', 'fixed', '5.00', min_order_amount='50.00')
    coupons.create_coupon('OLD', 'fixed', '5.00', expires_at=datetime(2000, 1, 1))
    coupons.create_coupon('ONCE', 'fixed', '5.00', usage_limit=1)
    coupons.create_coupon('OFF', 'fixed', '5.00')
    coupons.deactivate('OFF')

    for code in ('MIN50', 'OLD', 'OFF', 'NOPE'):
        with pytest.raises(CouponError):
            orders.checkout([(product.product_id, 1)], coupon_code=code)

    first = orders.checkout([(product.product_id, 1)], coupon_code='ONCE')
    with pytest.raises(CouponError):
        orders.checkout([(product.product_id, 1)], coupon_code='ONCE')

    orders.cancel(first.order_id)
    assert coupons.times_used('ONCE') == 0
    orders.checkout([(product.product_id, 1)], coupon_code='ONCE')


def test_coupon_with_aware_expiry(coupons, orders, make_product):
    product = make_product(price='20.00')
    tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
    coupons.create_coupon('TZ', 'fixed', '5.00', expires_at=tomorrow)
    coupons.create_coupon('TZGONE', 'fixed', '5.00',
                          expires_at=datetime.now(timezone(timedelta(hours=3))) - timedelta(hours=1))

    assert coupons.get_coupon('TZ').expires_at.tzinfo is None
    order = orders.checkout([(product.product_id, 1)], coupon_code='TZ')
    assert order.total_amount == Decimal('15.00')
    with pytest.raises(CouponError):
        orders.checkout([(product.product_id, 1)], coupon_code='TZGONE')


def test_boolean_quantity_rejected(orders, make_product):
    product = make_product()
    with pytest.raises(ValidationError):
        orders.checkout([(product.product_id, True)])


def test_payment_flow_transitions(inventory, orders, make_product):
    product = make_product(stock=3)
    order = orders.checkout([(product.product_id, 2)])

    orders.change_status(order.order_id, 'paid')
    shipped = orders.change_status(order.order_id, 'shipped')
    assert shipped.status == 'shipped'
    record = inventory.records(product.product_id)[0]
    assert (record.quantity, record.reserved) == (1, 0)

    orders.change_status(order.order_id, 'delivered')
    orders.change_status(order.order_id, 'refunded')
    record = inventory.records(product.product_id)[0]
    assert (record.quantity, record.reserved) == (1, 0)


@pytest.mark.parametrize('path, bad', [
    ([], 'shipped'),
    ([], 'delivered'),
    (['paid', 'shipped'], 'cancelled'),
    (['cancelled'], 'paid'),
    (['paid', 'refunded'], 'shipped'),
])
def test_illegal_transitions(orders, make_product, path, bad):
    order = orders.checkout([(make_product().product_id, 1)])
    for status in path:
        orders.change_status(order.order_id, status)
    with pytest.raises(OrderStateError):
        orders.change_status(order.order_id, bad)


def test_unknown_status(orders, make_product):
    order = orders.checkout([(make_product().product_id, 1)])
    with pytest.raises(ValidationError):
        orders.change_status(order.order_id, 'lost')


@pytest.mark.parametrize('path', [['cancelled'], ['paid', 'cancelled'], ['paid', 'refunded']])
def test_cancel_and_refund_release_reservations(inventory, orders, make_product, path):
    product = make_product(stock=2)
    order = orders.checkout([(product.product_id, 2)])
    for status in path:
        orders.change_status(order.order_id, status)

    record = inventory.records(product.product_id)[0]
    assert (record.quantity, record.reserved) == (2, 0)


def test_list_orders_filters(orders, make_user, make_product):
    user = make_user()
    product = make_product()
    mine = orders.checkout([(product.product_id, 1)], user_id=user.user_id)
    orders.checkout([(product.product_id, 1)])
    orders.cancel(mine.order_id)

    assert [o.order_id for o in orders.list_orders(user_id=user.user_id)] == [mine.order_id]
    assert [o.order_id for o in orders.list_orders(status='cancelled')] == [mine.order_id]
    assert len(orders.list_orders()) == 2


def test_expire_stale_orders(db, inventory, orders, make_product):
    product = make_product(stock=3)
    stale = orders.checkout([(product.product_id, 2)])
    fresh = orders.checkout([(product.product_id, 1)])
    db.execute_update("UPDATE orders SET created_at = '2000-01-01 00:00:00' WHERE order_id = ?",
                      (stale.order_id,))

    expired = orders.expire_stale_orders(max_age_minutes=30)

    assert expired == [stale.order_number]
    assert orders.get_order(stale.order_id).status == 'cancelled'
    assert orders.get_order(fresh.order_id).status == 'pending'
    assert inventory.available(product.product_id) == 2


def test_expire_uses_reference_time(orders, make_product):
    order = orders.checkout([(make_product().product_id, 1)])
    later = utcnow() + timedelta(hours=2)
    assert orders.expire_stale_orders(max_age_minutes=60, now=later) == [order.order_number]


def test_checkout_cart_empties_cart(carts, orders, make_user, make_product):
    user = make_user()
    product = make_product(price='15.00')
    cart = carts.get_or_create_cart(user_id=user.user_id)
    carts.add_item(cart.cart_id, product.product_id, 2)

    order = orders.checkout_cart(cart.cart_id)

    assert order.user_id == user.user_id
    assert order.total_amount == Decimal('30.00')
    assert carts.items(cart.cart_id) == []


def test_checkout_empty_cart(carts, orders, make_user):
    cart = carts.get_or_create_cart(user_id=make_user().user_id)
    with pytest.raises(ValidationError):
        orders.checkout_cart(cart.cart_id)
