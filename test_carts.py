"""
Carts, session carts and wishlists
"""

from decimal import Decimal

import pytest

from storefront.core.exceptions import (
    CheckViolation, InventoryError, NotFoundError, ValidationError
)


def test_cart_needs_owner(carts, db):
    with pytest.raises(ValidationError):
        carts.get_or_create_cart()
    with pytest.raises(CheckViolation):
        db.execute_query('INSERT INTO carts (user_id, session_id) VALUES (NULL, NULL)')


def test_cart_is_reused(carts, make_user):
    user = make_user()
    cart = carts.get_or_create_cart(user_id=user.user_id)
    assert carts.get_or_create_cart(user_id=user.user_id).cart_id == cart.cart_id


def test_add_item_accumulates(carts, make_user, make_product):
    cart = carts.get_or_create_cart(user_id=make_user().user_id)
    product = make_product(price='4.50', stock=5)

    carts.add_item(cart.cart_id, product.product_id, 2)
    item = carts.add_item(cart.cart_id, product.product_id, 1)

    assert item.quantity == 3
    assert item.line_total == Decimal('13.50')
    assert carts.total(cart.cart_id) == Decimal('13.50')


def test_add_item_respects_stock(carts, make_product):
    cart = carts.get_or_create_cart(session_id='sess-1')
    product = make_product(stock=2)
    carts.add_item(cart.cart_id, product.product_id, 2)
    with pytest.raises(InventoryError):
        carts.add_item(cart.cart_id, product.product_id, 1)


def test_inactive_product_not_added(carts, catalog, make_product):
    cart = carts.get_or_create_cart(session_id='sess-1')
    product = make_product()
    catalog.update_product(product.product_id, is_active=False)
    with pytest.raises(ValidationError):
        carts.add_item(cart.cart_id, product.product_id)


def test_set_quantity_and_remove(carts, make_product):
    cart = carts.get_or_create_cart(session_id='sess-1')
    product = make_product()
    carts.add_item(cart.cart_id, product.product_id)

    assert carts.set_quantity(cart.cart_id, product.product_id, 4).quantity == 4
    assert carts.set_quantity(cart.cart_id, product.product_id, 0) is None
    assert carts.items(cart.cart_id) == []
    with pytest.raises(NotFoundError):
        carts.set_quantity(cart.cart_id, product.product_id, 1)


def test_merge_session_cart(carts, make_user, make_product):
    user = make_user()
    shared = make_product(price='2.00')
    guest_only = make_product(price='3.00')
    user_cart = carts.get_or_create_cart(user_id=user.user_id)
    carts.add_item(user_cart.cart_id, shared.product_id, 1)
    session_cart = carts.get_or_create_cart(session_id='anon-42')
    carts.add_item(session_cart.cart_id, shared.product_id, 2)
    carts.add_item(session_cart.cart_id, guest_only.product_id, 1)

    merged = carts.merge_session_cart('anon-42', user.user_id)

    assert merged.cart_id == user_cart.cart_id
    quantities = {item.product_id: item.quantity for item in carts.items(merged.cart_id)}
    assert quantities == {shared.product_id: 3, guest_only.product_id: 1}
    with pytest.raises(NotFoundError):
        carts.get_cart(session_cart.cart_id)


def test_wishlist(carts, make_user, make_product):
    user = make_user()
    product = make_product()
    wishlist = carts.create_wishlist(user.user_id)
    assert wishlist.name == 'My Wishlist'

    assert carts.add_to_wishlist(wishlist.wishlist_id, product.product_id) is True
    assert carts.add_to_wishlist(wishlist.wishlist_id, product.product_id) is False
    assert [i.product_id for i in carts.wishlist_items(wishlist.wishlist_id)] == [product.product_id]


def test_move_wishlist_item_to_cart(carts, make_user, make_product):
    user = make_user()
    product = make_product()
    wishlist = carts.create_wishlist(user.user_id, name='Birthday')
    carts.add_to_wishlist(wishlist.wishlist_id, product.product_id)
    cart = carts.get_or_create_cart(user_id=user.user_id)

    carts.move_to_cart(wishlist.wishlist_id, product.product_id, cart.cart_id)

    assert carts.wishlist_items(wishlist.wishlist_id) == []
    assert [i.product_id for i in carts.items(cart.cart_id)] == [product.product_id]
    assert [w.name for w in carts.user_wishlists(user.user_id)] == ['Birthday']
