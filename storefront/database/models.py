"""
Data models for the store tables
"""

import sqlite3
from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Type, TypeVar

USER_ROLES = ('customer', 'merchant', 'admin')
ORDER_STATUSES = ('pending', 'paid', 'shipped', 'delivered', 'cancelled', 'refunded')
PAYMENT_METHODS = ('card', 'mobile_money', 'paypal', 'bank_transfer', 'cash_on_delivery')
PAYMENT_STATUSES = ('initiated', 'completed', 'failed', 'refunded')
DISCOUNT_TYPES = ('percent', 'fixed')

# Allowed order status moves; cancelled and refunded are terminal
ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    'pending': frozenset({'paid', 'cancelled'}),
    'paid': frozenset({'shipped', 'cancelled', 'refunded'}),
    'shipped': frozenset({'delivered', 'refunded'}),
    'delivered': frozenset({'refunded'}),
    'cancelled': frozenset(),
    'refunded': frozenset(),
}

ZERO = Decimal('0.00')

M = TypeVar('M')


def from_row(model: Type[M], row: sqlite3.Row) -> M:
    """Build a model from a row, ignoring columns the model doesn't declare"""
    names = {f.name for f in fields(model)}
    return model(**{key: row[key] for key in row.keys() if key in names})


@dataclass
class User:
    """User account"""
    user_id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    password_hash: str = ""
    phone: Optional[str] = None
    role: str = "customer"
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Address:
    address_id: Optional[int] = None
    user_id: Optional[int] = None
    label: str = "home"
    recipient_name: Optional[str] = None
    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = ""
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Category:
    """Product taxonomy node"""
    category_id: Optional[int] = None
    name: str = ""
    slug: str = ""
    parent_id: Optional[int] = None
    description: Optional[str] = None
    is_active: bool = True
    children: List['Category'] = field(default_factory=list, repr=False)


@dataclass
class Supplier:
    supplier_id: Optional[int] = None
    name: str = ""
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Product:
    """Catalog product"""
    product_id: Optional[int] = None
    sku: str = ""
    name: str = ""
    short_description: Optional[str] = None
    description: Optional[str] = None
    price: Decimal = ZERO
    retail_price: Optional[Decimal] = None
    cost_price: Optional[Decimal] = None
    weight_kg: Optional[Decimal] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ProductImage:
    image_id: Optional[int] = None
    product_id: int = 0
    url: str = ""
    alt_text: Optional[str] = None
    position: int = 0
    is_primary: bool = False


@dataclass
class ProductAttribute:
    attr_id: Optional[int] = None
    product_id: int = 0
    attr_key: str = ""
    attr_value: str = ""


@dataclass
class InventoryRecord:
    """Stock of a product, optionally per supplier"""
    inventory_id: Optional[int] = None
    product_id: int = 0
    supplier_id: Optional[int] = None
    quantity: int = 0
    reserved: int = 0
    location: Optional[str] = None
    last_restocked: Optional[datetime] = None

    @property
    def available(self) -> int:
        return self.quantity - self.reserved


@dataclass
class Coupon:
    """Discount code"""
    coupon_code: str = ""
    description: Optional[str] = None
    discount_type: str = "percent"
    discount_value: Decimal = ZERO
    min_order_amount: Decimal = ZERO
    usage_limit: Optional[int] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


@dataclass
class OrderItem:
    """Line item frozen at purchase time"""
    order_id: Optional[int] = None
    product_id: int = 0
    sku: str = ""
    product_name: str = ""
    unit_price: Decimal = ZERO
    quantity: int = 1
    total_price: Decimal = ZERO


@dataclass
class Order:
    """Placed order"""
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    order_number: str = ""
    status: str = "pending"
    total_amount: Decimal = ZERO
    shipping_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    coupon_code: Optional[str] = None
    billing_address_id: Optional[int] = None
    shipping_address_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItem] = field(default_factory=list)


@dataclass
class Payment:
    payment_id: Optional[int] = None
    order_id: int = 0
    payment_method: str = "card"
    provider_transaction_id: Optional[str] = None
    amount: Decimal = ZERO
    currency: str = "USD"
    status: str = "initiated"
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class Review:
    """Product review, one per user and product"""
    review_id: Optional[int] = None
    product_id: int = 0
    user_id: int = 0
    rating: int = 5
    title: Optional[str] = None
    body: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Cart:
    cart_id: Optional[int] = None
    user_id: Optional[int] = None
    session_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class CartItem:
    """Cart line joined with the live product price"""
    cart_id: int = 0
    product_id: int = 0
    quantity: int = 1
    added_at: Optional[datetime] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    price: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        return (self.price or ZERO) * self.quantity


@dataclass
class Wishlist:
    wishlist_id: Optional[int] = None
    user_id: int = 0
    name: str = "My Wishlist"
    created_at: Optional[datetime] = None


@dataclass
class WishlistItem:
    wishlist_id: int = 0
    product_id: int = 0
    added_at: Optional[datetime] = None


@dataclass
class UserOrderTotals:
    """Row of the per-user order totals view"""
    user_id: int
    email: str
    orders_count: int
    total_spent: Decimal
