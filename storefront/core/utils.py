"""
General-purpose helpers
"""

import re
import unicodedata
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union

from storefront.core.exceptions import ValidationError

CENT = Decimal('0.01')

Number = Union[Decimal, int, str]


def to_money(value: Number) -> Decimal:
    """Convert to a two-place Decimal"""
    if isinstance(value, float):
        raise ValidationError("Money amounts must not be floats")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid money amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid money amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_price(price: Number, currency: str = "USD") -> str:
    """Format a price for logs and messages"""
    return f"{to_money(price)} {currency}"


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with CURRENT_TIMESTAMP"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are converted to UTC and stripped; naive ones are taken as UTC"""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def format_timestamp(moment: datetime) -> str:
    return moment.strftime('%Y-%m-%d %H:%M:%S')


def validate_email(email: str) -> bool:
    """Email validation"""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_phone(phone: str) -> Optional[str]:
    """Validate and normalize a phone number"""
    if not phone:
        return None

    clean_phone = re.sub(r'[^\d+]', '', phone)
    if len(clean_phone) >= 10 and (clean_phone.startswith('+') or clean_phone.isdigit()):
        return clean_phone
    return None


def sanitize_text(text: str, max_length: int = 1000) -> str:
    """Strip markup characters and truncate"""
    if not text:
        return ""

    dangerous_chars = ['<', '>', '"', '&', '\x00']
    for char in dangerous_chars:
        text = text.replace(char, '')

    return text.strip()[:max_length]


def slugify(value: str, max_length: int = 200) -> str:
    """URL-safe identifier from a display name"""
    normalized = unicodedata.normalize('NFKD', value).encode('ascii', 'ignore').decode('ascii')
    slug = re.sub(r'[^a-z0-9]+', '-', normalized.lower()).strip('-')
    if not slug:
        raise ValidationError(f"Cannot build a slug from {value!r}")
    return slug[:max_length]
