"""
Users and addresses
"""

from typing import List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from storefront.core.exceptions import NotFoundError, ValidationError
from storefront.core.logger import logger
from storefront.core.utils import sanitize_text, validate_email, validate_phone
from storefront.database.models import USER_ROLES, Address, User, from_row


class UserService:
    """Customer, merchant and admin accounts"""

    def __init__(self, db):
        self.db = db

    def create_user(self, first_name: str, last_name: str, email: str, password: str,
                    phone: Optional[str] = None, role: str = 'customer') -> User:
        """Register a new account"""
        email = (email or '').strip().lower()
        if not validate_email(email):
            raise ValidationError(f"Invalid email: {email!r}")
        if role not in USER_ROLES:
            raise ValidationError(f"Unknown role: {role}")
        if not password or len(password) < 8:
            raise ValidationError("Password must be at least 8 characters")
        if phone is not None:
            phone = validate_phone(phone)
            if phone is None:
                raise ValidationError("Invalid phone number")

        user_id = self.db.execute_query('''
            INSERT INTO users (first_name, last_name, email, password_hash, phone, role)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (sanitize_text(first_name, 100), sanitize_text(last_name, 100), email,
              generate_password_hash(password), phone, role))
        logger.info(f"User {user_id} registered as {role}")
        return self.get_user(user_id)

    def get_user(self, user_id: int) -> User:
        row = self.db.fetch_one('SELECT * FROM users WHERE user_id = ?', (user_id,))
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        return from_row(User, row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self.db.fetch_one('SELECT * FROM users WHERE email = ?', ((email or '').strip().lower(),))
        return from_row(User, row) if row else None

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the active user matching the credentials"""
        user = self.get_user_by_email(email)
        if not user or not user.is_active:
            return None
        if not check_password_hash(user.password_hash, password):
            logger.warning(f"Failed login for user {user.user_id}")
            return None
        return user

    def set_active(self, user_id: int, is_active: bool) -> User:
        """Soft-disable or re-enable an account"""
        if not self.db.execute_update(
                'UPDATE users SET is_active = ? WHERE user_id = ?', (is_active, user_id)):
            raise NotFoundError(f"User {user_id} not found")
        logger.info(f"User {user_id} {'enabled' if is_active else 'disabled'}")
        return self.get_user(user_id)

    def delete_user(self, user_id: int):
        """Hard delete; addresses and orders are detached, carts, wishlists and reviews go"""
        if not self.db.execute_update('DELETE FROM users WHERE user_id = ?', (user_id,)):
            raise NotFoundError(f"User {user_id} not found")
        logger.info(f"User {user_id} deleted")

    def add_address(self, user_id: Optional[int], line1: str, city: str, country: str,
                    **details) -> Address:
        """Store a postal address; user_id may be None for guest checkout"""
        if not (line1 and city and country):
            raise ValidationError("line1, city and country are required")
        allowed = {'label', 'recipient_name', 'line2', 'state', 'postal_code', 'phone'}
        unknown = set(details) - allowed
        if unknown:
            raise ValidationError(f"Unknown address fields: {', '.join(sorted(unknown))}")

        columns = ['user_id', 'line1', 'city', 'country'] + list(details)
        values = [user_id, line1, city, country] + list(details.values())
        placeholders = ', '.join('?' for _ in columns)
        address_id = self.db.execute_query(
            f"INSERT INTO addresses ({', '.join(columns)}) VALUES ({placeholders})",
            values
        )
        return self.get_address(address_id)

    def get_address(self, address_id: int) -> Address:
        row = self.db.fetch_one('SELECT * FROM addresses WHERE address_id = ?', (address_id,))
        if not row:
            raise NotFoundError(f"Address {address_id} not found")
        return from_row(Address, row)

    def list_addresses(self, user_id: int) -> List[Address]:
        rows = self.db.execute_query(
            'SELECT * FROM addresses WHERE user_id = ? ORDER BY address_id', (user_id,))
        return [from_row(Address, row) for row in rows]
