"""
Custom exceptions for the store
"""


class StorefrontException(Exception):
    """Base exception for the store"""
    pass


class DatabaseError(StorefrontException):
    """Database error"""
    pass


class IntegrityViolation(DatabaseError):
    """A write was rejected by a table constraint"""

    def __init__(self, message: str, constraint: str = ""):
        super().__init__(message)
        self.constraint = constraint


class UniqueViolation(IntegrityViolation):
    pass


class ForeignKeyViolation(IntegrityViolation):
    pass


class RestrictedDeleteError(ForeignKeyViolation):
    """Parent row is still referenced by rows that block deletion"""
    pass


class CheckViolation(IntegrityViolation):
    pass


class TransientDatabaseError(DatabaseError):
    """Lock or busy timeout; the operation can be retried"""
    pass


class ValidationError(StorefrontException):
    """Data validation error"""
    pass


class OrderStateError(ValidationError):
    """Order status transition is not allowed"""
    pass


class CategoryCycleError(ValidationError):
    """Category would become its own ancestor"""
    pass


class CouponError(ValidationError):
    """Coupon cannot be applied"""
    pass


class NotFoundError(StorefrontException):
    """Requested row does not exist"""
    pass


class PaymentError(StorefrontException):
    """Payment processing error"""
    pass


class InventoryError(StorefrontException):
    """Inventory management error"""
    pass
