"""
Custom exceptions for the booking engine.
Raised in engine.py and caught in views.py for clean error handling.
"""


class BookingEngineError(Exception):
    """Base exception for all booking engine errors."""
    pass


class AppointmentSaveError(BookingEngineError):
    """Raised when the appointment or one of its lines could not be written."""
    pass


class InvalidCouponError(BookingEngineError):
    """Raised when the entered coupon code does not exist or is inactive."""
    pass


class LoyaltyRedemptionError(BookingEngineError):
    """Raised when more points are redeemed than the customer may use on this bill."""
    pass


class AppointmentStateError(BookingEngineError):
    """Raised when a status change is not allowed from the appointment's current status."""
    pass
