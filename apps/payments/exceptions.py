"""
Custom exceptions for payment handling.
Raised in engine.py and caught in views.py.
"""


class PaymentError(Exception):
    """Base exception for all payment errors."""
    pass


class PaymentGatewayError(PaymentError):
    """Raised when Razorpay cannot create an order."""
    pass


class PaymentVerificationError(PaymentError):
    """Raised when a Razorpay callback carries an unknown order or a bad signature."""
    pass


class PaymentStateError(PaymentError):
    """Raised when an appointment cannot take a payment in its current status."""
    pass
