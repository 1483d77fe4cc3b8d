"""
Custom exceptions for the payroll engine.
Raised in engine.py and caught in views.py.
"""


class PayrollError(Exception):
    """Base exception for all payroll engine errors."""
    pass


class PayPeriodClosedError(PayrollError):
    """Raised when a pay run is requested for a period that is already closed."""
    pass


class PayRunLockedError(PayrollError):
    """Raised when a paid pay run is modified."""
    pass


class InvalidAdjustmentError(PayrollError):
    """Raised when a manual adjustment has a non-positive amount."""
    pass


class InvalidCompensationError(PayrollError):
    """Raised when a salary is not positive or would not start after the current one."""
    pass
