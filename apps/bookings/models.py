"""
Bookings app models:
  - Coupon, TaxRate       : checkout adjustments selectable by staff
  - Appointment           : one checkout (customer, totals, payment method)
  - Booking               : one serviced line of an appointment
  - AppointmentStatusLog  : audit trail of appointment status transitions
"""
from django.db import models
from django.core.validators import MaxValueValidator, MinValueValidator
from apps.core.models import BaseModel, TimestampedModel, UUIDModel
from apps.catalog.models import Package, Service
from apps.customers.models import Customer
from apps.memberships.models import Membership
from apps.payroll.models import Employee

from .pricing import DiscountType


# ── Checkout adjustments ──────────────────────────────────────────────────────

class Coupon(BaseModel):
    code = models.CharField(max_length=40, unique=True)
    discount_type = models.CharField(
        max_length=10,
        choices=[(DiscountType.PERCENTAGE, 'Percentage'), (DiscountType.FIXED, 'Fixed amount')],
    )
    discount_value = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])

    class Meta:
        verbose_name = 'Coupon'
        verbose_name_plural = 'Coupons'
        ordering = ['code']

    def __str__(self):
        return self.code


class TaxRate(BaseModel):
    name = models.CharField(max_length=80)
    percentage = models.DecimalField(
        max_digits=5, decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )

    class Meta:
        verbose_name = 'Tax Rate'
        verbose_name_plural = 'Tax Rates'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.percentage}%)"


# ── Appointment state machine ─────────────────────────────────────────────────

class AppointmentStatus(models.TextChoices):
    BOOKED    = 'booked',    'Booked'
    PAID      = 'paid',      'Paid'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class PaymentMethod(models.TextChoices):
    CASH   = 'cash',   'Cash'
    ONLINE = 'online', 'Online'


class Appointment(UUIDModel, TimestampedModel):
    """
    Totals are a snapshot of the checkout calculation at save time so the
    receipt never changes when catalog prices do.
    """
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='appointments')
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    total_duration = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=10, choices=AppointmentStatus.choices,
        default=AppointmentStatus.BOOKED, db_index=True,
    )
    payment_method = models.CharField(
        max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.CASH,
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_type = models.CharField(max_length=10, choices=DiscountType.CHOICES, default=DiscountType.NONE)
    discount_value = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    manual_discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    membership = models.ForeignKey(
        Membership, on_delete=models.SET_NULL, null=True, blank=True, related_name='appointments',
    )
    membership_discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    coupon = models.ForeignKey(
        Coupon, on_delete=models.SET_NULL, null=True, blank=True, related_name='appointments',
    )
    coupon_discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    loyalty_points_redeemed = models.PositiveIntegerField(default=0)
    loyalty_discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_rate = models.ForeignKey(
        TaxRate, on_delete=models.SET_NULL, null=True, blank=True, related_name='appointments',
    )
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=0,
        help_text='Discounted subtotal plus tax',
    )

    notes = models.TextField(blank=True)

    class Meta:
        verbose_name = 'Appointment'
        verbose_name_plural = 'Appointments'
        ordering = ['-start_time']

    def __str__(self):
        return f"#{self.id_short} | {self.customer.name} | {self.start_time:%Y-%m-%d %H:%M}"

    @property
    def id_short(self):
        return str(self.id)[:8].upper()

    # ── State transition helpers ──────────────────────────────────────────────

    def mark_paid(self, changed_by='system'):
        self._transition(AppointmentStatus.PAID, changed_by)
        self.save(update_fields=['status', 'updated_at'])

    def complete(self, changed_by='admin'):
        self._transition(AppointmentStatus.COMPLETED, changed_by)
        self.save(update_fields=['status', 'updated_at'])

    def cancel(self, changed_by='admin', reason=''):
        self._transition(AppointmentStatus.CANCELLED, changed_by, reason)
        self.save(update_fields=['status', 'updated_at'])

    def _transition(self, new_status, changed_by, reason=''):
        old_status = self.status
        self.status = new_status
        AppointmentStatusLog.objects.create(
            appointment=self,
            from_status=old_status,
            to_status=new_status,
            changed_by=changed_by,
            reason=reason,
        )


class Booking(UUIDModel, TimestampedModel):
    """One line of an appointment, priced after its share of the discounts."""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='bookings')
    line_key = models.CharField(max_length=80)
    service = models.ForeignKey(
        Service, on_delete=models.PROTECT, null=True, blank=True, related_name='bookings',
    )
    package = models.ForeignKey(
        Package, on_delete=models.PROTECT, null=True, blank=True, related_name='bookings',
    )
    employee = models.ForeignKey(
        Employee, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings',
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    original_price = models.DecimalField(max_digits=12, decimal_places=2)
    price_paid = models.DecimalField(max_digits=12, decimal_places=2)
    is_customized = models.BooleanField(default=False)

    class Meta:
        verbose_name = 'Booking'
        verbose_name_plural = 'Bookings'
        ordering = ['start_time']

    def __str__(self):
        item = self.service.name if self.service_id else (self.package.name if self.package_id else self.line_key)
        return f"{item} @ {self.start_time:%H:%M} - {self.price_paid}"


class AppointmentStatusLog(UUIDModel):
    """Immutable audit trail of every status transition on an appointment."""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='status_logs')
    from_status = models.CharField(max_length=10, choices=AppointmentStatus.choices, blank=True)
    to_status = models.CharField(max_length=10, choices=AppointmentStatus.choices)
    changed_by = models.CharField(max_length=80, help_text='system / admin / username')
    reason = models.TextField(blank=True)
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Appointment Status Log'
        verbose_name_plural = 'Appointment Status Logs'
        ordering = ['changed_at']

    def __str__(self):
        return f"Appointment {str(self.appointment_id)[:8]}: {self.from_status} → {self.to_status}"
