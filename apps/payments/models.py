"""
Payment model - one Payment per Appointment.

Cash payments are captured the moment they are recorded. Online payments
start as a Razorpay order (CREATED) and are captured once the checkout
callback's signature checks out.

The Razorpay ids are nullable for cash payments, so uniqueness is enforced
with conditional UniqueConstraints rather than field-level unique=True.
"""
from django.db import models
from apps.core.models import UUIDModel, TimestampedModel
from apps.bookings.models import Appointment, PaymentMethod


class PaymentStatus(models.TextChoices):
    CREATED   = 'CREATED',   'Created'
    CAPTURED  = 'CAPTURED',  'Captured'
    FAILED    = 'FAILED',    'Failed'
    REFUNDED  = 'REFUNDED',  'Refunded'


class Payment(UUIDModel, TimestampedModel):
    appointment = models.OneToOneField(
        Appointment, on_delete=models.CASCADE, related_name='payment',
    )
    method = models.CharField(max_length=10, choices=PaymentMethod.choices)
    razorpay_order_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    razorpay_payment_id = models.CharField(max_length=100, blank=True, null=True)
    razorpay_signature = models.CharField(max_length=255, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='INR')
    status = models.CharField(
        max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.CREATED,
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = 'Payment'
        verbose_name_plural = 'Payments'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['razorpay_order_id'],
                condition=models.Q(razorpay_order_id__isnull=False),
                name='uq_payment_razorpay_order_id',
            ),
            models.UniqueConstraint(
                fields=['razorpay_payment_id'],
                condition=models.Q(razorpay_payment_id__isnull=False),
                name='uq_payment_razorpay_payment_id',
            ),
        ]

    def __str__(self):
        return f"Payment {self.method} [{self.status}] - {self.currency} {self.amount}"

    @property
    def amount_subunits(self) -> int:
        """Razorpay works in the currency's smallest unit (paise)."""
        return int(self.amount * 100)
