"""
Customer model. The salon front desk identifies customers by mobile number,
so the normalised phone is the deduplication key.
"""
import re
from django.conf import settings
from django.db import models
from apps.core.models import UUIDModel, TimestampedModel


def normalize_phone(raw: str) -> str:
    """
    Reduce a mobile number to its national significant digits.

    `+91 98765 43210`, `091-9876543210`, `09876543210` and `9876543210` all
    become `9876543210` with the default PHONE_COUNTRY_CODE of 91.

    Raises ValueError when the result is not PHONE_DIGITS long.
    """
    country = getattr(settings, 'PHONE_COUNTRY_CODE', '91')
    length = getattr(settings, 'PHONE_DIGITS', 10)
    digits = re.sub(r'\D', '', raw or '')

    for prefix in ('00' + country, '0' + country, country, '0'):
        if len(digits) == length + len(prefix) and digits.startswith(prefix):
            digits = digits[len(prefix):]
            break

    if len(digits) != length:
        raise ValueError(
            f"Cannot normalise phone number {raw!r}: "
            f"expected {length} digits, got {len(digits)}."
        )
    return digits


class Customer(UUIDModel, TimestampedModel):
    name = models.CharField(max_length=120)
    phone = models.CharField(max_length=20, unique=True)
    email = models.EmailField(blank=True)
    loyalty_points = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)

    class Meta:
        verbose_name = 'Customer'
        verbose_name_plural = 'Customers'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.phone})"

    @classmethod
    def get_or_create_by_phone(cls, name, phone, email=''):
        """
        Look the customer up by normalised phone, creating them if needed.
        A later visit refreshes name and email when they were supplied.
        """
        phone = normalize_phone(phone)
        customer, created = cls.objects.get_or_create(
            phone=phone,
            defaults={'name': name, 'email': email},
        )
        if not created:
            changed = []
            if name and customer.name != name:
                customer.name = name
                changed.append('name')
            if email and customer.email != email:
                customer.email = email
                changed.append('email')
            if changed:
                customer.save(update_fields=changed + ['updated_at'])
        return customer, created
