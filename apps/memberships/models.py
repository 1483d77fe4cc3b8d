"""
Membership plans and the customers who hold them.

A plan gives either a percentage or a flat discount, optionally gated by a
minimum bill and capped by a maximum discount. Empty applicable_services /
applicable_packages lists mean the plan applies to everything.
"""
from datetime import timedelta
from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
from apps.core.models import BaseModel, UUIDModel, TimestampedModel
from apps.catalog.models import Package, Service
from apps.customers.models import Customer


class MembershipDiscountType(models.TextChoices):
    PERCENTAGE = 'percentage', 'Percentage'
    FIXED      = 'fixed',      'Fixed amount'


class Membership(BaseModel):
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    discount_type = models.CharField(
        max_length=10, choices=MembershipDiscountType.choices,
        default=MembershipDiscountType.PERCENTAGE,
    )
    discount_value = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(0)],
    )
    min_billing_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True,
        help_text='Bill must reach this amount before the plan applies',
    )
    max_discount_value = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True,
        help_text='Upper bound on the discount for one checkout',
    )
    applicable_services = models.ManyToManyField(Service, blank=True, related_name='memberships')
    applicable_packages = models.ManyToManyField(Package, blank=True, related_name='memberships')
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    validity_days = models.PositiveIntegerField(default=365)

    class Meta:
        verbose_name = 'Membership'
        verbose_name_plural = 'Memberships'
        ordering = ['name']

    def __str__(self):
        return self.name


class CustomerMembershipStatus(models.TextChoices):
    ACTIVE    = 'active',    'Active'
    EXPIRED   = 'expired',   'Expired'
    CANCELLED = 'cancelled', 'Cancelled'


class CustomerMembership(UUIDModel, TimestampedModel):
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='memberships')
    membership = models.ForeignKey(Membership, on_delete=models.PROTECT, related_name='holders')
    status = models.CharField(
        max_length=10, choices=CustomerMembershipStatus.choices,
        default=CustomerMembershipStatus.ACTIVE, db_index=True,
    )
    start_date = models.DateField(default=timezone.localdate)
    end_date = models.DateField(null=True, blank=True)

    class Meta:
        verbose_name = 'Customer Membership'
        verbose_name_plural = 'Customer Memberships'
        ordering = ['-start_date']

    def __str__(self):
        return f"{self.customer.name} - {self.membership.name} [{self.status}]"

    def save(self, *args, **kwargs):
        if self.end_date is None and self.membership_id:
            self.end_date = self.start_date + timedelta(days=self.membership.validity_days)
        super().save(*args, **kwargs)

    def covers(self, on_date) -> bool:
        if self.status != CustomerMembershipStatus.ACTIVE:
            return False
        if on_date < self.start_date:
            return False
        return self.end_date is None or on_date <= self.end_date
