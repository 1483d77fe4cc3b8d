"""
Payroll models:
  - Employee           : stylist / therapist who performs services
  - EmployeeCompensation : monthly salary history with effective dates
  - ServiceCommission  : flat per-service commission percentage
  - CommissionTemplate : reusable tiered schedule
  - CommissionSlabRow  : one revenue band, owned by a template or an employee
  - PayPeriod / PayRun / PayRunItem : what each employee is owed for a period
"""
from django.db import models
from django.core.validators import MaxValueValidator, MinValueValidator
from apps.core.models import BaseModel, TimestampedModel, UUIDModel
from apps.catalog.models import Service

from .slabs import CommissionSlab


class CommissionType(models.TextChoices):
    NONE   = 'none',   'No commission'
    FLAT   = 'flat',   'Flat per service'
    TIERED = 'tiered', 'Tiered by revenue'


class CommissionTemplate(BaseModel):
    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True)

    class Meta:
        verbose_name = 'Commission Template'
        verbose_name_plural = 'Commission Templates'
        ordering = ['name']

    def __str__(self):
        return self.name

    def slab_records(self):
        return [row.as_slab() for row in self.slabs.all()]


class Employee(BaseModel):
    name = models.CharField(max_length=120)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    commission_type = models.CharField(
        max_length=10, choices=CommissionType.choices, default=CommissionType.NONE,
    )
    commission_template = models.ForeignKey(
        CommissionTemplate, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='employees',
    )

    class Meta:
        verbose_name = 'Employee'
        verbose_name_plural = 'Employees'
        ordering = ['name']

    def __str__(self):
        return self.name

    def slab_records(self):
        """Own slabs win over the template's."""
        own = [row.as_slab() for row in self.slabs.all()]
        if own:
            return own
        if self.commission_template_id:
            return self.commission_template.slab_records()
        return []


class EmployeeCompensation(UUIDModel, TimestampedModel):
    """
    One monthly salary and the dates it applied. The open entry
    (effective_to is null) is the current salary.
    """
    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='compensations')
    base_amount = models.DecimalField(max_digits=12, decimal_places=2)
    effective_from = models.DateField()
    effective_to = models.DateField(null=True, blank=True)

    class Meta:
        verbose_name = 'Employee Compensation'
        verbose_name_plural = 'Employee Compensation'
        ordering = ['-effective_from']

    def __str__(self):
        until = self.effective_to or 'now'
        return f"{self.employee.name}: {self.base_amount}/month from {self.effective_from} to {until}"


class ServiceCommission(UUIDModel):
    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='service_commissions')
    service = models.ForeignKey(Service, on_delete=models.CASCADE, related_name='commissions')
    percentage = models.DecimalField(
        max_digits=5, decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )

    class Meta:
        unique_together = [('employee', 'service')]

    def __str__(self):
        return f"{self.employee.name} - {self.service.name}: {self.percentage}%"


class CommissionSlabRow(UUIDModel):
    template = models.ForeignKey(
        CommissionTemplate, on_delete=models.CASCADE,
        null=True, blank=True, related_name='slabs',
    )
    employee = models.ForeignKey(
        Employee, on_delete=models.CASCADE,
        null=True, blank=True, related_name='slabs',
    )
    min_amount = models.DecimalField(max_digits=12, decimal_places=2)
    max_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    percentage = models.DecimalField(max_digits=5, decimal_places=2)
    order = models.PositiveIntegerField(default=1)

    class Meta:
        verbose_name = 'Commission Slab'
        verbose_name_plural = 'Commission Slabs'
        ordering = ['order', 'min_amount']

    def __str__(self):
        upper = self.max_amount if self.max_amount is not None else '∞'
        return f"{self.min_amount}–{upper}: {self.percentage}%"

    def as_slab(self) -> CommissionSlab:
        return CommissionSlab(self.min_amount, self.max_amount, self.percentage)


class PayPeriod(UUIDModel, TimestampedModel):
    start_date = models.DateField()
    end_date = models.DateField()
    is_closed = models.BooleanField(default=False)

    class Meta:
        verbose_name = 'Pay Period'
        verbose_name_plural = 'Pay Periods'
        ordering = ['-start_date']

    def __str__(self):
        return f"{self.start_date} → {self.end_date}"


class PayRunStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    PAID  = 'paid',  'Paid'


class PayRun(UUIDModel, TimestampedModel):
    pay_period = models.ForeignKey(PayPeriod, on_delete=models.PROTECT, related_name='pay_runs')
    status = models.CharField(max_length=10, choices=PayRunStatus.choices, default=PayRunStatus.DRAFT)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = 'Pay Run'
        verbose_name_plural = 'Pay Runs'
        ordering = ['-created_at']

    def __str__(self):
        return f"Pay run {self.pay_period} [{self.status}]"


class CompensationType(models.TextChoices):
    WAGES      = 'wages',      'Wages'
    COMMISSION = 'commission', 'Commission'
    TIPS       = 'tips',       'Tips'
    OTHER      = 'other',      'Other'


class SourceType(models.TextChoices):
    APPOINTMENT = 'appointment', 'Appointment'
    SALARY      = 'salary',      'Salary'
    MANUAL      = 'manual',      'Manual adjustment'


class PayRunItem(UUIDModel, TimestampedModel):
    """One signed amount owed to an employee. Deductions are negative."""
    pay_run = models.ForeignKey(PayRun, on_delete=models.CASCADE, related_name='items')
    employee = models.ForeignKey(Employee, on_delete=models.PROTECT, related_name='pay_run_items')
    compensation_type = models.CharField(max_length=12, choices=CompensationType.choices)
    source_type = models.CharField(max_length=12, choices=SourceType.choices, default=SourceType.MANUAL)
    source_id = models.CharField(max_length=64, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.CharField(max_length=255, blank=True)
    is_paid = models.BooleanField(default=False)

    class Meta:
        verbose_name = 'Pay Run Item'
        verbose_name_plural = 'Pay Run Items'
        ordering = ['employee__name', 'compensation_type']

    def __str__(self):
        return f"{self.employee.name}: {self.compensation_type} {self.amount}"
