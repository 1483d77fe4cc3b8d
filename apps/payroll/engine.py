"""
Payroll engine - database writes for commission schedules and pay runs.
No HTTP/request awareness.

Public API:
  save_commission_template(name, slabs, description='', template=None, on_error=None)
  save_employee_slabs(employee, slabs, on_error=None)
  set_employee_compensation(employee, base_amount, effective_from)
  employee_wages(employee, start_date, end_date)
  employee_revenue(employee, start_date, end_date)
  create_pay_run(pay_period)
  add_adjustment(pay_run, employee, amount, compensation_type, description='', deduction=False)
  pay_run_summary(pay_run)
  mark_pay_run_paid(pay_run)
"""
import calendar
import logging
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.bookings.models import AppointmentStatus, Booking
from apps.core.money import ZERO, quantize_money, to_decimal

from .commissions import flat_commission, slab_for_amount, tiered_commission
from .exceptions import (
    InvalidAdjustmentError,
    InvalidCompensationError,
    PayPeriodClosedError,
    PayRunLockedError,
)
from .models import (
    CommissionSlabRow,
    CommissionTemplate,
    CommissionType,
    CompensationType,
    Employee,
    EmployeeCompensation,
    PayRun,
    PayRunItem,
    PayRunStatus,
    SourceType,
)
from .slabs import sort_slabs, validate_slabs

logger = logging.getLogger(__name__)

# Only revenue the salon actually collected earns commission
EARNING_STATUSES = (AppointmentStatus.PAID, AppointmentStatus.COMPLETED)


# ── Commission schedules ──────────────────────────────────────────────────────

def _write_slab_rows(slabs, **owner):
    CommissionSlabRow.objects.filter(**owner).delete()
    for order, slab in enumerate(sort_slabs(slabs), start=1):
        CommissionSlabRow.objects.create(
            min_amount=slab.min_amount,
            max_amount=slab.max_amount,
            percentage=slab.percentage,
            order=order,
            **owner,
        )


@transaction.atomic
def save_commission_template(name, slabs, description='', template=None, on_error=None):
    """
    Create or update a template and replace its slabs. Returns None without
    writing anything when the slabs are invalid; the first problem goes to
    `on_error`.
    """
    if not validate_slabs(slabs, on_error):
        return None

    if template is None:
        template = CommissionTemplate.objects.create(name=name, description=description)
    else:
        template.name = name
        template.description = description
        template.save(update_fields=['name', 'description', 'updated_at'])

    _write_slab_rows(slabs, template=template)
    logger.info('Saved commission template %s with %d slabs', template.pk, len(slabs))
    return template


@transaction.atomic
def save_employee_slabs(employee, slabs, on_error=None):
    """Give an employee their own tiered schedule, overriding any template."""
    if not validate_slabs(slabs, on_error):
        return None
    _write_slab_rows(slabs, employee=employee)
    if employee.commission_type != CommissionType.TIERED:
        employee.commission_type = CommissionType.TIERED
        employee.save(update_fields=['commission_type', 'updated_at'])
    return employee


# ── Compensation ──────────────────────────────────────────────────────────────

@transaction.atomic
def set_employee_compensation(employee, base_amount, effective_from) -> EmployeeCompensation:
    """
    Start a new monthly salary on `effective_from`. The current salary, if
    any, ends the day before.

    Raises InvalidCompensationError if the amount is not positive or the new
    salary does not start after the current one.
    """
    amount = to_decimal(base_amount)
    if amount <= 0:
        raise InvalidCompensationError("Monthly salary must be greater than zero.")

    current = (
        EmployeeCompensation.objects.select_for_update()
        .filter(employee=employee, effective_to__isnull=True)
        .first()
    )
    if current is not None:
        if effective_from <= current.effective_from:
            raise InvalidCompensationError(
                f"A new salary must start after {current.effective_from.isoformat()}."
            )
        current.effective_to = effective_from - timedelta(days=1)
        current.save(update_fields=['effective_to', 'updated_at'])

    compensation = EmployeeCompensation.objects.create(
        employee=employee,
        base_amount=quantize_money(amount),
        effective_from=effective_from,
    )
    logger.info('Set salary %s for employee %s from %s', compensation.base_amount, employee.pk, effective_from)
    return compensation


def _prorated_salary(base_amount, start, end) -> Decimal:
    """Monthly salary for start..end inclusive, by the share of each calendar month covered."""
    total = ZERO
    day = start
    while day <= end:
        days_in_month = calendar.monthrange(day.year, day.month)[1]
        segment_end = min(end, day.replace(day=days_in_month))
        covered = (segment_end - day).days + 1
        total += base_amount * covered / days_in_month
        day = segment_end + timedelta(days=1)
    return total


def employee_wages(employee, start_date, end_date) -> Decimal:
    """Salary owed for the period across every compensation entry that overlaps it."""
    total = ZERO
    for entry in employee.compensations.all():
        start = max(entry.effective_from, start_date)
        end = min(entry.effective_to or end_date, end_date)
        if start <= end:
            total += _prorated_salary(entry.base_amount, start, end)
    return quantize_money(total)


# ── Revenue ───────────────────────────────────────────────────────────────────

def _earning_bookings(employee, start_date, end_date):
    return Booking.objects.filter(
        employee=employee,
        appointment__status__in=EARNING_STATUSES,
        start_time__date__gte=start_date,
        start_time__date__lte=end_date,
    )


def employee_revenue(employee, start_date, end_date) -> Decimal:
    """What the employee's serviced lines actually brought in, after discounts."""
    total = _earning_bookings(employee, start_date, end_date).aggregate(total=Sum('price_paid'))['total']
    return to_decimal(total)


# ── Pay runs ──────────────────────────────────────────────────────────────────

def _commission_items(pay_run, employee, start_date, end_date):
    bookings = list(_earning_bookings(employee, start_date, end_date))
    if not bookings:
        return []

    if employee.commission_type == CommissionType.FLAT:
        rates = {
            str(sc.service_id): sc.percentage
            for sc in employee.service_commissions.all()
        }
        items = []
        for booking in bookings:
            amount = quantize_money(flat_commission([(booking.service_id, booking.price_paid)], rates))
            if amount <= 0:
                continue
            items.append(PayRunItem(
                pay_run=pay_run,
                employee=employee,
                compensation_type=CompensationType.COMMISSION,
                source_type=SourceType.APPOINTMENT,
                source_id=str(booking.appointment_id),
                amount=amount,
                description=f"Commission on {booking.line_key}",
            ))
        return items

    if employee.commission_type == CommissionType.TIERED:
        slabs = employee.slab_records()
        revenue = sum((b.price_paid for b in bookings), ZERO)
        amount = quantize_money(tiered_commission(revenue, slabs))
        if amount <= 0:
            return []
        slab = slab_for_amount(slabs, revenue)
        return [PayRunItem(
            pay_run=pay_run,
            employee=employee,
            compensation_type=CompensationType.COMMISSION,
            source_type=SourceType.APPOINTMENT,
            amount=amount,
            description=f"Tiered commission: {slab.percentage}% of {quantize_money(revenue)}",
        )]

    return []


def _wages_items(pay_run, employee, start_date, end_date):
    amount = employee_wages(employee, start_date, end_date)
    if amount <= 0:
        return []
    return [PayRunItem(
        pay_run=pay_run,
        employee=employee,
        compensation_type=CompensationType.WAGES,
        source_type=SourceType.SALARY,
        amount=amount,
        description=f"Salary {start_date.isoformat()} to {end_date.isoformat()}",
    )]


@transaction.atomic
def create_pay_run(pay_period) -> PayRun:
    """
    Open a draft pay run for the period: one wages item per salaried
    employee, plus one commission item per earning line (flat) or per
    employee (tiered).

    Raises PayPeriodClosedError if the period has already been paid out.
    """
    if pay_period.is_closed:
        raise PayPeriodClosedError(f"Pay period {pay_period} is already closed.")

    pay_run = PayRun.objects.create(pay_period=pay_period)
    start, end = pay_period.start_date, pay_period.end_date
    items = []
    employees = Employee.objects.active().prefetch_related('service_commissions', 'slabs', 'compensations')
    for employee in employees:
        items.extend(_wages_items(pay_run, employee, start, end))
        if employee.commission_type != CommissionType.NONE:
            items.extend(_commission_items(pay_run, employee, start, end))

    PayRunItem.objects.bulk_create(items)
    logger.info('Created pay run %s with %d items', pay_run.pk, len(items))
    return pay_run


def add_adjustment(pay_run, employee, amount, compensation_type=CompensationType.OTHER,
                   description='', deduction=False) -> PayRunItem:
    """
    Add a manual line. `amount` is entered positive; deductions are stored
    negative.

    Raises:
      PayRunLockedError      - the pay run is already paid
      InvalidAdjustmentError - amount is zero or negative
    """
    if pay_run.status == PayRunStatus.PAID:
        raise PayRunLockedError("This pay run has already been paid.")

    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidAdjustmentError("Adjustment amount must be greater than zero.")

    return PayRunItem.objects.create(
        pay_run=pay_run,
        employee=employee,
        compensation_type=compensation_type,
        source_type=SourceType.MANUAL,
        amount=quantize_money(-amount if deduction else amount),
        description=description,
    )


def pay_run_summary(pay_run) -> list:
    """
    Per-employee totals, one dict per employee ordered by name:
      {'employee_id', 'employee_name', 'wages', 'commission', 'tips', 'other', 'total'}
    """
    rows = OrderedDict()
    items = pay_run.items.select_related('employee').order_by('employee__name')
    for item in items:
        row = rows.get(item.employee_id)
        if row is None:
            row = {
                'employee_id': str(item.employee_id),
                'employee_name': item.employee.name,
                'total': ZERO,
            }
            row.update({choice: ZERO for choice in CompensationType.values})
            rows[item.employee_id] = row
        row[item.compensation_type] += item.amount
        row['total'] += item.amount
    return list(rows.values())


@transaction.atomic
def mark_pay_run_paid(pay_run) -> PayRun:
    """Settle every item and close the period. Raises PayRunLockedError if already paid."""
    if pay_run.status == PayRunStatus.PAID:
        raise PayRunLockedError("This pay run has already been paid.")

    now = timezone.now()
    pay_run.items.update(is_paid=True, updated_at=now)
    pay_run.status = PayRunStatus.PAID
    pay_run.paid_at = now
    pay_run.save(update_fields=['status', 'paid_at', 'updated_at'])

    period = pay_run.pay_period
    period.is_closed = True
    period.save(update_fields=['is_closed', 'updated_at'])
    logger.info('Pay run %s marked paid', pay_run.pk)
    return pay_run
