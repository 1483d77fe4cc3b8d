"""
Booking engine - checkout quotes and appointment persistence.
No HTTP/request awareness.

Public API:
  resolve_coupon(code)
  resolve_tax_rate(tax_rate_id)
  price_checkout(state, services, packages, memberships=(), coupon=None, tax_rate=None, wallet=0)
  loyalty_wallet(state, customer)
  save_appointment(state, quote, changed_by='system')
  replace_bookings(appointment, totals, stylists, start_time)
  change_appointment_status(appointment, new_status, changed_by, reason='')
  load_appointment_state(appointment)
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.core.money import ZERO, allocate_money, quantize_money
from apps.customers.models import Customer
from apps.memberships.selector import NO_MEMBERSHIP_DISCOUNT, MembershipDiscount, select_best_membership
from apps.payroll.models import Employee

from .exceptions import (
    AppointmentSaveError,
    AppointmentStateError,
    InvalidCouponError,
    LoyaltyRedemptionError,
)
from .models import Appointment, AppointmentStatus, AppointmentStatusLog, Booking, Coupon, TaxRate
from .pricing import (
    CheckoutTotals,
    calculate_checkout_totals,
    loyalty_points_value,
    max_redeemable_points,
    points_earned,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.BOOKED:    (AppointmentStatus.PAID, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
    AppointmentStatus.PAID:      (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
    AppointmentStatus.COMPLETED: (),
    AppointmentStatus.CANCELLED: (),
}


# ── Lookups ───────────────────────────────────────────────────────────────────

def resolve_coupon(code) -> Optional[Coupon]:
    """Active coupon for `code`; None for an empty code. Raises InvalidCouponError."""
    code = (code or '').strip().upper()
    if not code:
        return None
    coupon = Coupon.objects.active().filter(code__iexact=code).first()
    if coupon is None:
        raise InvalidCouponError(f"Coupon {code} is not valid.")
    return coupon


def resolve_tax_rate(tax_rate_id) -> Optional[TaxRate]:
    if not tax_rate_id:
        return None
    return TaxRate.objects.active().filter(id=tax_rate_id).first()


def loyalty_wallet(state, customer) -> int:
    """
    Points this checkout may spend. When editing the customer's own booked
    appointment, the points it already redeemed count as available again.
    """
    if customer is None:
        return 0
    wallet = customer.loyalty_points
    if state.appointment_id:
        previous = (
            Appointment.objects
            .filter(pk=state.appointment_id, customer=customer, status=AppointmentStatus.BOOKED)
            .values_list('loyalty_points_redeemed', flat=True)
            .first()
        )
        wallet += previous or 0
    return wallet


# ── Quote ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CheckoutQuote:
    totals: CheckoutTotals
    membership: MembershipDiscount = NO_MEMBERSHIP_DISCOUNT
    coupon: Optional[Coupon] = None
    tax_rate: Optional[TaxRate] = None
    loyalty_points: int = 0
    max_loyalty_points: int = 0

    def as_dict(self) -> dict:
        data = self.totals.as_dict()
        data.update({
            'membership': self.membership.as_dict(),
            'coupon_code': self.coupon.code if self.coupon else '',
            'tax_rate_id': str(self.tax_rate.pk) if self.tax_rate else None,
            'loyalty_points': self.loyalty_points,
            'max_loyalty_points': self.max_loyalty_points,
            'lines': [
                {
                    'key': line.key,
                    'name': line.name,
                    'original_price': str(line.original_price),
                    'adjusted_price': str(self.totals.adjusted_prices.get(line.key, ZERO)),
                    'duration': line.duration,
                    'package_id': line.package_id,
                    'is_customized': line.is_customized,
                }
                for line in self.totals.lines
            ],
        })
        return data


def price_checkout(state, services, packages, memberships=(), coupon=None,
                   tax_rate=None, wallet=0) -> CheckoutQuote:
    """
    Price the workflow's basket: best membership, manual discount, coupon,
    loyalty redemption and tax.

    Raises LoyaltyRedemptionError when the state redeems more points than the
    customer may use on this bill.
    """
    customized = state.customized_map()
    best = select_best_membership(
        list(memberships), list(state.service_ids), list(state.package_ids),
        services, packages, customized,
    )
    kwargs = dict(
        customized_services=customized,
        discount_type=state.discount_type,
        discount_value=state.discount_value,
        membership_discount=best.discount_amount,
        coupon_type=coupon.discount_type if coupon else None,
        coupon_value=coupon.discount_value if coupon else 0,
        tax_rate=tax_rate.percentage if tax_rate else 0,
    )
    before_loyalty = calculate_checkout_totals(
        list(state.service_ids), list(state.package_ids), services, packages, **kwargs,
    )

    allowed = max_redeemable_points(
        wallet, before_loyalty.discounted_subtotal, point_value=settings.LOYALTY_POINT_VALUE,
    )
    if state.loyalty_points > allowed:
        raise LoyaltyRedemptionError(f"At most {allowed} loyalty points can be redeemed on this bill.")

    totals = before_loyalty
    if state.loyalty_points:
        totals = calculate_checkout_totals(
            list(state.service_ids), list(state.package_ids), services, packages,
            loyalty_value=loyalty_points_value(state.loyalty_points, settings.LOYALTY_POINT_VALUE),
            **kwargs,
        )

    return CheckoutQuote(
        totals=totals,
        membership=best,
        coupon=coupon,
        tax_rate=tax_rate,
        loyalty_points=state.loyalty_points,
        max_loyalty_points=allowed,
    )


# ── Persistence ───────────────────────────────────────────────────────────────

def _start_time(value):
    start = parse_datetime(value) if value else None
    if start is None:
        return timezone.now()
    if timezone.is_naive(start):
        start = timezone.make_aware(start)
    return start


def replace_bookings(appointment, totals: CheckoutTotals, stylists, start_time) -> list:
    """
    Delete the appointment's lines and write one Booking per checkout line,
    back to back from `start_time`. Line prices are shared out to the cent
    so they add up to the discounted subtotal and none goes negative.
    """
    appointment.bookings.all().delete()

    lines = totals.lines
    employee_ids = {str(v) for v in (stylists or {}).values() if v}
    employees = {str(pk): e for pk, e in Employee.objects.active().in_bulk(employee_ids).items()}

    prices = allocate_money(
        [totals.adjusted_prices.get(line.key, ZERO) for line in lines], totals.discounted_subtotal,
    )
    cursor = start_time
    created = []
    for line, price_paid in zip(lines, prices):
        end = cursor + timedelta(minutes=line.duration)
        stylist_id = stylists.get(line.package_id or line.service_id) if stylists else None
        created.append(Booking.objects.create(
            appointment=appointment,
            line_key=line.key,
            service_id=line.service_id,
            package_id=line.package_id,
            employee=employees.get(str(stylist_id)) if stylist_id else None,
            start_time=cursor,
            end_time=end,
            original_price=quantize_money(line.original_price),
            price_paid=price_paid,
            is_customized=line.is_customized,
        ))
        cursor = end
    return created


def _apply_quote(appointment, state, quote: CheckoutQuote):
    totals = quote.totals
    appointment.total_duration = totals.total_duration
    appointment.end_time = appointment.start_time + timedelta(minutes=totals.total_duration)
    appointment.payment_method = state.payment_method
    appointment.subtotal = quantize_money(totals.subtotal)
    appointment.discount_type = state.discount_type
    appointment.discount_value = quantize_money(state.discount_value)
    appointment.manual_discount = quantize_money(totals.manual_discount)
    appointment.membership_id = quote.membership.membership_id
    appointment.membership_discount = quantize_money(totals.membership_discount)
    appointment.coupon = quote.coupon
    appointment.coupon_discount = quantize_money(totals.coupon_discount)
    appointment.loyalty_points_redeemed = quote.loyalty_points
    appointment.loyalty_discount = quantize_money(totals.loyalty_discount)
    appointment.tax_rate = quote.tax_rate
    appointment.tax_amount = quantize_money(totals.tax_amount)
    appointment.total_price = quantize_money(totals.discounted_subtotal) + quantize_money(totals.tax_amount)
    appointment.notes = state.notes


def _settle_loyalty(customer, quote: CheckoutQuote):
    earned = points_earned(quote.totals.grand_total, settings.LOYALTY_POINTS_PER_SPEND)
    if not quote.loyalty_points and not earned:
        return
    customer.loyalty_points = max(0, customer.loyalty_points - quote.loyalty_points) + earned
    customer.save(update_fields=['loyalty_points', 'updated_at'])


def _rebalance_loyalty(previous_customer_id, previous_points, customer, quote: CheckoutQuote):
    """
    An edit refunds what the appointment redeemed before and debits the new
    redemption. Points earned at creation stay as they were.
    """
    if previous_customer_id != customer.pk:
        if previous_points:
            Customer.objects.filter(pk=previous_customer_id).update(
                loyalty_points=F('loyalty_points') + previous_points,
            )
        previous_points = 0

    delta = quote.loyalty_points - previous_points
    if not delta:
        return
    customer.loyalty_points = max(0, customer.loyalty_points - delta)
    customer.save(update_fields=['loyalty_points', 'updated_at'])


def save_appointment(state, quote: CheckoutQuote, changed_by='system') -> Appointment:
    """
    Persist the workflow as an Appointment plus its Booking lines.

    A state that already carries appointment_id updates that appointment and
    replaces its lines. Points are debited and earned on creation; an edit
    only settles the change in redeemed points. Everything is written in one
    transaction.

    Raises AppointmentSaveError when the customer or appointment is missing,
    the appointment can no longer be edited, or the database rejects a write.
    """
    try:
        customer = Customer.objects.get(pk=state.customer_id)
    except (Customer.DoesNotExist, ValidationError, ValueError, TypeError) as exc:
        raise AppointmentSaveError('The selected customer no longer exists.') from exc

    try:
        with transaction.atomic():
            if state.appointment_id:
                appointment = (
                    Appointment.objects.select_for_update()
                    .filter(pk=state.appointment_id).first()
                )
                if appointment is None:
                    raise AppointmentSaveError('The appointment being edited no longer exists.')
                if appointment.status != AppointmentStatus.BOOKED:
                    raise AppointmentSaveError('Only booked appointments can be edited.')
                created = False
                previous_customer_id = appointment.customer_id
                previous_points = appointment.loyalty_points_redeemed
            else:
                appointment = Appointment(customer=customer, start_time=_start_time(state.start_time))
                created = True

            appointment.customer = customer
            if state.start_time:
                appointment.start_time = _start_time(state.start_time)
            _apply_quote(appointment, state, quote)
            appointment.save()

            replace_bookings(appointment, quote.totals, state.stylists, appointment.start_time)

            if created:
                AppointmentStatusLog.objects.create(
                    appointment=appointment,
                    from_status='',
                    to_status=AppointmentStatus.BOOKED,
                    changed_by=changed_by,
                    reason='Created at checkout',
                )
                _settle_loyalty(customer, quote)
            else:
                _rebalance_loyalty(previous_customer_id, previous_points, customer, quote)
    except DatabaseError as exc:
        logger.exception('Saving appointment for customer %s failed', customer.pk)
        raise AppointmentSaveError('The appointment could not be saved. Please try again.') from exc

    logger.info(
        '%s appointment %s for customer %s (%s)',
        'Created' if created else 'Updated', appointment.pk, customer.pk, appointment.total_price,
    )
    return appointment


def change_appointment_status(appointment, new_status, changed_by, reason='') -> Appointment:
    """Raises AppointmentStateError when the move is not allowed from the current status."""
    if new_status not in ALLOWED_TRANSITIONS.get(appointment.status, ()):
        raise AppointmentStateError(
            f"Cannot move appointment from {appointment.get_status_display()} to {new_status}."
        )
    if new_status == AppointmentStatus.PAID:
        appointment.mark_paid(changed_by=changed_by)
    elif new_status == AppointmentStatus.COMPLETED:
        appointment.complete(changed_by=changed_by)
    else:
        appointment.cancel(changed_by=changed_by, reason=reason)
    return appointment


def load_appointment_state(appointment):
    """
    Rebuild a checkout workflow from a saved appointment so it can be edited.
    Returns None for appointments that are no longer editable.
    """
    from .workflow import Screen, WorkflowState

    if appointment.status != AppointmentStatus.BOOKED:
        return None

    service_ids, package_ids, customized, stylists = [], [], {}, {}
    for booking in appointment.bookings.all():
        if booking.package_id:
            package_id = str(booking.package_id)
            if package_id not in package_ids:
                package_ids.append(package_id)
            if booking.is_customized and booking.service_id:
                customized.setdefault(package_id, []).append(str(booking.service_id))
            item_id = package_id
        elif booking.service_id:
            item_id = str(booking.service_id)
            service_ids.append(item_id)
        else:
            continue
        if booking.employee_id:
            stylists.setdefault(item_id, str(booking.employee_id))

    return WorkflowState(
        screen=Screen.CHECKOUT,
        customer_id=str(appointment.customer_id),
        service_ids=tuple(service_ids),
        package_ids=tuple(package_ids),
        customized_services={k: tuple(v) for k, v in customized.items()},
        stylists=stylists,
        discount_type=appointment.discount_type,
        discount_value=appointment.discount_value,
        coupon_code=appointment.coupon.code if appointment.coupon_id else '',
        tax_rate_id=str(appointment.tax_rate_id) if appointment.tax_rate_id else None,
        payment_method=appointment.payment_method,
        loyalty_points=appointment.loyalty_points_redeemed,
        notes=appointment.notes,
        start_time=timezone.localtime(appointment.start_time).strftime('%Y-%m-%dT%H:%M'),
        appointment_id=str(appointment.pk),
    )
