"""
Front-desk checkout views - staff JSON endpoints backed by the session.

Every endpoint loads the WorkflowState from the session, applies one
reducer, stores the result and answers with the state plus a fresh price
quote. Guard failures come back as 400 with the state unchanged.
"""
import logging
import uuid

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from apps.catalog.records import load_catalog
from apps.core.decorators import staff_required
from apps.customers.models import Customer
from apps.memberships.selector import load_active_memberships
from apps.notifications.emails import send_appointment_cancelled, send_appointment_confirmed
from apps.payments.engine import create_online_order, record_cash_payment
from apps.payments.exceptions import PaymentError
from apps.payments.views import order_payload
from apps.payroll.models import Employee

from .engine import (
    change_appointment_status,
    load_appointment_state,
    loyalty_wallet,
    price_checkout,
    resolve_coupon,
    resolve_tax_rate,
    save_appointment,
)
from .exceptions import BookingEngineError
from .forms import CheckoutForm, CustomerForm, DiscountForm
from .models import Appointment, AppointmentStatus, PaymentMethod
from .session import clear_workflow, get_workflow, save_workflow
from . import workflow as wf

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _customer(state):
    if not state.customer_id:
        return None
    return Customer.objects.filter(pk=state.customer_id).first()


def _quote(state):
    """Price the current basket. Raises BookingEngineError for a bad coupon or redemption."""
    services, packages = load_catalog()
    customer = _customer(state)
    return price_checkout(
        state, services, packages,
        memberships=load_active_memberships(customer),
        coupon=resolve_coupon(state.coupon_code),
        tax_rate=resolve_tax_rate(state.tax_rate_id),
        wallet=loyalty_wallet(state, customer),
    )


def _respond(state, error=None, status=200, **extra):
    payload = {'state': state.as_dict()}
    if state.has_selection:
        try:
            payload['quote'] = _quote(state).as_dict()
        except BookingEngineError as exc:
            error = error or str(exc)
            status = 400 if status == 200 else status
    if error:
        payload['error'] = error
    payload.update(extra)
    return JsonResponse(payload, status=status)


def _apply(request, new_state):
    save_workflow(request, new_state)
    return _respond(new_state)


def _apply_transition(request, transition):
    if transition.error:
        return _respond(transition.state, error=transition.error, status=400)
    return _apply(request, transition.state)


def _check_quote(state):
    """Message for a coupon or loyalty problem in `state`, or None."""
    if not state.has_selection:
        return None
    try:
        _quote(state)
    except BookingEngineError as exc:
        return str(exc)
    return None


# ─────────────────────────────────────────────────────────────────────────────
# State
# ─────────────────────────────────────────────────────────────────────────────

@require_GET
@staff_required
def checkout_state(request):
    return _respond(get_workflow(request))


@require_POST
@staff_required
def checkout_reset(request):
    clear_workflow(request)
    return _respond(wf.INITIAL_STATE)


# ─────────────────────────────────────────────────────────────────────────────
# Service selection screen
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@staff_required
def select_customer(request):
    """Pick an existing customer by id, or look up / create one by phone."""
    state = get_workflow(request)
    customer_id = request.POST.get('customer_id', '').strip()

    if customer_id:
        customer = Customer.objects.filter(pk=customer_id).first() if _is_uuid(customer_id) else None
        if customer is None:
            return _respond(state, error='Customer not found.', status=404)
    else:
        form = CustomerForm(request.POST)
        if not form.is_valid():
            return JsonResponse({'state': state.as_dict(), 'errors': form.errors}, status=400)
        customer, _ = Customer.get_or_create_by_phone(
            form.cleaned_data['name'], form.cleaned_data['phone'], form.cleaned_data['email'],
        )

    return _apply(request, wf.select_customer(state, customer.pk))


@require_POST
@staff_required
def toggle_item(request):
    """
    POST item_type=service|package|custom, item_id=<uuid>
    (custom also needs package_id=<uuid>).
    """
    state = get_workflow(request)
    if state.screen != wf.Screen.SERVICE_SELECTION:
        return _respond(state, error=wf.MSG_WRONG_SCREEN, status=400)

    item_type = request.POST.get('item_type')
    item_id = request.POST.get('item_id', '').strip()
    if not item_id:
        return _respond(state, error='No item selected.', status=400)

    if item_type == 'service':
        new_state = wf.toggle_service(state, item_id)
    elif item_type == 'package':
        new_state = wf.toggle_package(state, item_id)
    elif item_type == 'custom':
        new_state = wf.toggle_custom_service(state, request.POST.get('package_id', ''), item_id)
    else:
        return _respond(state, error='Unknown item type.', status=400)
    return _apply(request, new_state)


@require_POST
@staff_required
def assign_stylist(request):
    state = get_workflow(request)
    employee_id = request.POST.get('employee_id', '').strip()
    if employee_id and not (_is_uuid(employee_id) and Employee.objects.active().filter(pk=employee_id).exists()):
        return _respond(state, error='Please select a valid stylist.', status=400)
    return _apply(request, wf.assign_stylist(state, request.POST.get('item_id', ''), employee_id))


@require_POST
@staff_required
def proceed(request):
    return _apply_transition(request, wf.proceed_to_checkout(get_workflow(request)))


# ─────────────────────────────────────────────────────────────────────────────
# Checkout screen
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@staff_required
def set_discount(request):
    state = get_workflow(request)
    form = DiscountForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'state': state.as_dict(), 'errors': form.errors}, status=400)
    return _apply(request, wf.set_discount(
        state, form.cleaned_data['discount_type'], form.cleaned_data['discount_value'],
    ))


@require_POST
@staff_required
def set_details(request):
    """Coupon, tax, loyalty redemption, payment method, notes and start time."""
    state = get_workflow(request)
    form = CheckoutForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'state': state.as_dict(), 'errors': form.errors}, status=400)

    cd = form.cleaned_data
    new_state = wf.set_coupon(state, cd['coupon_code'])
    new_state = wf.set_tax_rate(new_state, cd['tax_rate_id'])
    new_state = wf.set_loyalty_points(new_state, cd['loyalty_points'])
    new_state = wf.set_payment_method(new_state, cd['payment_method'])
    new_state = wf.set_notes(new_state, cd['notes'])
    if cd['start_time']:
        new_state = wf.set_start_time(new_state, cd['start_time'].isoformat())

    error = _check_quote(new_state)
    if error:
        return _respond(state, error=error, status=400)
    return _apply(request, new_state)


@require_POST
@staff_required
def back(request):
    return _apply(request, wf.back_to_services(get_workflow(request)))


@require_POST
@staff_required
def save(request):
    """
    Persist the appointment and move to the summary. Cash is captured
    immediately; online checkouts get a Razorpay order to open on the desk.
    """
    state = get_workflow(request)
    if state.screen != wf.Screen.CHECKOUT:
        return _respond(state, error=wf.MSG_WRONG_SCREEN, status=400)
    error = wf.checkout_error(state)
    if error:
        return _respond(state, error=error, status=400)

    try:
        appointment = save_appointment(state, _quote(state), changed_by=request.user.username)
    except BookingEngineError as exc:
        return _respond(state, error=str(exc), status=400)

    transition = wf.complete_checkout(state, appointment.pk)
    if transition.error:
        return _respond(state, error=transition.error, status=400)
    save_workflow(request, transition.state)

    extra = {'appointment_id': str(appointment.pk)}
    try:
        if state.payment_method == PaymentMethod.ONLINE:
            extra['payment'] = order_payload(create_online_order(appointment), appointment)
        else:
            record_cash_payment(appointment, changed_by=request.user.username)
    except PaymentError as exc:
        # The appointment stands; payment can be retried from the summary
        logger.warning('Payment step failed for appointment %s: %s', appointment.pk, exc)
        extra['payment_error'] = str(exc)

    send_appointment_confirmed(appointment)
    return JsonResponse({'state': transition.state.as_dict(), **extra}, status=201)


# ─────────────────────────────────────────────────────────────────────────────
# Summary screen
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@staff_required
def create_another(request):
    return _apply(request, wf.create_another(get_workflow(request)))


# ─────────────────────────────────────────────────────────────────────────────
# Existing appointments
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@staff_required
def edit_appointment(request, appointment_id):
    appointment = get_object_or_404(
        Appointment.objects.select_related('coupon').prefetch_related('bookings'), id=appointment_id,
    )
    state = load_appointment_state(appointment)
    if state is None:
        return JsonResponse({'error': 'Only booked appointments can be edited.'}, status=409)
    return _apply(request, state)


@require_POST
@staff_required
def appointment_status(request, appointment_id):
    appointment = get_object_or_404(Appointment.objects.select_related('customer'), id=appointment_id)
    new_status = request.POST.get('status', '')
    reason = request.POST.get('reason', '').strip()

    try:
        change_appointment_status(appointment, new_status, changed_by=request.user.username, reason=reason)
    except BookingEngineError as exc:
        return JsonResponse({'error': str(exc)}, status=409)

    if new_status == AppointmentStatus.CANCELLED:
        send_appointment_cancelled(appointment, reason=reason)
    return JsonResponse({'id': str(appointment.pk), 'status': appointment.status})


def _is_uuid(value) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True
