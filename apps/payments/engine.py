"""
Payment engine - cash capture, Razorpay orders and callback verification.
No HTTP/request awareness.

Public API:
  record_cash_payment(appointment, changed_by='system')
  create_online_order(appointment, client=None)
  verify_signature(order_id, payment_id, signature)
  confirm_online_payment(order_id, payment_id, signature)
"""
import hashlib
import hmac
import logging

import razorpay
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.bookings.models import AppointmentStatus, PaymentMethod

from .exceptions import PaymentGatewayError, PaymentStateError, PaymentVerificationError
from .models import Payment, PaymentStatus

logger = logging.getLogger(__name__)


def _razorpay_client():
    return razorpay.Client(
        auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
    )


def _ensure_payable(appointment):
    if appointment.status != AppointmentStatus.BOOKED:
        raise PaymentStateError(
            f"Appointment #{appointment.id_short} is {appointment.get_status_display().lower()}."
        )


def verify_signature(order_id: str, payment_id: str, signature: str) -> bool:
    """Verify Razorpay payment signature (HMAC-SHA256 of 'order_id|payment_id')."""
    secret = settings.RAZORPAY_KEY_SECRET.encode()
    message = f"{order_id}|{payment_id}".encode()
    computed = hmac.new(key=secret, msg=message, digestmod=hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature or '')


@transaction.atomic
def record_cash_payment(appointment, changed_by='system') -> Payment:
    """Cash is captured on the spot and the appointment moves to paid."""
    _ensure_payable(appointment)
    now = timezone.now()
    payment, _ = Payment.objects.update_or_create(
        appointment=appointment,
        defaults={
            'method': PaymentMethod.CASH,
            'amount': appointment.total_price,
            'currency': settings.CURRENCY,
            'status': PaymentStatus.CAPTURED,
            'paid_at': now,
        },
    )
    appointment.mark_paid(changed_by=changed_by)
    logger.info('Cash payment captured for appointment %s', appointment.pk)
    return payment


def create_online_order(appointment, client=None) -> Payment:
    """
    Create (or reuse) a Razorpay order for the appointment total.
    Raises PaymentGatewayError if Razorpay rejects the request.
    """
    _ensure_payable(appointment)
    existing = Payment.objects.filter(
        appointment=appointment, method=PaymentMethod.ONLINE, status=PaymentStatus.CREATED,
    ).first()
    if existing is not None and existing.amount == appointment.total_price:
        return existing

    client = client or _razorpay_client()
    try:
        order_data = client.order.create({
            'amount': int(appointment.total_price * 100),
            'currency': settings.CURRENCY,
            'receipt': str(appointment.id)[:40],
            'notes': {
                'appointment_id': str(appointment.id),
                'customer_name': appointment.customer.name,
            },
        })
    except Exception as exc:
        logger.exception('Razorpay order creation failed for appointment %s', appointment.pk)
        raise PaymentGatewayError('Could not connect to the payment gateway. Please try again.') from exc

    payment, _ = Payment.objects.update_or_create(
        appointment=appointment,
        defaults={
            'method': PaymentMethod.ONLINE,
            'razorpay_order_id': order_data['id'],
            'razorpay_payment_id': None,
            'amount': appointment.total_price,
            'currency': settings.CURRENCY,
            'status': PaymentStatus.CREATED,
        },
    )
    logger.info('Razorpay order %s created for appointment %s', order_data['id'], appointment.pk)
    return payment


@transaction.atomic
def confirm_online_payment(order_id, payment_id, signature) -> Payment:
    """
    Capture an online payment after the checkout callback. Idempotent: a
    payment that is already captured is returned as is.

    Raises PaymentVerificationError for an unknown order or a bad signature.
    """
    payment = (
        Payment.objects.select_for_update()
        .select_related('appointment')
        .filter(razorpay_order_id=order_id)
        .first()
    )
    if payment is None:
        raise PaymentVerificationError(f"No payment found for order {order_id}.")
    if payment.status == PaymentStatus.CAPTURED:
        return payment

    if not verify_signature(order_id, payment_id, signature):
        logger.warning('Invalid Razorpay signature for order %s', order_id)
        raise PaymentVerificationError('Payment signature verification failed.')

    payment.razorpay_payment_id = payment_id
    payment.razorpay_signature = signature
    payment.status = PaymentStatus.CAPTURED
    payment.paid_at = timezone.now()
    payment.save(update_fields=['razorpay_payment_id', 'razorpay_signature', 'status', 'paid_at', 'updated_at'])

    appointment = payment.appointment
    if appointment.status == AppointmentStatus.BOOKED:
        appointment.mark_paid(changed_by='razorpay')
    logger.info('Online payment %s captured for appointment %s', payment_id, appointment.pk)
    return payment
