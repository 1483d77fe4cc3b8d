"""
Payment views.

Flow:
  1. checkout save (cash)   → record_cash_payment → appointment PAID
  2. checkout save (online) → initiate → Razorpay order → JS modal on the desk
  3. callback               → Razorpay posts the result → verify signature
                              → payment CAPTURED, appointment PAID
"""
import logging

from django.conf import settings
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from apps.bookings.models import Appointment
from apps.core.decorators import staff_required

from .engine import confirm_online_payment, create_online_order, record_cash_payment
from .exceptions import PaymentError, PaymentGatewayError

logger = logging.getLogger(__name__)


def order_payload(payment, appointment) -> dict:
    """What the Razorpay checkout modal needs to open."""
    return {
        'payment_id': str(payment.pk),
        'razorpay_key_id': settings.RAZORPAY_KEY_ID,
        'razorpay_order_id': payment.razorpay_order_id,
        'amount': payment.amount_subunits,
        'currency': payment.currency,
        'customer_name': appointment.customer.name,
        'customer_email': appointment.customer.email or '',
        'customer_phone': appointment.customer.phone or '',
    }


@require_POST
@staff_required
def initiate_payment(request, appointment_id):
    appointment = get_object_or_404(Appointment.objects.select_related('customer'), id=appointment_id)
    try:
        payment = create_online_order(appointment)
    except PaymentGatewayError as exc:
        return JsonResponse({'error': str(exc)}, status=502)
    except PaymentError as exc:
        return JsonResponse({'error': str(exc)}, status=409)
    return JsonResponse(order_payload(payment, appointment))


@require_POST
@staff_required
def cash_payment(request, appointment_id):
    appointment = get_object_or_404(Appointment, id=appointment_id)
    try:
        payment = record_cash_payment(appointment, changed_by=request.user.username)
    except PaymentError as exc:
        return JsonResponse({'error': str(exc)}, status=409)
    return JsonResponse({'payment_id': str(payment.pk), 'status': payment.status})


@csrf_exempt
@require_POST
def payment_callback(request):
    """
    Razorpay posts the modal result here. Security comes from the HMAC
    signature, not from the session.
    """
    order_id = request.POST.get('razorpay_order_id', '')
    payment_id = request.POST.get('razorpay_payment_id', '')
    signature = request.POST.get('razorpay_signature', '')

    try:
        payment = confirm_online_payment(order_id, payment_id, signature)
    except PaymentError as exc:
        logger.warning('Callback rejected for order %s: %s', order_id, exc)
        return JsonResponse({'error': str(exc)}, status=400)

    return JsonResponse({
        'status': payment.status,
        'appointment_id': str(payment.appointment_id),
    })
