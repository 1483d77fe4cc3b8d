"""
Email notifications for appointments.

All functions are synchronous and called directly from views after state
transitions. A failed send is logged and never interrupts checkout.

Public API:
  send_appointment_confirmed(appointment)
  send_appointment_cancelled(appointment, reason='')
"""
import logging
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _appointment_context(appointment) -> dict:
    """Common template context for all appointment emails."""
    lines = [
        {
            'name': b.service.name if b.service_id else (b.package.name if b.package_id else b.line_key),
            'package': b.package.name if b.package_id else '',
            'stylist': b.employee.name if b.employee_id else '',
            'start_time': b.start_time,
            'price_paid': b.price_paid,
        }
        for b in appointment.bookings.select_related('service', 'package', 'employee')
    ]
    return {
        'customer_name':   appointment.customer.name,
        'appointment_ref': appointment.id_short,
        'start_time':      appointment.start_time,
        'end_time':        appointment.end_time,
        'duration':        appointment.total_duration,
        'lines':           lines,
        'subtotal':        appointment.subtotal,
        'total_discount':  appointment.subtotal - (appointment.total_price - appointment.tax_amount),
        'tax_amount':      appointment.tax_amount,
        'total_price':     appointment.total_price,
        'payment_method':  appointment.get_payment_method_display(),
        'currency':        getattr(settings, 'CURRENCY', 'INR'),
        'support_email':   settings.DEFAULT_FROM_EMAIL,
    }


def _send(subject: str, to_email: str, html_template: str, txt_template: str, context: dict) -> bool:
    """Build a multipart email with HTML + text fallback. Returns True when sent."""
    if not to_email:
        logger.warning('Email skipped - no email address for customer (appointment %s)',
                       context.get('appointment_ref'))
        return False

    try:
        text_body = render_to_string(txt_template, context)
        html_body = render_to_string(html_template, context)

        msg = EmailMultiAlternatives(
            subject=subject,
            body=text_body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[to_email],
        )
        msg.attach_alternative(html_body, 'text/html')
        msg.send(fail_silently=False)
        logger.info('Email "%s" sent to %s', subject, to_email)
        return True
    except Exception:
        logger.exception('Failed to send email "%s" to %s', subject, to_email)
        return False


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def send_appointment_confirmed(appointment) -> bool:
    """Triggered after checkout saves the appointment."""
    return _send(
        subject=f'Appointment Confirmed - {appointment.start_time:%d %b %Y}',
        to_email=appointment.customer.email,
        html_template='emails/appointment_confirmed.html',
        txt_template='emails/appointment_confirmed.txt',
        context=_appointment_context(appointment),
    )


def send_appointment_cancelled(appointment, reason: str = '') -> bool:
    ctx = _appointment_context(appointment)
    ctx['cancellation_reason'] = reason or 'Unforeseen circumstances'
    return _send(
        subject=f'Appointment Cancelled - {appointment.start_time:%d %b %Y}',
        to_email=appointment.customer.email,
        html_template='emails/appointment_cancelled.html',
        txt_template='emails/appointment_cancelled.txt',
        context=ctx,
    )
