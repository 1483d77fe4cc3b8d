from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.core import mail
from django.test import TestCase
from django.utils import timezone

from apps.bookings.models import Appointment, Booking
from apps.catalog.models import Service
from apps.customers.models import Customer

from .emails import send_appointment_cancelled, send_appointment_confirmed


class AppointmentEmailTestCase(TestCase):

    def setUp(self):
        self.customer = Customer.objects.create(name='Asha', phone='9876543210', email='asha@example.com')
        start = timezone.now() + timedelta(days=1)
        self.appointment = Appointment.objects.create(
            customer=self.customer, start_time=start, end_time=start + timedelta(minutes=30),
            total_duration=30, subtotal=Decimal('400'), total_price=Decimal('360'),
        )
        service = Service.objects.create(name='Haircut', duration=30, selling_price=Decimal('400'))
        Booking.objects.create(
            appointment=self.appointment, line_key=str(service.pk), service=service,
            start_time=start, end_time=start + timedelta(minutes=30),
            original_price=Decimal('400'), price_paid=Decimal('360'),
        )

    def test_confirmation_lists_lines(self):
        self.assertTrue(send_appointment_confirmed(self.appointment))
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['asha@example.com'])
        self.assertIn('Haircut', message.body)
        self.assertIn(self.appointment.id_short, message.body)
        self.assertEqual(message.alternatives[0][1], 'text/html')

    def test_cancellation_carries_reason(self):
        send_appointment_cancelled(self.appointment, reason='Stylist unwell')
        self.assertIn('Stylist unwell', mail.outbox[0].body)

    def test_no_email_address_skips(self):
        self.customer.email = ''
        self.customer.save()
        self.assertFalse(send_appointment_confirmed(self.appointment))
        self.assertEqual(mail.outbox, [])

    def test_send_failure_is_logged_not_raised(self):
        with mock.patch('apps.notifications.emails.EmailMultiAlternatives.send', side_effect=OSError('smtp down')):
            self.assertFalse(send_appointment_confirmed(self.appointment))
