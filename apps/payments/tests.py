import hashlib
import hmac
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from apps.bookings.models import Appointment, AppointmentStatus, PaymentMethod
from apps.customers.models import Customer

from .engine import confirm_online_payment, create_online_order, record_cash_payment, verify_signature
from .exceptions import PaymentGatewayError, PaymentStateError, PaymentVerificationError
from .models import Payment, PaymentStatus


def sign(order_id, payment_id, secret='rzp_test_secret'):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


class PaymentFixtureMixin:

    def make_appointment(self, total='1180.00', method=PaymentMethod.CASH):
        customer = Customer.objects.create(name='Asha', phone='9876543210', email='asha@example.com')
        start = timezone.now() + timedelta(hours=2)
        return Appointment.objects.create(
            customer=customer, start_time=start, end_time=start + timedelta(minutes=60),
            total_duration=60, payment_method=method,
            subtotal=Decimal('1000'), tax_amount=Decimal('180'), total_price=Decimal(total),
        )

    def fake_client(self, order_id='order_123'):
        client = mock.Mock()
        client.order.create.return_value = {'id': order_id}
        return client


class SignatureTestCase(TestCase):

    def test_valid_signature(self):
        self.assertTrue(verify_signature('order_1', 'pay_1', sign('order_1', 'pay_1')))

    def test_tampered_signature(self):
        self.assertFalse(verify_signature('order_1', 'pay_2', sign('order_1', 'pay_1')))
        self.assertFalse(verify_signature('order_1', 'pay_1', None))


class CashPaymentTestCase(PaymentFixtureMixin, TestCase):

    def test_cash_is_captured_and_appointment_paid(self):
        appointment = self.make_appointment()
        payment = record_cash_payment(appointment, changed_by='desk')

        self.assertEqual(payment.status, PaymentStatus.CAPTURED)
        self.assertEqual(payment.amount, Decimal('1180.00'))
        self.assertIsNotNone(payment.paid_at)
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, AppointmentStatus.PAID)
        self.assertEqual(appointment.status_logs.get().changed_by, 'desk')

    def test_cannot_pay_twice(self):
        appointment = self.make_appointment()
        record_cash_payment(appointment)
        with self.assertRaises(PaymentStateError):
            record_cash_payment(appointment)


class OnlinePaymentTestCase(PaymentFixtureMixin, TestCase):

    def test_order_is_created_in_subunits(self):
        appointment = self.make_appointment(method=PaymentMethod.ONLINE)
        client = self.fake_client()
        payment = create_online_order(appointment, client=client)

        self.assertEqual(payment.razorpay_order_id, 'order_123')
        self.assertEqual(payment.status, PaymentStatus.CREATED)
        self.assertEqual(payment.amount_subunits, 118000)
        sent = client.order.create.call_args[0][0]
        self.assertEqual(sent['amount'], 118000)
        self.assertEqual(sent['currency'], 'INR')

    def test_open_order_is_reused(self):
        appointment = self.make_appointment(method=PaymentMethod.ONLINE)
        first = create_online_order(appointment, client=self.fake_client())
        client = self.fake_client('order_other')
        second = create_online_order(appointment, client=client)

        self.assertEqual(first.pk, second.pk)
        client.order.create.assert_not_called()

    def test_gateway_failure(self):
        appointment = self.make_appointment(method=PaymentMethod.ONLINE)
        client = mock.Mock()
        client.order.create.side_effect = RuntimeError('boom')
        with self.assertRaises(PaymentGatewayError):
            create_online_order(appointment, client=client)
        self.assertFalse(Payment.objects.exists())

    def test_confirm_marks_paid_and_is_idempotent(self):
        appointment = self.make_appointment(method=PaymentMethod.ONLINE)
        create_online_order(appointment, client=self.fake_client())

        payment = confirm_online_payment('order_123', 'pay_9', sign('order_123', 'pay_9'))
        self.assertEqual(payment.status, PaymentStatus.CAPTURED)
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, AppointmentStatus.PAID)

        again = confirm_online_payment('order_123', 'pay_9', 'ignored')
        self.assertEqual(again.pk, payment.pk)
        self.assertEqual(appointment.status_logs.count(), 1)

    def test_bad_signature_is_rejected(self):
        appointment = self.make_appointment(method=PaymentMethod.ONLINE)
        create_online_order(appointment, client=self.fake_client())
        with self.assertRaises(PaymentVerificationError):
            confirm_online_payment('order_123', 'pay_9', 'forged')
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, AppointmentStatus.BOOKED)

    def test_unknown_order(self):
        with self.assertRaises(PaymentVerificationError):
            confirm_online_payment('order_missing', 'pay_9', sign('order_missing', 'pay_9'))


class PaymentViewTestCase(PaymentFixtureMixin, TestCase):

    def setUp(self):
        self.staff = get_user_model().objects.create_user('desk', password='pw', is_staff=True)

    def test_cash_requires_staff(self):
        appointment = self.make_appointment()
        response = self.client.post(reverse('payments:cash', args=[appointment.pk]))
        self.assertEqual(response.status_code, 403)

    def test_cash_view(self):
        appointment = self.make_appointment()
        self.client.force_login(self.staff)
        response = self.client.post(reverse('payments:cash', args=[appointment.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], PaymentStatus.CAPTURED)

        response = self.client.post(reverse('payments:cash', args=[appointment.pk]))
        self.assertEqual(response.status_code, 409)

    def test_callback(self):
        appointment = self.make_appointment(method=PaymentMethod.ONLINE)
        create_online_order(appointment, client=self.fake_client())

        response = self.client.post(reverse('payments:callback'), {
            'razorpay_order_id': 'order_123',
            'razorpay_payment_id': 'pay_9',
            'razorpay_signature': 'forged',
        })
        self.assertEqual(response.status_code, 400)

        response = self.client.post(reverse('payments:callback'), {
            'razorpay_order_id': 'order_123',
            'razorpay_payment_id': 'pay_9',
            'razorpay_signature': sign('order_123', 'pay_9'),
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['appointment_id'], str(appointment.pk))
