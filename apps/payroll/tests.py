import json
from datetime import date, datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from apps.bookings.models import Appointment, AppointmentStatus, Booking
from apps.catalog.models import Service
from apps.customers.models import Customer

from .commissions import flat_commission, slab_for_amount, tiered_commission
from .engine import (
    add_adjustment,
    create_pay_run,
    employee_revenue,
    employee_wages,
    mark_pay_run_paid,
    pay_run_summary,
    save_commission_template,
    set_employee_compensation,
)
from .exceptions import (
    InvalidAdjustmentError,
    InvalidCompensationError,
    PayPeriodClosedError,
    PayRunLockedError,
)
from .models import (
    CommissionSlabRow,
    CommissionType,
    CompensationType,
    Employee,
    PayPeriod,
    PayRunStatus,
    ServiceCommission,
    SourceType,
)
from .slabs import (
    MSG_EMPTY,
    MSG_GAP,
    MSG_LAST_BOUNDED,
    MSG_MIN_NOT_BELOW_MAX,
    MSG_OVERLAP,
    MSG_PERCENTAGE,
    MSG_UNBOUNDED_NOT_LAST,
    CommissionSlab,
    add_slab,
    default_slabs,
    first_slab_error,
    remove_slab,
    update_slab,
    validate_slabs,
)


def S(min_amount, max_amount, percentage):
    return CommissionSlab(min_amount, max_amount, percentage)


class SlabValidationTestCase(SimpleTestCase):

    def test_contiguous_schedule_is_valid(self):
        self.assertTrue(validate_slabs([S(0, 999, 20), S(1000, None, 30)]))

    def test_gap_is_rejected_with_message(self):
        messages = []
        self.assertFalse(validate_slabs([S(0, 999, 20), S(1001, None, 30)], messages.append))
        self.assertEqual(messages, [MSG_GAP])

    def test_unsorted_input_is_sorted_first(self):
        self.assertIsNone(first_slab_error([S(1000, None, 30), S(0, 999, 20)]))

    def test_empty(self):
        self.assertEqual(first_slab_error([]), MSG_EMPTY)
        self.assertEqual(first_slab_error(None), MSG_EMPTY)

    def test_percentage_out_of_range(self):
        self.assertEqual(first_slab_error([S(0, None, 101)]), MSG_PERCENTAGE)
        self.assertEqual(first_slab_error([S(0, None, -1)]), MSG_PERCENTAGE)

    def test_overlap(self):
        self.assertEqual(first_slab_error([S(0, 1000, 20), S(1000, None, 30)]), MSG_OVERLAP)

    def test_open_ended_band_must_be_last(self):
        self.assertEqual(first_slab_error([S(0, None, 20), S(1000, None, 30)]), MSG_UNBOUNDED_NOT_LAST)

    def test_last_band_must_be_open_ended(self):
        self.assertEqual(first_slab_error([S(0, 999, 20), S(1000, 5000, 30)]), MSG_LAST_BOUNDED)

    def test_min_must_be_below_max(self):
        self.assertEqual(first_slab_error([S(500, 500, 20), S(501, None, 30)]), MSG_MIN_NOT_BELOW_MAX)

    def test_only_first_problem_is_reported(self):
        messages = []
        validate_slabs([S(0, 999, 150), S(2000, 3000, 30)], messages.append)
        self.assertEqual(messages, [MSG_PERCENTAGE])


class SlabEditingTestCase(SimpleTestCase):

    def assertChained(self, slabs):
        self.assertIsNone(first_slab_error(slabs))
        self.assertEqual(sum(1 for s in slabs if s.max_amount is None), 1)
        for current, following in zip(slabs, slabs[1:]):
            self.assertEqual(current.max_amount + 1, following.min_amount)

    def test_default_is_valid(self):
        self.assertChained(default_slabs())

    def test_add_closes_tail_and_opens_new_band(self):
        slabs = add_slab(default_slabs(10), percentage=15, span=1000)
        self.assertEqual(slabs[0].max_amount, Decimal('999'))
        self.assertEqual(slabs[1].min_amount, Decimal('1000'))
        self.assertEqual(slabs[1].percentage, Decimal('15'))
        self.assertChained(slabs)

    def test_add_to_empty_gives_default(self):
        self.assertChained(add_slab([]))

    def test_remove_rechains_from_zero(self):
        slabs = add_slab(add_slab(default_slabs(), span=1000), span=1000)
        slabs = remove_slab(slabs, 0)
        self.assertEqual(len(slabs), 2)
        self.assertEqual(slabs[0].min_amount, Decimal('0'))
        self.assertChained(slabs)

    def test_remove_last_band_reopens_tail(self):
        slabs = remove_slab(add_slab(default_slabs(), span=1000), 1)
        self.assertEqual(len(slabs), 1)
        self.assertIsNone(slabs[0].max_amount)

    def test_removing_only_band_is_a_no_op(self):
        slabs = default_slabs()
        self.assertEqual(remove_slab(slabs, 0), slabs)

    def test_update_max_moves_next_min(self):
        slabs = update_slab(add_slab(default_slabs(), span=1000), 0, 'max_amount', 4999)
        self.assertEqual(slabs[1].min_amount, Decimal('5000'))
        self.assertChained(slabs)

    def test_update_unknown_field(self):
        with self.assertRaises(ValueError):
            update_slab(default_slabs(), 0, 'colour', 1)


class CommissionMathTestCase(SimpleTestCase):

    def setUp(self):
        self.slabs = [S(0, 999, 20), S(1000, None, 30)]

    def test_band_lookup(self):
        self.assertEqual(slab_for_amount(self.slabs, 500).percentage, Decimal('20'))
        self.assertEqual(slab_for_amount(self.slabs, 1000).percentage, Decimal('30'))

    def test_containing_band_rate_applies_to_whole_revenue(self):
        self.assertEqual(tiered_commission(2000, self.slabs), Decimal('600'))
        self.assertEqual(tiered_commission(500, self.slabs), Decimal('100'))

    def test_fractional_revenue_between_bands_stays_in_lower_band(self):
        self.assertEqual(slab_for_amount(self.slabs, Decimal('999.50')).percentage, Decimal('20'))
        self.assertEqual(tiered_commission(Decimal('999.50'), self.slabs), Decimal('199.9'))

    def test_no_revenue_no_commission(self):
        self.assertEqual(tiered_commission(0, self.slabs), Decimal('0'))

    def test_flat_commission_only_on_rated_services(self):
        lines = [('a', Decimal('400')), ('b', Decimal('100'))]
        self.assertEqual(flat_commission(lines, {'a': Decimal('10')}), Decimal('40'))


class PayrollEngineTestCase(TestCase):

    def setUp(self):
        self.customer = Customer.objects.create(name='Asha', phone='9876543210')
        self.cut = Service.objects.create(name='Haircut', duration=30, selling_price=Decimal('400'))
        self.colour = Service.objects.create(name='Colour', duration=60, selling_price=Decimal('1200'))
        self.flat = Employee.objects.create(name='Bina', commission_type=CommissionType.FLAT)
        ServiceCommission.objects.create(employee=self.flat, service=self.cut, percentage=Decimal('10'))
        self.tiered = Employee.objects.create(name='Chitra', commission_type=CommissionType.TIERED)
        for order, slab in enumerate([S(0, 999, 20), S(1000, None, 30)], start=1):
            CommissionSlabRow.objects.create(
                employee=self.tiered, min_amount=slab.min_amount,
                max_amount=slab.max_amount, percentage=slab.percentage, order=order,
            )
        self.period = PayPeriod.objects.create(start_date=date(2026, 3, 1), end_date=date(2026, 3, 31))

    def _book(self, employee, service, price, day=10, status=AppointmentStatus.PAID):
        start = timezone.make_aware(datetime(2026, 3, day, 11, 0))
        appointment = Appointment.objects.create(
            customer=self.customer, start_time=start, end_time=start,
            status=status, total_price=price,
        )
        return Booking.objects.create(
            appointment=appointment, line_key=str(service.pk), service=service,
            employee=employee, start_time=start, end_time=start,
            original_price=price, price_paid=price,
        )

    def test_revenue_counts_only_collected_lines_in_period(self):
        self._book(self.tiered, self.colour, Decimal('1200'))
        self._book(self.tiered, self.cut, Decimal('400'), status=AppointmentStatus.BOOKED)
        self._book(self.tiered, self.cut, Decimal('400'), day=1)
        self.assertEqual(employee_revenue(self.tiered, date(2026, 3, 2), date(2026, 3, 31)), Decimal('1200'))

    def test_pay_run_builds_commission_items(self):
        self._book(self.flat, self.cut, Decimal('360'))
        self._book(self.flat, self.colour, Decimal('1200'))
        self._book(self.tiered, self.colour, Decimal('1200'))

        pay_run = create_pay_run(self.period)
        summary = {row['employee_name']: row for row in pay_run_summary(pay_run)}

        self.assertEqual(summary['Bina'][CompensationType.COMMISSION], Decimal('36.00'))
        self.assertEqual(summary['Chitra'][CompensationType.COMMISSION], Decimal('360.00'))

    def test_tiered_commission_paid_on_revenue_with_paise(self):
        self._book(self.tiered, self.cut, Decimal('599.75'))
        self._book(self.tiered, self.cut, Decimal('399.75'))

        pay_run = create_pay_run(self.period)
        item = pay_run.items.get(employee=self.tiered)
        self.assertEqual(item.amount, Decimal('199.90'))

    def test_adjustments_are_signed(self):
        pay_run = create_pay_run(self.period)
        add_adjustment(pay_run, self.flat, Decimal('500'), CompensationType.TIPS)
        add_adjustment(pay_run, self.flat, Decimal('100'), deduction=True)
        row = pay_run_summary(pay_run)[0]
        self.assertEqual(row[CompensationType.TIPS], Decimal('500'))
        self.assertEqual(row[CompensationType.OTHER], Decimal('-100'))
        self.assertEqual(row['total'], Decimal('400'))

    def test_zero_adjustment_rejected(self):
        pay_run = create_pay_run(self.period)
        with self.assertRaises(InvalidAdjustmentError):
            add_adjustment(pay_run, self.flat, 0)

    def test_paying_closes_period_and_locks_run(self):
        pay_run = create_pay_run(self.period)
        add_adjustment(pay_run, self.flat, Decimal('50'))
        mark_pay_run_paid(pay_run)

        self.period.refresh_from_db()
        self.assertTrue(self.period.is_closed)
        self.assertEqual(pay_run.status, PayRunStatus.PAID)
        self.assertTrue(all(item.is_paid for item in pay_run.items.all()))
        with self.assertRaises(PayRunLockedError):
            add_adjustment(pay_run, self.flat, Decimal('10'))
        with self.assertRaises(PayPeriodClosedError):
            create_pay_run(self.period)

    def test_new_salary_closes_the_current_one(self):
        employee = Employee.objects.create(name='Esha')
        first = set_employee_compensation(employee, Decimal('30000'), date(2026, 1, 1))
        second = set_employee_compensation(employee, Decimal('31000'), date(2026, 3, 16))

        first.refresh_from_db()
        self.assertEqual(first.effective_to, date(2026, 3, 15))
        self.assertIsNone(second.effective_to)
        self.assertEqual(employee.compensations.count(), 2)

    def test_salary_must_be_positive_and_start_after_current(self):
        employee = Employee.objects.create(name='Esha')
        with self.assertRaises(InvalidCompensationError):
            set_employee_compensation(employee, 0, date(2026, 1, 1))
        set_employee_compensation(employee, Decimal('30000'), date(2026, 3, 1))
        with self.assertRaises(InvalidCompensationError):
            set_employee_compensation(employee, Decimal('32000'), date(2026, 3, 1))
        self.assertEqual(employee.compensations.count(), 1)

    def test_wages_prorated_by_days_of_the_month(self):
        employee = Employee.objects.create(name='Esha')
        set_employee_compensation(employee, Decimal('30000'), date(2026, 2, 15))
        self.assertEqual(employee_wages(employee, date(2026, 2, 1), date(2026, 2, 28)), Decimal('15000.00'))
        self.assertEqual(employee_wages(employee, date(2026, 3, 1), date(2026, 3, 31)), Decimal('30000.00'))
        self.assertEqual(employee_wages(employee, date(2026, 1, 1), date(2026, 1, 31)), Decimal('0.00'))

    def test_wages_follow_a_mid_period_raise(self):
        employee = Employee.objects.create(name='Esha')
        set_employee_compensation(employee, Decimal('31000'), date(2026, 1, 1))
        set_employee_compensation(employee, Decimal('62000'), date(2026, 3, 16))
        self.assertEqual(employee_wages(employee, date(2026, 3, 1), date(2026, 3, 31)), Decimal('47000.00'))

    def test_pay_run_pays_salary_as_wages(self):
        employee = Employee.objects.create(name='Esha')
        set_employee_compensation(employee, Decimal('30000'), date(2026, 1, 1))
        self._book(self.tiered, self.colour, Decimal('1200'))

        pay_run = create_pay_run(self.period)
        item = pay_run.items.get(employee=employee)
        self.assertEqual(item.compensation_type, CompensationType.WAGES)
        self.assertEqual(item.source_type, SourceType.SALARY)
        self.assertEqual(item.amount, Decimal('30000.00'))

        summary = {row['employee_name']: row for row in pay_run_summary(pay_run)}
        self.assertEqual(summary['Esha'][CompensationType.WAGES], Decimal('30000.00'))
        self.assertEqual(summary['Esha']['total'], Decimal('30000.00'))
        self.assertEqual(summary['Chitra'][CompensationType.WAGES], Decimal('0'))

    def test_invalid_template_is_not_saved(self):
        errors = []
        result = save_commission_template('Senior', [S(0, 999, 20), S(1001, None, 30)], on_error=errors.append)
        self.assertIsNone(result)
        self.assertEqual(errors, [MSG_GAP])

    def test_template_slabs_used_when_employee_has_none(self):
        template = save_commission_template('Senior', [S(0, 999, 20), S(1000, None, 30)])
        employee = Employee.objects.create(
            name='Devi', commission_type=CommissionType.TIERED, commission_template=template,
        )
        self.assertEqual([s.percentage for s in employee.slab_records()], [Decimal('20'), Decimal('30')])


class PayrollViewsTestCase(TestCase):

    def setUp(self):
        self.staff = get_user_model().objects.create_user('staff', password='pw', is_staff=True)
        self.client.force_login(self.staff)

    def _post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json')

    def test_non_staff_forbidden(self):
        self.client.logout()
        response = self._post_json(reverse('payroll:template_save'), {})
        self.assertEqual(response.status_code, 403)

    def test_template_with_gap_returns_message(self):
        response = self._post_json(reverse('payroll:template_save'), {
            'name': 'Senior',
            'slabs': [
                {'min_amount': 0, 'max_amount': 999, 'percentage': 20},
                {'min_amount': 1001, 'max_amount': None, 'percentage': 30},
            ],
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], MSG_GAP)

    def test_slab_add_endpoint(self):
        response = self._post_json(reverse('payroll:slab_edit', args=['add']), {
            'slabs': [{'min_amount': 0, 'max_amount': None, 'percentage': 10}],
        })
        self.assertEqual(response.status_code, 200)
        slabs = response.json()['slabs']
        self.assertEqual(len(slabs), 2)
        self.assertIsNone(slabs[1]['max_amount'])

    def test_cannot_remove_last_slab(self):
        response = self._post_json(reverse('payroll:slab_edit', args=['remove']), {
            'slabs': [{'min_amount': 0, 'max_amount': None, 'percentage': 10}], 'index': 0,
        })
        self.assertEqual(response.status_code, 400)

    def test_pay_run_create_and_pay(self):
        response = self.client.post(reverse('payroll:pay_run_create'), {
            'start_date': '2026-03-01', 'end_date': '2026-03-31',
        })
        self.assertEqual(response.status_code, 201)
        pay_run_id = response.json()['id']

        response = self.client.post(reverse('payroll:pay_run_pay', args=[pay_run_id]))
        self.assertEqual(response.json()['status'], PayRunStatus.PAID)

        response = self.client.post(reverse('payroll:pay_run_pay', args=[pay_run_id]))
        self.assertEqual(response.status_code, 409)

    def test_salary_endpoint_records_history(self):
        employee = Employee.objects.create(name='Esha')
        url = reverse('payroll:employee_compensation', args=[employee.pk])

        response = self.client.post(url, {'base_amount': '30000', 'effective_from': '2026-01-01'})
        self.assertEqual(response.status_code, 201)
        response = self.client.post(url, {'base_amount': '32000', 'effective_from': '2026-04-01'})
        self.assertEqual(response.status_code, 201)
        history = response.json()['history']
        self.assertEqual([row['effective_to'] for row in history], [None, '2026-03-31'])

        response = self.client.post(url, {'base_amount': '33000', 'effective_from': '2026-02-01'})
        self.assertEqual(response.status_code, 409)
        response = self.client.post(url, {'base_amount': '0', 'effective_from': '2026-05-01'})
        self.assertEqual(response.status_code, 400)
