from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from apps.catalog.models import Package, PackageService, Service
from apps.catalog.records import PackageRecord, PackageServiceRecord, ServiceRecord, load_catalog
from apps.customers.models import Customer
from apps.payments.models import Payment, PaymentStatus
from apps.payroll.models import Employee

from . import workflow as wf
from .engine import (
    change_appointment_status,
    load_appointment_state,
    loyalty_wallet,
    price_checkout,
    save_appointment,
)
from .exceptions import AppointmentSaveError, AppointmentStateError, LoyaltyRedemptionError
from .models import AppointmentStatus, Coupon, TaxRate
from .pricing import (
    DiscountType,
    calculate_adjusted_price,
    calculate_checkout_totals,
    calculate_package_price,
    checkout_lines,
    get_adjusted_service_prices,
    get_final_price,
    get_service_price_in_package,
    get_total_duration,
    get_total_price,
    max_redeemable_points,
)

EPSILON = Decimal('0.000001')


def service(sid, price, duration=30):
    return ServiceRecord(id=sid, name=f'Service {sid}', duration=duration, selling_price=Decimal(price))


class PricingFixtureMixin:

    def setUp(self):
        self.a = service('a', '300', 30)
        self.b = service('b', '150', 20)
        self.c = service('c', '400', 45)
        self.d = service('d', '600', 60)
        self.services = [self.a, self.b, self.c, self.d]
        self.package = PackageRecord(
            id='p', name='Bridal', price=Decimal('800'), is_customizable=True,
            package_services=(PackageServiceRecord(self.a, Decimal('250')),),
        )
        self.packages = [self.package]


class AggregationTestCase(PricingFixtureMixin, SimpleTestCase):

    def test_total_is_additive_over_disjoint_services(self):
        left = get_total_price(['a', 'b'], [], self.services, self.packages)
        right = get_total_price(['c'], [], self.services, self.packages)
        both = get_total_price(['a', 'b', 'c'], [], self.services, self.packages)
        self.assertEqual(both, left + right)

    def test_order_does_not_matter(self):
        self.assertEqual(
            get_total_price(['c', 'a'], ['p'], self.services, self.packages),
            get_total_price(['a', 'c'], ['p'], self.services, self.packages),
        )

    def test_unknown_ids_are_skipped(self):
        self.assertEqual(get_total_price(['a', 'zzz'], ['nope'], self.services, self.packages), Decimal('300'))

    def test_non_list_inputs_are_empty(self):
        self.assertEqual(get_total_price(None, 'p', None, self.packages), Decimal('0'))
        self.assertEqual(get_total_duration(None, None, self.services, None), 0)

    def test_customised_package_adds_standalone_price(self):
        # base 800 already embeds A's bundled price; B is added at 150
        custom = {'p': ['b']}
        self.assertEqual(get_total_price([], ['p'], self.services, self.packages, custom), Decimal('950'))

    def test_customising_with_bundled_service_is_not_double_counted(self):
        self.assertEqual(calculate_package_price(self.package, ['a', 'b'], self.services), Decimal('950'))

    def test_package_duration_falls_back_to_bundled_services(self):
        self.assertEqual(get_total_duration([], ['p'], self.services, self.packages, {'p': ['b']}), 50)

    def test_service_price_in_package_prefers_bundled_price(self):
        self.assertEqual(get_service_price_in_package('a', 'p', self.packages), Decimal('250'))
        self.assertEqual(get_service_price_in_package('b', 'p', self.packages), Decimal('0'))


class DiscountTestCase(PricingFixtureMixin, SimpleTestCase):

    def test_no_discount(self):
        self.assertEqual(get_final_price(1000, DiscountType.NONE, 50), Decimal('1000'))

    def test_percentage_discount_and_line_share(self):
        total = get_total_price(['c', 'd'], [], self.services, self.packages)
        self.assertEqual(total, Decimal('1000'))
        final = get_final_price(total, DiscountType.PERCENTAGE, 10)
        self.assertEqual(final, Decimal('900'))
        self.assertEqual(calculate_adjusted_price(400, total, final), Decimal('360'))

    def test_fixed_discount_never_goes_negative(self):
        self.assertEqual(get_final_price(500, DiscountType.FIXED, 600), Decimal('0'))

    def test_non_positive_value_leaves_total(self):
        self.assertEqual(get_final_price(500, DiscountType.FIXED, -20), Decimal('500'))

    def test_percentage_is_not_clamped(self):
        self.assertEqual(get_final_price(100, DiscountType.PERCENTAGE, 150), Decimal('-50'))

    def test_zero_total_keeps_item_price(self):
        self.assertEqual(calculate_adjusted_price(40, 0, 0), Decimal('40'))


class CheckoutLinesTestCase(PricingFixtureMixin, SimpleTestCase):

    def test_line_keys(self):
        lines = checkout_lines(['c'], ['p'], self.services, self.packages, {'p': ['b']})
        self.assertEqual([line.key for line in lines], ['c', 'p:a', 'p:b'])
        self.assertTrue(lines[2].is_customized)

    def test_lines_sum_to_total(self):
        custom = {'p': ['b']}
        lines = checkout_lines(['c', 'd'], ['p'], self.services, self.packages, custom)
        total = get_total_price(['c', 'd'], ['p'], self.services, self.packages, custom)
        self.assertEqual(sum(line.original_price for line in lines), total)

    def test_adjusted_prices_sum_to_final_total(self):
        custom = {'p': ['b']}
        prices = get_adjusted_service_prices(
            ['c', 'd'], ['p'], self.services, self.packages, custom, discounted_total=Decimal('1234.56'),
        )
        self.assertLess(abs(sum(prices.values()) - Decimal('1234.56')), EPSILON)

    def test_unselected_items_absent(self):
        prices = get_adjusted_service_prices(['c'], [], self.services, self.packages)
        self.assertEqual(set(prices), {'c'})


class CheckoutTotalsTestCase(PricingFixtureMixin, SimpleTestCase):

    def test_chain_with_membership_coupon_and_tax(self):
        totals = calculate_checkout_totals(
            ['c', 'd'], ['p'], self.services, self.packages,
            discount_type=DiscountType.PERCENTAGE, discount_value=10,
            membership_discount=Decimal('90'),
            coupon_type=DiscountType.FIXED, coupon_value=Decimal('100'),
            tax_rate=Decimal('18'),
        )
        # 1800 → 1620 → 1530 → 1430
        self.assertEqual(totals.subtotal, Decimal('1800'))
        self.assertEqual(totals.discounted_subtotal, Decimal('1430'))
        self.assertEqual(totals.tax_amount, Decimal('257.4'))
        self.assertEqual(totals.grand_total, Decimal('1687.4'))
        self.assertLess(abs(sum(totals.adjusted_prices.values()) - totals.discounted_subtotal), EPSILON)

    def test_discounts_floor_at_zero(self):
        totals = calculate_checkout_totals(
            ['a'], [], self.services, self.packages, membership_discount=200, loyalty_value=500,
        )
        self.assertEqual(totals.discounted_subtotal, Decimal('0'))
        self.assertEqual(sum(totals.adjusted_prices.values()), Decimal('0'))

    def test_recorded_discounts_add_up_to_total_discount(self):
        totals = calculate_checkout_totals(
            ['a'], [], self.services, self.packages,
            discount_type=DiscountType.FIXED, discount_value=Decimal('250'),
            membership_discount=Decimal('90'), loyalty_value=Decimal('40'),
        )
        self.assertEqual(totals.membership_discount, Decimal('50'))
        self.assertEqual(totals.loyalty_discount, Decimal('0'))
        recorded = totals.manual_discount + totals.membership_discount + totals.coupon_discount + totals.loyalty_discount
        self.assertEqual(recorded, totals.total_discount)

    def test_redeemable_points_capped_by_bill(self):
        self.assertEqual(max_redeemable_points(500, Decimal('120.40')), 121)
        self.assertEqual(max_redeemable_points(50, Decimal('120')), 50)
        self.assertEqual(max_redeemable_points(50, Decimal('120'), min_points=100), 0)

    def test_redeemable_points_follow_point_value(self):
        # 120 at 0.50 per point is worth 240 points; at 2 per point, 60
        self.assertEqual(max_redeemable_points(500, Decimal('120'), point_value=Decimal('0.50')), 240)
        self.assertEqual(max_redeemable_points(500, Decimal('120'), point_value=2), 60)
        self.assertEqual(
            max_redeemable_points(500, Decimal('120'), max_type='percentage', max_value=50, point_value=2), 30,
        )


class WorkflowTestCase(SimpleTestCase):

    def setUp(self):
        self.ready = wf.WorkflowState(customer_id='c1', service_ids=('s1',))

    def test_proceed_needs_customer(self):
        state = wf.WorkflowState(service_ids=('s1',))
        transition = wf.proceed_to_checkout(state, require_stylist=False)
        self.assertEqual(transition.error, wf.MSG_NO_CUSTOMER)
        self.assertIs(transition.state, state)

    def test_proceed_needs_selection(self):
        transition = wf.proceed_to_checkout(wf.WorkflowState(customer_id='c1'), require_stylist=False)
        self.assertEqual(transition.error, wf.MSG_NO_ITEMS)

    def test_proceed_with_stylist_guard(self):
        blocked = wf.proceed_to_checkout(self.ready, require_stylist=True)
        self.assertEqual(blocked.error, wf.MSG_NO_STYLIST)

        assigned = wf.assign_stylist(self.ready, 's1', 'e1')
        transition = wf.proceed_to_checkout(assigned, require_stylist=True)
        self.assertTrue(transition.ok)
        self.assertEqual(transition.state.screen, wf.Screen.CHECKOUT)

    def test_back_is_unconditional(self):
        at_checkout = wf.proceed_to_checkout(self.ready, require_stylist=False).state
        self.assertEqual(wf.back_to_services(at_checkout).screen, wf.Screen.SERVICE_SELECTION)

    def test_summary_only_after_persist(self):
        at_checkout = wf.proceed_to_checkout(self.ready, require_stylist=False).state
        failed = wf.complete_checkout(at_checkout, None)
        self.assertEqual(failed.error, wf.MSG_NOT_SAVED)
        self.assertEqual(failed.state.screen, wf.Screen.CHECKOUT)

        done = wf.complete_checkout(at_checkout, 'appt-1')
        self.assertEqual(done.state.screen, wf.Screen.SUMMARY)
        self.assertEqual(done.state.appointment_id, 'appt-1')

    def test_create_another_resets_everything(self):
        at_checkout = wf.proceed_to_checkout(
            wf.set_discount(self.ready, DiscountType.FIXED, 50), require_stylist=False,
        ).state
        summary = wf.complete_checkout(wf.set_notes(at_checkout, 'VIP'), 'appt-1').state
        self.assertEqual(wf.create_another(summary), wf.INITIAL_STATE)

    def test_auto_proceed_when_selection_becomes_non_empty(self):
        state = wf.select_customer(wf.INITIAL_STATE, 'c1')
        with override_settings(BOOKING_REQUIRE_STYLIST=False):
            state = wf.toggle_service(state, 's1', auto_proceed=True)
        self.assertEqual(state.screen, wf.Screen.CHECKOUT)

    def test_no_auto_proceed_without_customer(self):
        state = wf.toggle_service(wf.INITIAL_STATE, 's1', auto_proceed=True)
        self.assertEqual(state.screen, wf.Screen.SERVICE_SELECTION)

    def test_removing_package_drops_its_extras_and_stylist(self):
        state = wf.toggle_package(wf.INITIAL_STATE, 'p1', auto_proceed=False)
        state = wf.toggle_custom_service(state, 'p1', 's9')
        state = wf.assign_stylist(state, 'p1', 'e1')
        state = wf.remove_package(state, 'p1')
        self.assertEqual(state.customized_services, {})
        self.assertEqual(state.stylists, {})

    def test_extras_need_a_selected_package(self):
        self.assertIs(wf.toggle_custom_service(wf.INITIAL_STATE, 'p1', 's9'), wf.INITIAL_STATE)

    def test_session_dict_round_trip(self):
        state = wf.set_discount(wf.assign_stylist(self.ready, 's1', 'e1'), DiscountType.PERCENTAGE, '12.5')
        self.assertEqual(wf.WorkflowState.from_dict(state.as_dict()), state)

    def test_garbage_session_gives_initial_state(self):
        self.assertEqual(wf.WorkflowState.from_dict('junk'), wf.INITIAL_STATE)


class CatalogMixin:

    def make_catalog(self):
        self.customer = Customer.objects.create(name='Asha', phone='9876543210', email='asha@example.com')
        self.cut = Service.objects.create(name='Haircut', duration=30, selling_price=Decimal('100'))
        self.wash = Service.objects.create(name='Hair wash', duration=15, selling_price=Decimal('100'))
        self.spa = Service.objects.create(name='Hair spa', duration=45, selling_price=Decimal('100'))
        self.package = Package.objects.create(name='Groom', price=Decimal('500'))
        PackageService.objects.create(package=self.package, service=self.cut, package_selling_price=Decimal('80'))
        PackageService.objects.create(package=self.package, service=self.spa)
        self.stylist = Employee.objects.create(name='Bina')


class AppointmentEngineTestCase(CatalogMixin, TestCase):

    def setUp(self):
        self.make_catalog()
        self.state = wf.WorkflowState(
            screen=wf.Screen.CHECKOUT,
            customer_id=str(self.customer.pk),
            service_ids=(str(self.cut.pk), str(self.wash.pk), str(self.spa.pk)),
            stylists={str(self.cut.pk): str(self.stylist.pk)},
            discount_type=DiscountType.FIXED,
            discount_value=Decimal('10'),
            start_time='2026-03-10T11:00',
        )

    def _quote(self, state, **kwargs):
        services, packages = load_catalog()
        return price_checkout(state, services, packages, **kwargs)

    def test_line_prices_add_up_to_discounted_subtotal(self):
        appointment = save_appointment(self.state, self._quote(self.state))
        bookings = list(appointment.bookings.order_by('start_time'))

        self.assertEqual(len(bookings), 3)
        self.assertEqual(sum(b.price_paid for b in bookings), Decimal('290.00'))
        self.assertEqual(appointment.total_price, Decimal('290.00'))
        self.assertEqual(bookings[0].employee, self.stylist)
        self.assertEqual(bookings[1].start_time, bookings[0].end_time)
        self.assertEqual(appointment.total_duration, 90)
        self.assertEqual(appointment.status_logs.get().to_status, AppointmentStatus.BOOKED)

    def test_rounding_never_gives_a_line_a_negative_price(self):
        extras = [
            Service.objects.create(name=f'Add-on {n}', duration=5, selling_price=Decimal('1'))
            for n in range(4)
        ]
        state = wf.WorkflowState(
            screen=wf.Screen.CHECKOUT, customer_id=str(self.customer.pk),
            service_ids=tuple(str(s.pk) for s in extras),
            discount_type=DiscountType.FIXED, discount_value=Decimal('3.98'),
        )
        appointment = save_appointment(state, self._quote(state))
        prices = list(appointment.bookings.values_list('price_paid', flat=True))

        self.assertEqual(sum(prices), Decimal('0.02'))
        self.assertTrue(all(price >= 0 for price in prices))
        self.assertEqual(appointment.total_price, Decimal('0.02'))

    def test_package_lines_are_keyed_per_component(self):
        state = wf.WorkflowState(
            screen=wf.Screen.CHECKOUT, customer_id=str(self.customer.pk),
            package_ids=(str(self.package.pk),),
            customized_services={str(self.package.pk): (str(self.wash.pk),)},
        )
        appointment = save_appointment(state, self._quote(state))
        keys = set(appointment.bookings.values_list('line_key', flat=True))
        self.assertEqual(keys, {
            f'{self.package.pk}:{self.cut.pk}',
            f'{self.package.pk}:{self.spa.pk}',
            f'{self.package.pk}:{self.wash.pk}',
        })
        self.assertEqual(appointment.subtotal, Decimal('600.00'))

    def test_editing_replaces_lines(self):
        appointment = save_appointment(self.state, self._quote(self.state))
        state = load_appointment_state(appointment)
        state = wf.remove_service(state, str(self.wash.pk))
        edited = save_appointment(state, self._quote(state))

        self.assertEqual(edited.pk, appointment.pk)
        self.assertEqual(edited.bookings.count(), 2)
        self.assertEqual(edited.total_price, Decimal('190.00'))

    def test_missing_customer_raises(self):
        state = wf.WorkflowState(screen=wf.Screen.CHECKOUT, customer_id=None, service_ids=(str(self.cut.pk),))
        with self.assertRaises(AppointmentSaveError):
            save_appointment(state, self._quote(state))

    def test_coupon_and_tax(self):
        coupon = Coupon.objects.create(code='WELCOME10', discount_type=DiscountType.PERCENTAGE, discount_value=10)
        tax = TaxRate.objects.create(name='GST', percentage=Decimal('18'))
        quote = self._quote(self.state, coupon=coupon, tax_rate=tax)
        # 300 - 10 fixed = 290, coupon 10% = 29 → 261, tax 18% = 46.98
        self.assertEqual(quote.totals.discounted_subtotal, Decimal('261'))
        self.assertEqual(quote.totals.tax_amount, Decimal('46.98'))

    def test_loyalty_redemption_limited_by_wallet(self):
        state = wf.set_loyalty_points(self.state, 50)
        with self.assertRaises(LoyaltyRedemptionError):
            self._quote(state, wallet=20)

        self.customer.loyalty_points = 80
        self.customer.save()
        appointment = save_appointment(state, self._quote(state, wallet=80))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_points, 30)
        self.assertEqual(appointment.total_price, Decimal('240.00'))

    def test_editing_redemption_settles_the_difference(self):
        self.customer.loyalty_points = 100
        self.customer.save()
        state = wf.set_loyalty_points(self.state, 10)
        appointment = save_appointment(state, self._quote(state, wallet=loyalty_wallet(state, self.customer)))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_points, 90)

        edit = wf.set_loyalty_points(load_appointment_state(appointment), 100)
        self.assertEqual(loyalty_wallet(edit, self.customer), 100)
        edited = save_appointment(edit, self._quote(edit, wallet=100))
        self.customer.refresh_from_db()
        self.assertEqual(edited.loyalty_points_redeemed, 100)
        self.assertEqual(edited.total_price, Decimal('190.00'))
        self.assertEqual(self.customer.loyalty_points, 0)

        edit = wf.set_loyalty_points(load_appointment_state(edited), 40)
        save_appointment(edit, self._quote(edit, wallet=loyalty_wallet(edit, self.customer)))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_points, 60)

    def test_moving_appointment_to_another_customer_refunds_points(self):
        self.customer.loyalty_points = 50
        self.customer.save()
        state = wf.set_loyalty_points(self.state, 20)
        appointment = save_appointment(state, self._quote(state, wallet=50))

        other = Customer.objects.create(name='Ravi', phone='9123456780')
        edit = wf.select_customer(load_appointment_state(appointment), str(other.pk))
        edit = wf.set_loyalty_points(edit, 0)
        self.assertEqual(loyalty_wallet(edit, other), 0)
        save_appointment(edit, self._quote(edit))

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.loyalty_points, 50)

    @override_settings(LOYALTY_POINT_VALUE='2')
    def test_redemption_cap_uses_point_value(self):
        # 290 to pay at 2 per point
        with self.assertRaises(LoyaltyRedemptionError):
            self._quote(wf.set_loyalty_points(self.state, 146), wallet=500)
        quote = self._quote(wf.set_loyalty_points(self.state, 145), wallet=500)
        self.assertEqual(quote.totals.discounted_subtotal, Decimal('0'))

    def test_status_transitions_are_guarded(self):
        appointment = save_appointment(self.state, self._quote(self.state))
        change_appointment_status(appointment, AppointmentStatus.CANCELLED, 'admin', 'No show')
        with self.assertRaises(AppointmentStateError):
            change_appointment_status(appointment, AppointmentStatus.PAID, 'admin')
        self.assertIsNone(load_appointment_state(appointment))


@override_settings(BOOKING_REQUIRE_STYLIST=False, BOOKING_AUTO_PROCEED=False)
class CheckoutViewsTestCase(CatalogMixin, TestCase):

    def setUp(self):
        self.make_catalog()
        staff = get_user_model().objects.create_user('desk', password='pw', is_staff=True)
        self.client.force_login(staff)

    def test_non_staff_forbidden(self):
        self.client.logout()
        self.assertEqual(self.client.get(reverse('bookings:state')).status_code, 403)

    def test_proceed_without_customer_is_rejected(self):
        self.client.post(reverse('bookings:toggle'), {'item_type': 'service', 'item_id': str(self.cut.pk)})
        response = self.client.post(reverse('bookings:proceed'))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], wf.MSG_NO_CUSTOMER)
        self.assertEqual(response.json()['state']['screen'], wf.Screen.SERVICE_SELECTION)

    def test_percentage_over_hundred_rejected(self):
        response = self.client.post(reverse('bookings:discount'), {
            'discount_type': DiscountType.PERCENTAGE, 'discount_value': '120',
        })
        self.assertEqual(response.status_code, 400)

    def test_full_cash_checkout(self):
        self.client.post(reverse('bookings:customer'), {'name': 'Asha', 'phone': '+91 98765 43210'})
        self.client.post(reverse('bookings:toggle'), {'item_type': 'service', 'item_id': str(self.cut.pk)})
        self.client.post(reverse('bookings:toggle'), {'item_type': 'service', 'item_id': str(self.wash.pk)})
        response = self.client.post(reverse('bookings:proceed'))
        self.assertEqual(response.json()['state']['screen'], wf.Screen.CHECKOUT)

        response = self.client.post(reverse('bookings:discount'), {
            'discount_type': DiscountType.PERCENTAGE, 'discount_value': '10',
        })
        self.assertEqual(Decimal(response.json()['quote']['discounted_subtotal']), Decimal('180'))

        response = self.client.post(reverse('bookings:save'))
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['state']['screen'], wf.Screen.SUMMARY)

        payment = Payment.objects.get(appointment_id=response.json()['appointment_id'])
        self.assertEqual(payment.status, PaymentStatus.CAPTURED)
        self.assertEqual(payment.appointment.status, AppointmentStatus.PAID)
        self.assertEqual(len(mail.outbox), 1)

        response = self.client.post(reverse('bookings:another'))
        self.assertEqual(response.json()['state'], wf.INITIAL_STATE.as_dict())

    def test_back_from_checkout(self):
        self.client.post(reverse('bookings:customer'), {'customer_id': str(self.customer.pk)})
        self.client.post(reverse('bookings:toggle'), {'item_type': 'package', 'item_id': str(self.package.pk)})
        self.client.post(reverse('bookings:proceed'))
        response = self.client.post(reverse('bookings:back'))
        self.assertEqual(response.json()['state']['screen'], wf.Screen.SERVICE_SELECTION)

    def test_unknown_coupon_keeps_state(self):
        self.client.post(reverse('bookings:customer'), {'customer_id': str(self.customer.pk)})
        self.client.post(reverse('bookings:toggle'), {'item_type': 'service', 'item_id': str(self.cut.pk)})
        self.client.post(reverse('bookings:proceed'))
        response = self.client.post(reverse('bookings:details'), {
            'payment_method': 'cash', 'coupon_code': 'NOPE',
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['state']['coupon_code'], '')
