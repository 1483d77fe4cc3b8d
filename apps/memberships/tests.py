from datetime import date, timedelta
from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from apps.catalog.records import PackageRecord, PackageServiceRecord, ServiceRecord
from apps.customers.models import Customer

from .models import CustomerMembership, CustomerMembershipStatus, Membership
from .records import MembershipRecord
from .selector import NO_MEMBERSHIP_DISCOUNT, load_active_memberships, membership_discount_for, select_best_membership


def plan(pid, discount_type, value, **kwargs):
    return MembershipRecord(id=pid, name=f'Plan {pid}', discount_type=discount_type,
                            discount_value=Decimal(value), **kwargs)


class MembershipSelectorTestCase(SimpleTestCase):

    def setUp(self):
        self.cut = ServiceRecord(id='cut', name='Haircut', duration=30, selling_price=Decimal('400'))
        self.spa = ServiceRecord(id='spa', name='Spa', duration=60, selling_price=Decimal('600'))
        self.services = [self.cut, self.spa]
        self.package = PackageRecord(
            id='glow', name='Glow', price=Decimal('1000'),
            package_services=(PackageServiceRecord(self.spa),),
        )
        self.packages = [self.package]

    def best(self, memberships, service_ids=('cut', 'spa'), package_ids=()):
        return select_best_membership(memberships, list(service_ids), list(package_ids),
                                      self.services, self.packages)

    def test_percentage_on_covered_services_only(self):
        gold = plan('1', 'percentage', '10', applicable_services=['cut'])
        self.assertEqual(self.best([gold]).discount_amount, Decimal('40'))

    def test_empty_coverage_means_everything(self):
        self.assertEqual(self.best([plan('1', 'percentage', '10')]).discount_amount, Decimal('100'))

    def test_fixed_amount_is_shared_by_price_weight(self):
        flat = plan('1', 'fixed', '200', applicable_services=['cut'])
        # 200 * 400 / 1000
        self.assertEqual(self.best([flat]).discount_amount, Decimal('80'))

    def test_cap_applies(self):
        capped = plan('1', 'percentage', '50', max_discount_value=Decimal('150'))
        self.assertEqual(self.best([capped]).discount_amount, Decimal('150'))

    def test_minimum_bill_not_met_gives_nothing(self):
        plans = [
            plan('1', 'percentage', '10', min_billing_amount=Decimal('5000')),
            plan('2', 'fixed', '300', min_billing_amount=Decimal('2000')),
        ]
        self.assertIs(self.best(plans), NO_MEMBERSHIP_DISCOUNT)
        self.assertFalse(self.best(plans))

    def test_largest_discount_wins(self):
        result = self.best([plan('1', 'percentage', '5'), plan('2', 'percentage', '15')])
        self.assertEqual(result.membership_id, '2')
        self.assertEqual(result.discount_amount, Decimal('150'))

    def test_tie_goes_to_lowest_id(self):
        result = self.best([plan('b', 'percentage', '10'), plan('a', 'fixed', '100')])
        self.assertEqual(result.membership_id, 'a')

    def test_package_uses_customised_price(self):
        gold = plan('1', 'percentage', '10', applicable_packages=['glow'])
        amount = membership_discount_for(
            gold, [], ['glow'], self.services, self.packages, {'glow': ['cut']},
        )
        self.assertEqual(amount, Decimal('140'))

    def test_no_selection_no_discount(self):
        self.assertIs(self.best([plan('1', 'percentage', '10')], service_ids=()), NO_MEMBERSHIP_DISCOUNT)


class ActiveMembershipTestCase(TestCase):

    def setUp(self):
        self.customer = Customer.objects.create(name='Asha', phone='9876543210')
        self.gold = Membership.objects.create(name='Gold', discount_value=Decimal('10'), validity_days=30)

    def test_end_date_from_validity(self):
        holding = CustomerMembership.objects.create(
            customer=self.customer, membership=self.gold, start_date=date(2026, 1, 1),
        )
        self.assertEqual(holding.end_date, date(2026, 1, 31))

    def test_only_current_active_holdings_load(self):
        today = date(2026, 3, 10)
        CustomerMembership.objects.create(customer=self.customer, membership=self.gold, start_date=today)
        CustomerMembership.objects.create(
            customer=self.customer, membership=self.gold,
            start_date=today - timedelta(days=90),
        )
        silver = Membership.objects.create(name='Silver', discount_value=Decimal('5'))
        CustomerMembership.objects.create(
            customer=self.customer, membership=silver, start_date=today,
            status=CustomerMembershipStatus.CANCELLED,
        )

        records = load_active_memberships(self.customer, on_date=today)
        self.assertEqual([r.name for r in records], ['Gold'])

    def test_no_customer(self):
        self.assertEqual(load_active_memberships(None), [])
