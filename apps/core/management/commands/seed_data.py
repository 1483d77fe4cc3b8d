"""
Seed management command.

Populates the database with demo data for the front desk:
  - 2 service categories, 6 services
  - 2 packages (one customisable)
  - 2 membership plans
  - 3 employees, one on a tiered commission template and one on a monthly salary
  - 2 coupons and a GST tax rate

Usage:
    python manage.py seed_data
    python manage.py seed_data --flush   # wipe and re-seed
"""
from datetime import date
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.bookings.models import Coupon, TaxRate
from apps.catalog.models import Package, PackageService, Service, ServiceCategory
from apps.memberships.models import Membership
from apps.payroll.engine import save_commission_template, set_employee_compensation
from apps.payroll.models import CommissionTemplate, CommissionType, Employee, ServiceCommission
from apps.payroll.slabs import CommissionSlab


SERVICES = [
    # (category, name, duration, price)
    ('Hair', 'Haircut',          30,  400),
    ('Hair', 'Hair Spa',         45,  900),
    ('Hair', 'Global Colour',    90, 2500),
    ('Skin', 'Classic Facial',   60, 1200),
    ('Skin', 'Detan Pack',       30,  600),
    ('Skin', 'Manicure',         40,  500),
]

SLABS = [
    CommissionSlab(0, 50000, 5),
    CommissionSlab(50001, 100000, 8),
    CommissionSlab(100001, None, 10),
]


class Command(BaseCommand):
    help = 'Seed services, packages, memberships, staff, coupons and tax'

    def add_arguments(self, parser):
        parser.add_argument(
            '--flush', action='store_true',
            help='Delete all existing seed data before creating fresh records',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options['flush']:
            self.stdout.write('Flushing existing data...')
            Coupon.objects.all().delete()
            TaxRate.objects.all().delete()
            Membership.objects.all().delete()
            Employee.objects.all().delete()
            CommissionTemplate.objects.all().delete()
            Package.objects.all().delete()
            Service.objects.all().delete()
            ServiceCategory.objects.all().delete()

        # ── Services ──────────────────────────────────────────────────────────
        self.stdout.write('Seeding services...')
        services = {}
        for category_name, name, duration, price in SERVICES:
            category, _ = ServiceCategory.objects.get_or_create(name=category_name)
            services[name], _ = Service.objects.get_or_create(
                name=name, category=category,
                defaults={'duration': duration, 'selling_price': Decimal(price)},
            )
        self.stdout.write(self.style.SUCCESS(f'  ✔ {len(services)} services created'))

        # ── Packages ──────────────────────────────────────────────────────────
        self.stdout.write('Seeding packages...')
        bridal, _ = Package.objects.get_or_create(
            name='Bridal Glow', defaults={'price': Decimal('3500'), 'is_customizable': True},
        )
        for name, share in [('Classic Facial', 1000), ('Hair Spa', 800), ('Manicure', 400)]:
            PackageService.objects.get_or_create(
                package=bridal, service=services[name],
                defaults={'package_selling_price': Decimal(share)},
            )
        refresh, _ = Package.objects.get_or_create(name='Quick Refresh', defaults={'price': Decimal('900')})
        for name in ['Haircut', 'Detan Pack']:
            PackageService.objects.get_or_create(package=refresh, service=services[name])
        self.stdout.write(self.style.SUCCESS('  ✔ 2 packages created'))

        # ── Memberships ───────────────────────────────────────────────────────
        self.stdout.write('Seeding memberships...')
        Membership.objects.get_or_create(
            name='Gold', defaults={
                'discount_type': 'percentage', 'discount_value': Decimal('10'),
                'max_discount_value': Decimal('1000'), 'price': Decimal('2999'),
            },
        )
        Membership.objects.get_or_create(
            name='Silver', defaults={
                'discount_type': 'fixed', 'discount_value': Decimal('250'),
                'min_billing_amount': Decimal('1500'), 'price': Decimal('999'),
            },
        )
        self.stdout.write(self.style.SUCCESS('  ✔ 2 memberships created'))

        # ── Staff and commission ──────────────────────────────────────────────
        self.stdout.write('Seeding employees...')
        template = CommissionTemplate.objects.filter(name='Senior stylist').first()
        if template is None:
            template = save_commission_template(
                'Senior stylist', SLABS, description='Monthly revenue bands',
                on_error=lambda message: self.stderr.write(message),
            )

        Employee.objects.get_or_create(
            name='Priya Nair', defaults={
                'commission_type': CommissionType.TIERED, 'commission_template': template,
            },
        )
        rajan, created = Employee.objects.get_or_create(
            name='Rajan Kumar', defaults={'commission_type': CommissionType.FLAT},
        )
        if created:
            ServiceCommission.objects.create(employee=rajan, service=services['Haircut'], percentage=Decimal('20'))
            ServiceCommission.objects.create(employee=rajan, service=services['Hair Spa'], percentage=Decimal('15'))
        anitha, created = Employee.objects.get_or_create(name='Anitha Raj')
        if created:
            set_employee_compensation(anitha, Decimal('18000'), date(2026, 1, 1))
        self.stdout.write(self.style.SUCCESS('  ✔ 3 employees created'))

        # ── Coupons and tax ───────────────────────────────────────────────────
        self.stdout.write('Seeding coupons and tax...')
        Coupon.objects.get_or_create(
            code='WELCOME10', defaults={'discount_type': 'percentage', 'discount_value': Decimal('10')},
        )
        Coupon.objects.get_or_create(
            code='FLAT200', defaults={'discount_type': 'fixed', 'discount_value': Decimal('200')},
        )
        TaxRate.objects.get_or_create(name='GST 18%', defaults={'percentage': Decimal('18')})
        self.stdout.write(self.style.SUCCESS('  ✔ 2 coupons and 1 tax rate created'))

        self.stdout.write(self.style.SUCCESS('\n✅ Seed complete!'))
