"""
Membership discount selection.

A customer can hold several active memberships; exactly one is applied per
checkout, the one giving the largest discount on the current basket.

For each membership:
  1. Skip it when the pre-discount bill is below its min_billing_amount.
  2. Each selected service it covers contributes
       percentage → price * value / 100
       fixed      → value * price / total_bill   (the flat amount is shared
                    across covered lines by price weight, not repeated)
  3. Packages are treated the same way using their customised price.
  4. The sum is capped at max_discount_value, then at the bill itself.
The best candidate wins. Equal candidates go to the lowest membership id so
the result does not depend on query order.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.utils import timezone

from apps.bookings.pricing import (
    as_list,
    calculate_package_price,
    custom_service_ids,
    get_total_price,
    index_by_id,
)
from apps.core.money import HUNDRED, ZERO

from .records import MembershipRecord, membership_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipDiscount:
    discount_amount: Decimal
    membership_id: Optional[str]
    membership_name: Optional[str]

    def __bool__(self):
        return self.membership_id is not None and self.discount_amount > 0

    def as_dict(self) -> dict:
        return {
            'discount_amount': str(self.discount_amount),
            'membership_id': self.membership_id,
            'membership_name': self.membership_name,
        }


NO_MEMBERSHIP_DISCOUNT = MembershipDiscount(ZERO, None, None)


def _line_discount(membership: MembershipRecord, price: Decimal, total_bill: Decimal) -> Decimal:
    if membership.discount_type == 'percentage':
        return price * membership.discount_value / HUNDRED
    if total_bill <= 0:
        return ZERO
    return membership.discount_value * price / total_bill


def membership_discount_for(membership: MembershipRecord, service_ids, package_ids,
                            services, packages, customized_services=None,
                            total_bill=None) -> Decimal:
    """Candidate discount one membership gives this basket. Zero if it does not qualify."""
    if total_bill is None:
        total_bill = get_total_price(service_ids, package_ids, services, packages, customized_services)

    if membership.min_billing_amount is not None and total_bill < membership.min_billing_amount:
        return ZERO

    services_by_id = index_by_id(services)
    packages_by_id = index_by_id(packages)
    discount = ZERO

    for service_id in as_list(service_ids):
        service = services_by_id.get(str(service_id))
        if service is None or not membership.covers_service(service.id):
            continue
        discount += _line_discount(membership, service.selling_price, total_bill)

    for package_id in as_list(package_ids):
        package = packages_by_id.get(str(package_id))
        if package is None or not membership.covers_package(package.id):
            continue
        price = calculate_package_price(
            package, custom_service_ids(customized_services, package_id), services,
        )
        discount += _line_discount(membership, price, total_bill)

    if membership.max_discount_value is not None:
        discount = min(discount, membership.max_discount_value)
    return min(discount, total_bill)


def select_best_membership(memberships, service_ids, package_ids, services, packages,
                           customized_services=None) -> MembershipDiscount:
    memberships = as_list(memberships)
    if not memberships or not (as_list(service_ids) or as_list(package_ids)):
        return NO_MEMBERSHIP_DISCOUNT

    total_bill = get_total_price(service_ids, package_ids, services, packages, customized_services)
    best = NO_MEMBERSHIP_DISCOUNT

    for membership in sorted(memberships, key=lambda m: m.id):
        amount = membership_discount_for(
            membership, service_ids, package_ids, services, packages,
            customized_services, total_bill,
        )
        if amount > best.discount_amount:
            best = MembershipDiscount(amount, membership.id, membership.name)

    return best


# ── Data-store boundary ───────────────────────────────────────────────────────

def load_active_memberships(customer, on_date=None) -> list:
    """Membership records for the customer's plans that are active on `on_date`."""
    from .models import CustomerMembership, CustomerMembershipStatus

    if customer is None:
        return []
    on_date = on_date or timezone.localdate()
    holdings = (
        CustomerMembership.objects
        .filter(customer=customer, status=CustomerMembershipStatus.ACTIVE, membership__is_active=True)
        .select_related('membership')
        .prefetch_related('membership__applicable_services', 'membership__applicable_packages')
    )
    records = [membership_record(h.membership) for h in holdings if h.covers(on_date)]
    logger.debug('Customer %s has %d active memberships', customer.pk, len(records))
    return records
