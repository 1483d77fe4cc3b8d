"""
Checkout pricing engine. Pure business logic, no ORM or request awareness.

Every function takes catalog records (apps.catalog.records) and plain ids.
Lookups are lenient: an id that is not in the supplied catalog is skipped,
and a missing or non-list collection is treated as empty.

Public API:
  get_total_price(service_ids, package_ids, services, packages, customized_services)
  get_total_duration(service_ids, package_ids, services, packages, customized_services)
  calculate_package_price(package, custom_ids, services)
  get_service_price_in_package(service_id, package_id, packages)
  get_final_price(total_price, discount_type, discount_value)
  calculate_adjusted_price(original_item_price, original_total, discounted_total)
  checkout_lines(...)
  get_adjusted_service_prices(...)
  calculate_checkout_totals(...)
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING
from typing import Dict, List, Optional

from apps.core.money import HUNDRED, ZERO, to_decimal


class DiscountType:
    NONE = 'none'
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'

    CHOICES = [
        (NONE, 'No discount'),
        (PERCENTAGE, 'Percentage'),
        (FIXED, 'Fixed amount'),
    ]


# ── Collection helpers ────────────────────────────────────────────────────────

def as_list(value) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def index_by_id(records) -> dict:
    return {r.id: r for r in as_list(records)}


def custom_service_ids(customized_services, package_id) -> list:
    if not isinstance(customized_services, dict):
        return []
    return [str(sid) for sid in as_list(customized_services.get(str(package_id)))]


def _added_services(package, custom_ids, services_by_id) -> list:
    """Customised services that exist and are not already in the base bundle."""
    added = []
    for service_id in custom_ids:
        if package.includes(service_id):
            continue
        service = services_by_id.get(str(service_id))
        if service is not None:
            added.append(service)
    return added


# ── Aggregation ───────────────────────────────────────────────────────────────

def calculate_package_price(package, custom_ids, services) -> Decimal:
    """Base bundle price plus the standalone price of each added service."""
    if package is None:
        return ZERO
    services_by_id = index_by_id(services)
    total = package.price
    for service in _added_services(package, [str(s) for s in as_list(custom_ids)], services_by_id):
        total += service.selling_price
    return total


def package_duration(package, custom_ids, services) -> int:
    """
    The package's own duration when configured, otherwise the sum of its
    bundled services, plus every added service.
    """
    if package is None:
        return 0
    if package.duration:
        minutes = package.duration
    else:
        minutes = sum(ps.service.duration for ps in package.package_services)
    services_by_id = index_by_id(services)
    for service in _added_services(package, [str(s) for s in as_list(custom_ids)], services_by_id):
        minutes += service.duration
    return minutes


def get_total_price(service_ids, package_ids, services, packages,
                    customized_services=None) -> Decimal:
    services_by_id = index_by_id(services)
    packages_by_id = index_by_id(packages)
    total = ZERO

    for service_id in as_list(service_ids):
        service = services_by_id.get(str(service_id))
        if service is not None:
            total += service.selling_price

    for package_id in as_list(package_ids):
        package = packages_by_id.get(str(package_id))
        if package is not None:
            total += calculate_package_price(
                package, custom_service_ids(customized_services, package_id), services,
            )
    return total


def get_total_duration(service_ids, package_ids, services, packages,
                       customized_services=None) -> int:
    services_by_id = index_by_id(services)
    packages_by_id = index_by_id(packages)
    minutes = 0

    for service_id in as_list(service_ids):
        service = services_by_id.get(str(service_id))
        if service is not None:
            minutes += service.duration

    for package_id in as_list(package_ids):
        package = packages_by_id.get(str(package_id))
        if package is not None:
            minutes += package_duration(
                package, custom_service_ids(customized_services, package_id), services,
            )
    return minutes


def get_service_price_in_package(service_id, package_id, packages) -> Decimal:
    """Resolved price of a bundled service. Zero when either id is unknown."""
    package = index_by_id(packages).get(str(package_id))
    if package is None:
        return ZERO
    bundled = package.bundled(service_id)
    return bundled.resolved_price if bundled is not None else ZERO


# ── Discounts ─────────────────────────────────────────────────────────────────

def get_final_price(total_price, discount_type, discount_value) -> Decimal:
    """
    Apply one manual discount to a subtotal.

    A fixed discount never takes the total below zero. A percentage is not
    clamped here; the checkout form limits it to 0-100.
    """
    total_price = to_decimal(total_price)
    discount_value = to_decimal(discount_value)

    if discount_type == DiscountType.NONE or discount_value <= 0:
        return total_price
    if discount_type == DiscountType.PERCENTAGE:
        return total_price * (1 - discount_value / HUNDRED)
    if discount_type == DiscountType.FIXED:
        return max(ZERO, total_price - discount_value)
    return total_price


def calculate_adjusted_price(original_item_price, original_total, discounted_total) -> Decimal:
    """Scale one line by discounted_total / original_total."""
    original_item_price = to_decimal(original_item_price)
    original_total = to_decimal(original_total)
    if original_total == 0:
        return original_item_price
    return original_item_price * (to_decimal(discounted_total) / original_total)


def coupon_discount(discount_type, discount_value, amount) -> Decimal:
    """Coupon value against `amount`; a fixed coupon is capped at the amount."""
    amount = to_decimal(amount)
    discount_value = to_decimal(discount_value)
    if amount <= 0 or discount_value <= 0:
        return ZERO
    if discount_type == DiscountType.PERCENTAGE:
        return amount * discount_value / HUNDRED
    if discount_type == DiscountType.FIXED:
        return min(discount_value, amount)
    return ZERO


def tax_amount(rate, discounted_subtotal) -> Decimal:
    rate = to_decimal(rate)
    if rate <= 0:
        return ZERO
    return to_decimal(discounted_subtotal) * rate / HUNDRED


# ── Loyalty points ────────────────────────────────────────────────────────────

def loyalty_points_value(points, point_value=1) -> Decimal:
    points = to_decimal(points)
    point_value = to_decimal(point_value)
    if points <= 0 or point_value <= 0:
        return ZERO
    return points * point_value


def points_earned(amount, points_per_spend) -> int:
    """Points earned for a purchase; `points_per_spend` is per 100 spent."""
    amount = to_decimal(amount)
    points_per_spend = to_decimal(points_per_spend)
    if amount <= 0 or points_per_spend <= 0:
        return 0
    return int(amount * points_per_spend / HUNDRED)


def max_redeemable_points(wallet_balance, subtotal, min_points=0,
                          max_type=None, max_value=None, point_value=1) -> int:
    """
    Largest redemption allowed for this bill.
    `max_type` is 'fixed' (points) or 'percentage' (of subtotal), or None.
    Currency caps are turned into points at `point_value` per point.
    """
    wallet_balance = int(wallet_balance or 0)
    min_points = int(min_points or 0)
    subtotal = to_decimal(subtotal)
    point_value = to_decimal(point_value)
    if wallet_balance < min_points or point_value <= 0:
        return 0

    allowed = wallet_balance
    if max_type == 'fixed' and max_value:
        allowed = min(allowed, int(max_value))
    elif max_type == 'percentage' and max_value:
        allowed = min(allowed, int(subtotal * to_decimal(max_value) / HUNDRED / point_value))

    # Never redeem more than the bill, rounded up to the next whole point
    allowed = min(allowed, int((subtotal / point_value).to_integral_value(rounding=ROUND_CEILING)))
    if allowed < min_points:
        return 0
    return allowed


# ── Line items ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CheckoutLine:
    key: str
    name: str
    original_price: Decimal
    duration: int
    service_id: Optional[str] = None
    package_id: Optional[str] = None
    is_customized: bool = False


def _package_lines(package, custom_ids, services_by_id) -> List[CheckoutLine]:
    """
    Split a package into priced lines whose originals sum to the package price.
    The base price is shared across bundled services in proportion to their
    resolved prices; the last bundled line absorbs any rounding remainder.
    """
    lines = []
    bundled = list(package.package_services)
    if bundled:
        weights = [ps.resolved_price for ps in bundled]
        weight_total = sum(weights, ZERO)
        allocated = ZERO
        for i, ps in enumerate(bundled):
            if i == len(bundled) - 1:
                share = package.price - allocated
            elif weight_total > 0:
                share = package.price * weights[i] / weight_total
            else:
                share = package.price / len(bundled)
            allocated += share
            lines.append(CheckoutLine(
                key=f"{package.id}:{ps.service.id}",
                name=ps.service.name,
                original_price=share,
                duration=ps.service.duration,
                service_id=ps.service.id,
                package_id=package.id,
            ))
    else:
        lines.append(CheckoutLine(
            key=package.id,
            name=package.name,
            original_price=package.price,
            duration=package.duration or 0,
            package_id=package.id,
        ))

    for service in _added_services(package, custom_ids, services_by_id):
        lines.append(CheckoutLine(
            key=f"{package.id}:{service.id}",
            name=service.name,
            original_price=service.selling_price,
            duration=service.duration,
            service_id=service.id,
            package_id=package.id,
            is_customized=True,
        ))
    return lines


def checkout_lines(service_ids, package_ids, services, packages,
                   customized_services=None) -> List[CheckoutLine]:
    """
    Flatten a selection into priced lines. Standalone services are keyed by
    service id, package components by "<package_id>:<service_id>".
    """
    services_by_id = index_by_id(services)
    packages_by_id = index_by_id(packages)
    lines = []

    for service_id in as_list(service_ids):
        service = services_by_id.get(str(service_id))
        if service is not None:
            lines.append(CheckoutLine(
                key=service.id,
                name=service.name,
                original_price=service.selling_price,
                duration=service.duration,
                service_id=service.id,
            ))

    for package_id in as_list(package_ids):
        package = packages_by_id.get(str(package_id))
        if package is not None:
            lines.extend(_package_lines(
                package, custom_service_ids(customized_services, package_id), services_by_id,
            ))
    return lines


def get_adjusted_service_prices(service_ids, package_ids, services, packages,
                                customized_services=None,
                                discounted_total=None) -> Dict[str, Decimal]:
    """
    Each line's share of the discounted total. `discounted_total` defaults to
    the undiscounted total, which returns the original line prices.
    """
    lines = checkout_lines(service_ids, package_ids, services, packages, customized_services)
    original_total = sum((line.original_price for line in lines), ZERO)
    if discounted_total is None:
        discounted_total = original_total
    return {
        line.key: calculate_adjusted_price(line.original_price, original_total, discounted_total)
        for line in lines
    }


# ── Full checkout ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CheckoutTotals:
    subtotal: Decimal
    manual_discount: Decimal
    membership_discount: Decimal
    coupon_discount: Decimal
    loyalty_discount: Decimal
    discounted_subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    grand_total: Decimal
    total_duration: int
    lines: List[CheckoutLine] = field(default_factory=list)
    adjusted_prices: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_discount(self) -> Decimal:
        return self.subtotal - self.discounted_subtotal

    def as_dict(self) -> dict:
        return {
            'subtotal': str(self.subtotal),
            'manual_discount': str(self.manual_discount),
            'membership_discount': str(self.membership_discount),
            'coupon_discount': str(self.coupon_discount),
            'loyalty_discount': str(self.loyalty_discount),
            'discounted_subtotal': str(self.discounted_subtotal),
            'tax_rate': str(self.tax_rate),
            'tax_amount': str(self.tax_amount),
            'grand_total': str(self.grand_total),
            'total_duration': self.total_duration,
            'adjusted_prices': {k: str(v) for k, v in self.adjusted_prices.items()},
        }


def calculate_checkout_totals(service_ids, package_ids, services, packages,
                              customized_services=None,
                              discount_type=DiscountType.NONE, discount_value=0,
                              membership_discount=0,
                              coupon_type=None, coupon_value=0,
                              loyalty_value=0, tax_rate=0) -> CheckoutTotals:
    """
    original → manual discount → membership → coupon → loyalty, floored at 0,
    then tax on what is left. Every line is re-priced by the same ratio so
    the adjusted lines add back up to the discounted subtotal.
    """
    lines = checkout_lines(service_ids, package_ids, services, packages, customized_services)
    subtotal = get_total_price(service_ids, package_ids, services, packages, customized_services)

    after_manual = get_final_price(subtotal, discount_type, discount_value)
    manual = subtotal - after_manual

    # Each step records only what it actually took off the bill
    membership = min(to_decimal(membership_discount), max(ZERO, after_manual))
    after_membership = after_manual - membership

    coupon = coupon_discount(coupon_type, coupon_value, max(ZERO, after_membership))
    after_coupon = after_membership - coupon
    loyalty = min(to_decimal(loyalty_value), max(ZERO, after_coupon))

    discounted = max(ZERO, after_coupon - loyalty)
    tax_rate = to_decimal(tax_rate)
    tax = tax_amount(tax_rate, discounted)

    return CheckoutTotals(
        subtotal=subtotal,
        manual_discount=manual,
        membership_discount=membership,
        coupon_discount=coupon,
        loyalty_discount=loyalty,
        discounted_subtotal=discounted,
        tax_rate=tax_rate,
        tax_amount=tax,
        grand_total=discounted + tax,
        total_duration=get_total_duration(
            service_ids, package_ids, services, packages, customized_services,
        ),
        lines=lines,
        adjusted_prices={
            line.key: calculate_adjusted_price(line.original_price, subtotal, discounted)
            for line in lines
        },
    )
