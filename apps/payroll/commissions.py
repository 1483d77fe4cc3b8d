"""
Commission arithmetic for pay runs.

Tiered: the band that contains the employee's revenue for the period sets
the rate, and that rate applies to the whole revenue.
Flat: each serviced line earns the employee's per-service percentage.
"""
from decimal import Decimal
from typing import Optional

from apps.core.money import HUNDRED, ZERO, to_decimal

from .slabs import CommissionSlab, sort_slabs


def slab_for_amount(slabs, amount) -> Optional[CommissionSlab]:
    """
    Highest band whose min_amount the amount has reached. Bands tile whole
    units, so revenue in paise between one band's max and the next band's
    min stays in the lower band.
    """
    amount = to_decimal(amount)
    match = None
    for slab in sort_slabs(slabs):
        if amount < slab.min_amount:
            break
        match = slab
    return match


def tiered_commission(revenue, slabs) -> Decimal:
    revenue = to_decimal(revenue)
    if revenue <= 0:
        return ZERO
    slab = slab_for_amount(slabs, revenue)
    if slab is None:
        return ZERO
    return revenue * slab.percentage / HUNDRED


def flat_commission(lines, rates) -> Decimal:
    """
    `lines` is an iterable of (service_id, amount) pairs, `rates` maps
    service id to percentage. Services without a rate earn nothing.
    """
    total = ZERO
    for service_id, amount in lines:
        rate = rates.get(str(service_id))
        if rate:
            total += to_decimal(amount) * to_decimal(rate) / HUNDRED
    return total
