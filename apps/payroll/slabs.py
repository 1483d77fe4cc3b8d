"""
Tiered commission slabs: validation and editing helpers.

A schedule is a list of revenue bands. Sorted by min_amount they must tile
[0, ∞) exactly: each band starts one unit after the previous one ends, and
only the last band is open-ended (max_amount is None).

validate_slabs() stops at the first problem and hands its message to the
caller's notifier; it never raises. The editing helpers return new lists
and keep exactly one trailing open-ended band.
"""
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, List, Optional

from django.conf import settings

from apps.core.money import HUNDRED, ZERO, to_decimal

ONE = Decimal('1')

MSG_EMPTY = 'At least one commission slab is required.'
MSG_PERCENTAGE = 'Commission percentage must be between 0 and 100.'
MSG_NEGATIVE = 'Slab amounts cannot be negative.'
MSG_UNBOUNDED_NOT_LAST = 'Only the last slab can be open-ended.'
MSG_MIN_NOT_BELOW_MAX = 'Each slab needs a maximum greater than its minimum.'
MSG_OVERLAP = 'Slab ranges cannot overlap. Please adjust the min/max values.'
MSG_GAP = 'Slab ranges must be continuous without gaps.'
MSG_LAST_BOUNDED = 'The last slab must be open-ended (no maximum).'


@dataclass(frozen=True)
class CommissionSlab:
    min_amount: Decimal
    max_amount: Optional[Decimal]
    percentage: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'min_amount', to_decimal(self.min_amount))
        if self.max_amount is not None:
            object.__setattr__(self, 'max_amount', to_decimal(self.max_amount))
        object.__setattr__(self, 'percentage', to_decimal(self.percentage))

    @property
    def is_open_ended(self) -> bool:
        return self.max_amount is None

    def contains(self, amount) -> bool:
        amount = to_decimal(amount)
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount

    def as_dict(self) -> dict:
        return {
            'min_amount': str(self.min_amount),
            'max_amount': None if self.max_amount is None else str(self.max_amount),
            'percentage': str(self.percentage),
        }


def sort_slabs(slabs) -> List[CommissionSlab]:
    return sorted(slabs or [], key=lambda s: s.min_amount)


def default_slabs(percentage=10) -> List[CommissionSlab]:
    """The minimal valid schedule: one open-ended band from zero."""
    return [CommissionSlab(ZERO, None, to_decimal(percentage))]


# ── Validation ────────────────────────────────────────────────────────────────

def first_slab_error(slabs) -> Optional[str]:
    """Message for the first rule the schedule breaks, or None if it is valid."""
    if not slabs:
        return MSG_EMPTY

    ordered = sort_slabs(slabs)
    last = len(ordered) - 1

    for i, slab in enumerate(ordered):
        if slab.percentage < 0 or slab.percentage > HUNDRED:
            return MSG_PERCENTAGE
        if slab.min_amount < 0:
            return MSG_NEGATIVE
        if slab.max_amount is None:
            if i != last:
                return MSG_UNBOUNDED_NOT_LAST
        elif slab.min_amount >= slab.max_amount:
            return MSG_MIN_NOT_BELOW_MAX

    for current, following in zip(ordered, ordered[1:]):
        if current.max_amount >= following.min_amount:
            return MSG_OVERLAP
        if current.max_amount + ONE != following.min_amount:
            return MSG_GAP

    if ordered[last].max_amount is not None:
        return MSG_LAST_BOUNDED
    return None


def validate_slabs(slabs, on_error: Optional[Callable[[str], None]] = None) -> bool:
    error = first_slab_error(slabs)
    if error is None:
        return True
    if on_error is not None:
        on_error(error)
    return False


# ── Editing ───────────────────────────────────────────────────────────────────

def _close_tail(slabs: List[CommissionSlab]) -> List[CommissionSlab]:
    if slabs and slabs[-1].max_amount is not None:
        slabs[-1] = replace(slabs[-1], max_amount=None)
    return slabs


def add_slab(slabs, percentage=None, span=None) -> List[CommissionSlab]:
    """
    Append a band. The current last band gets a maximum `span` units above its
    minimum and the new band opens right after it.
    """
    ordered = sort_slabs(slabs)
    if not ordered:
        return default_slabs() if percentage is None else default_slabs(percentage)

    span = to_decimal(span if span is not None else getattr(settings, 'COMMISSION_SLAB_SPAN', 100000))
    tail = ordered[-1]
    closed_max = tail.min_amount + span - ONE
    ordered[-1] = replace(tail, max_amount=closed_max)
    ordered.append(CommissionSlab(
        min_amount=closed_max + ONE,
        max_amount=None,
        percentage=tail.percentage if percentage is None else percentage,
    ))
    return ordered


def remove_slab(slabs, index: int) -> List[CommissionSlab]:
    """
    Drop the band at `index` and re-chain the rest from zero. Removing the
    only band is a no-op; check `len(slabs) > 1` to tell the user why.
    """
    current = list(slabs or [])
    if len(current) <= 1 or not 0 <= index < len(current):
        return current

    del current[index]
    rechained = []
    for i, slab in enumerate(current):
        start = ZERO if i == 0 else rechained[i - 1].max_amount + ONE
        rechained.append(replace(slab, min_amount=start))
    return _close_tail(rechained)


def update_slab(slabs, index: int, field_name: str, value) -> List[CommissionSlab]:
    """
    Change one field of one band. Moving a maximum pulls the next band's
    minimum along with it; the last band stays open-ended.
    """
    if field_name not in ('min_amount', 'max_amount', 'percentage'):
        raise ValueError(f"Unknown slab field {field_name!r}")

    current = list(slabs or [])
    if not 0 <= index < len(current):
        return current

    value = None if value is None else to_decimal(value)
    current[index] = replace(current[index], **{field_name: value})
    if field_name == 'max_amount' and value is not None and index < len(current) - 1:
        current[index + 1] = replace(current[index + 1], min_amount=value + ONE)
    return _close_tail(current)
