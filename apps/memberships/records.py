"""
Membership records used by the discount selector.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import FrozenSet, Optional

from apps.core.money import to_decimal


@dataclass(frozen=True)
class MembershipRecord:
    id: str
    name: str
    discount_type: str
    discount_value: Decimal
    min_billing_amount: Optional[Decimal] = None
    max_discount_value: Optional[Decimal] = None
    applicable_services: FrozenSet[str] = field(default_factory=frozenset)
    applicable_packages: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, 'id', str(self.id))
        object.__setattr__(self, 'discount_value', to_decimal(self.discount_value))
        if self.min_billing_amount is not None:
            object.__setattr__(self, 'min_billing_amount', to_decimal(self.min_billing_amount))
        if self.max_discount_value is not None:
            object.__setattr__(self, 'max_discount_value', to_decimal(self.max_discount_value))
        object.__setattr__(self, 'applicable_services', frozenset(str(s) for s in self.applicable_services))
        object.__setattr__(self, 'applicable_packages', frozenset(str(p) for p in self.applicable_packages))

    def covers_service(self, service_id) -> bool:
        return not self.applicable_services or str(service_id) in self.applicable_services

    def covers_package(self, package_id) -> bool:
        return not self.applicable_packages or str(package_id) in self.applicable_packages


def membership_record(membership) -> MembershipRecord:
    return MembershipRecord(
        id=membership.id,
        name=membership.name,
        discount_type=membership.discount_type,
        discount_value=membership.discount_value,
        min_billing_amount=membership.min_billing_amount,
        max_discount_value=membership.max_discount_value,
        applicable_services=[s.pk for s in membership.applicable_services.all()],
        applicable_packages=[p.pk for p in membership.applicable_packages.all()],
    )
