"""
Immutable catalog records consumed by the pricing engine.

Models are converted at the data-store boundary so the calculators never
touch the ORM and can be exercised with plain values. Conversion validates
the shape of each row; anything that would make the arithmetic meaningless
(negative price or duration) raises CatalogError.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from apps.core.money import to_decimal

from .exceptions import CatalogError


@dataclass(frozen=True)
class ServiceRecord:
    id: str
    name: str
    duration: int
    selling_price: Decimal
    category_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'id', str(self.id))
        object.__setattr__(self, 'selling_price', to_decimal(self.selling_price))
        object.__setattr__(self, 'duration', int(self.duration or 0))
        if self.selling_price < 0:
            raise CatalogError(f"Service {self.name!r} has a negative price.")
        if self.duration < 0:
            raise CatalogError(f"Service {self.name!r} has a negative duration.")


@dataclass(frozen=True)
class PackageServiceRecord:
    service: ServiceRecord
    package_selling_price: Optional[Decimal] = None

    def __post_init__(self):
        if self.package_selling_price is not None:
            price = to_decimal(self.package_selling_price)
            if price < 0:
                raise CatalogError(
                    f"Bundled price for {self.service.name!r} cannot be negative."
                )
            object.__setattr__(self, 'package_selling_price', price)

    @property
    def resolved_price(self) -> Decimal:
        """
        Price of this service inside its package.
        The package-specific price wins; otherwise the standalone selling price.
        """
        if self.package_selling_price is not None:
            return self.package_selling_price
        return self.service.selling_price


@dataclass(frozen=True)
class PackageRecord:
    id: str
    name: str
    price: Decimal
    is_customizable: bool = False
    package_services: Tuple[PackageServiceRecord, ...] = field(default_factory=tuple)
    duration: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'id', str(self.id))
        object.__setattr__(self, 'price', to_decimal(self.price))
        object.__setattr__(self, 'package_services', tuple(self.package_services or ()))
        if self.price < 0:
            raise CatalogError(f"Package {self.name!r} has a negative price.")

    def includes(self, service_id) -> bool:
        """True if the service is part of the base bundle."""
        service_id = str(service_id)
        return any(ps.service.id == service_id for ps in self.package_services)

    def bundled(self, service_id) -> Optional[PackageServiceRecord]:
        service_id = str(service_id)
        for ps in self.package_services:
            if ps.service.id == service_id:
                return ps
        return None


# ── Model → record conversion ─────────────────────────────────────────────────

def service_record(service) -> ServiceRecord:
    return ServiceRecord(
        id=service.id,
        name=service.name,
        duration=service.duration,
        selling_price=service.selling_price,
        category_id=str(service.category_id) if service.category_id else None,
    )


def package_record(package) -> PackageRecord:
    """Expects `package_services__service` to be prefetched for list use."""
    return PackageRecord(
        id=package.id,
        name=package.name,
        price=package.price,
        is_customizable=package.is_customizable,
        duration=package.duration,
        package_services=tuple(
            PackageServiceRecord(
                service=service_record(ps.service),
                package_selling_price=ps.package_selling_price,
            )
            for ps in package.package_services.all()
        ),
    )


def load_catalog():
    """
    Fetch every active service and package as records.
    Returns (services, packages) lists.
    """
    from .models import Package, Service

    services = [service_record(s) for s in Service.objects.active()]
    packages = [
        package_record(p)
        for p in Package.objects.active().prefetch_related('package_services__service')
    ]
    return services, packages
