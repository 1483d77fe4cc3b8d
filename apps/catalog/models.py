"""
Catalog models: service categories, services and packages.

A Package is a bundle sold at its own base `price`. Each bundled service may
carry a `package_selling_price`, the per-service share shown on receipts;
when it is empty the service's standalone `selling_price` is used instead.
Customisable packages accept extra services at checkout, charged at their
standalone price on top of the base price.
"""
from django.db import models
from django.core.validators import MinValueValidator
from apps.core.models import BaseModel, UUIDModel


class ServiceCategory(BaseModel):
    name = models.CharField(max_length=120, unique=True)

    class Meta:
        verbose_name = 'Service Category'
        verbose_name_plural = 'Service Categories'
        ordering = ['name']

    def __str__(self):
        return self.name


class Service(BaseModel):
    category = models.ForeignKey(
        ServiceCategory,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='services',
    )
    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    duration = models.PositiveIntegerField(help_text='Duration in minutes')
    selling_price = models.DecimalField(
        max_digits=10, decimal_places=2,
        validators=[MinValueValidator(0)],
    )

    class Meta:
        verbose_name = 'Service'
        verbose_name_plural = 'Services'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.duration} min)"


class Package(BaseModel):
    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=10, decimal_places=2,
        validators=[MinValueValidator(0)],
        help_text='Base bundle price',
    )
    duration = models.PositiveIntegerField(
        null=True, blank=True,
        help_text='Optional fixed duration; defaults to the sum of bundled services',
    )
    is_customizable = models.BooleanField(default=False)
    services = models.ManyToManyField(Service, through='PackageService', related_name='packages')

    class Meta:
        verbose_name = 'Package'
        verbose_name_plural = 'Packages'
        ordering = ['name']

    def __str__(self):
        return self.name


class PackageService(UUIDModel):
    package = models.ForeignKey(Package, on_delete=models.CASCADE, related_name='package_services')
    service = models.ForeignKey(Service, on_delete=models.PROTECT, related_name='package_services')
    package_selling_price = models.DecimalField(
        max_digits=10, decimal_places=2,
        null=True, blank=True,
        validators=[MinValueValidator(0)],
    )

    class Meta:
        verbose_name = 'Package Service'
        verbose_name_plural = 'Package Services'
        unique_together = [('package', 'service')]

    def __str__(self):
        return f"{self.package.name} → {self.service.name}"
