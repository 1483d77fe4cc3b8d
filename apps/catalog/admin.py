from django.contrib import admin
from .models import Package, PackageService, Service, ServiceCategory


@admin.register(ServiceCategory)
class ServiceCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active']
    search_fields = ['name']


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'duration', 'selling_price', 'is_active']
    list_filter = ['category', 'is_active']
    search_fields = ['name', 'category__name']
    list_editable = ['is_active', 'selling_price']
    readonly_fields = ['id', 'created_at', 'updated_at']
    fieldsets = (
        ('Service Info', {'fields': ('id', 'category', 'name', 'description')}),
        ('Timing & Pricing', {'fields': ('duration', 'selling_price')}),
        ('Status', {'fields': ('is_active',)}),
        ('Audit', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )


class PackageServiceInline(admin.TabularInline):
    model = PackageService
    extra = 1
    autocomplete_fields = ['service']


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ['name', 'price', 'duration', 'is_customizable', 'is_active']
    list_filter = ['is_customizable', 'is_active']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [PackageServiceInline]
