from django.contrib import admin
from .models import (
    CommissionSlabRow,
    CommissionTemplate,
    Employee,
    EmployeeCompensation,
    PayPeriod,
    PayRun,
    PayRunItem,
    ServiceCommission,
)


class TemplateSlabInline(admin.TabularInline):
    model = CommissionSlabRow
    fk_name = 'template'
    exclude = ['employee']
    extra = 0


class EmployeeSlabInline(admin.TabularInline):
    model = CommissionSlabRow
    fk_name = 'employee'
    exclude = ['template']
    extra = 0


class CompensationInline(admin.TabularInline):
    model = EmployeeCompensation
    extra = 0
    readonly_fields = ['created_at']


class ServiceCommissionInline(admin.TabularInline):
    model = ServiceCommission
    extra = 0


@admin.register(CommissionTemplate)
class CommissionTemplateAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active', 'updated_at']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [TemplateSlabInline]


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone', 'commission_type', 'commission_template', 'is_active']
    list_filter = ['commission_type', 'is_active']
    search_fields = ['name', 'phone', 'email']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [CompensationInline, ServiceCommissionInline, EmployeeSlabInline]


class PayRunItemInline(admin.TabularInline):
    model = PayRunItem
    extra = 0
    readonly_fields = ['source_type', 'source_id', 'is_paid']


@admin.register(PayPeriod)
class PayPeriodAdmin(admin.ModelAdmin):
    list_display = ['start_date', 'end_date', 'is_closed']
    list_filter = ['is_closed']


@admin.register(PayRun)
class PayRunAdmin(admin.ModelAdmin):
    list_display = ['pay_period', 'status', 'paid_at', 'created_at']
    list_filter = ['status']
    readonly_fields = ['id', 'paid_at', 'created_at', 'updated_at']
    inlines = [PayRunItemInline]
