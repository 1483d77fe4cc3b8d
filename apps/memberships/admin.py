from django.contrib import admin
from .models import CustomerMembership, Membership


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'discount_type', 'discount_value',
        'min_billing_amount', 'max_discount_value', 'validity_days', 'is_active',
    ]
    list_filter = ['discount_type', 'is_active']
    search_fields = ['name']
    filter_horizontal = ['applicable_services', 'applicable_packages']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(CustomerMembership)
class CustomerMembershipAdmin(admin.ModelAdmin):
    list_display = ['customer', 'membership', 'status', 'start_date', 'end_date']
    list_filter = ['status', 'membership']
    search_fields = ['customer__name', 'customer__phone', 'membership__name']
    date_hierarchy = 'start_date'
