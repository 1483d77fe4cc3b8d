from django.contrib import admin
from .models import Appointment, AppointmentStatusLog, Booking, Coupon, TaxRate


class BookingInline(admin.TabularInline):
    model = Booking
    extra = 0
    fields = ['line_key', 'service', 'package', 'employee', 'start_time', 'original_price', 'price_paid']
    readonly_fields = fields


class AppointmentStatusLogInline(admin.TabularInline):
    model = AppointmentStatusLog
    extra = 0
    readonly_fields = ['from_status', 'to_status', 'changed_by', 'reason', 'changed_at']
    can_delete = False


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = [
        'short_id', 'customer', 'start_time', 'status', 'payment_method', 'subtotal', 'total_price',
    ]
    list_filter = ['status', 'payment_method']
    search_fields = ['customer__name', 'customer__phone']
    readonly_fields = ['id', 'created_at', 'updated_at']
    date_hierarchy = 'start_time'
    inlines = [BookingInline, AppointmentStatusLogInline]
    fieldsets = (
        ('Appointment', {'fields': ('id', 'customer', 'start_time', 'end_time', 'total_duration', 'notes')}),
        ('Status', {'fields': ('status', 'payment_method')}),
        ('Pricing', {'fields': (
            'subtotal', 'discount_type', 'discount_value', 'manual_discount',
            'membership', 'membership_discount', 'coupon', 'coupon_discount',
            'loyalty_points_redeemed', 'loyalty_discount', 'tax_rate', 'tax_amount', 'total_price',
        )}),
        ('Audit', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )

    def short_id(self, obj):
        return obj.id_short
    short_id.short_description = 'ID'


@admin.register(AppointmentStatusLog)
class AppointmentStatusLogAdmin(admin.ModelAdmin):
    list_display = ['appointment', 'from_status', 'to_status', 'changed_by', 'changed_at']
    readonly_fields = ['id', 'appointment', 'from_status', 'to_status', 'changed_by', 'reason', 'changed_at']
    search_fields = ['appointment__customer__name']


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ['code', 'discount_type', 'discount_value', 'is_active']
    list_filter = ['discount_type', 'is_active']
    search_fields = ['code']


@admin.register(TaxRate)
class TaxRateAdmin(admin.ModelAdmin):
    list_display = ['name', 'percentage', 'is_active']
    list_filter = ['is_active']
