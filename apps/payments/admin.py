from django.contrib import admin
from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        'appointment', 'method', 'amount', 'currency', 'status', 'paid_at', 'created_at'
    ]
    list_filter = ['status', 'method', 'currency']
    search_fields = ['razorpay_order_id', 'razorpay_payment_id', 'appointment__customer__name']
    readonly_fields = [
        'id', 'razorpay_order_id', 'razorpay_payment_id', 'razorpay_signature',
        'paid_at', 'created_at', 'updated_at'
    ]
    fieldsets = (
        ('Payment', {'fields': ('id', 'appointment', 'method', 'amount', 'currency', 'status', 'paid_at')}),
        ('Razorpay IDs', {'fields': ('razorpay_order_id', 'razorpay_payment_id', 'razorpay_signature')}),
        ('Audit', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )
