from decimal import Decimal

from django import forms

from apps.customers.models import normalize_phone

from .models import PaymentMethod
from .pricing import DiscountType


class CustomerForm(forms.Form):
    """Front-desk lookup-or-create by mobile number."""
    name = forms.CharField(max_length=120)
    phone = forms.CharField(max_length=20)
    email = forms.EmailField(required=False)

    def clean_phone(self):
        raw = self.cleaned_data.get('phone', '')
        try:
            return normalize_phone(raw)
        except ValueError as exc:
            raise forms.ValidationError("Please enter a valid mobile number.") from exc


class DiscountForm(forms.Form):
    discount_type = forms.ChoiceField(choices=DiscountType.CHOICES, initial=DiscountType.NONE)
    discount_value = forms.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False,
    )

    def clean(self):
        cleaned = super().clean()
        value = cleaned.get('discount_value') or Decimal('0')
        if cleaned.get('discount_type') == DiscountType.PERCENTAGE and value > 100:
            self.add_error('discount_value', 'A percentage discount cannot exceed 100%.')
        cleaned['discount_value'] = value
        return cleaned


class CheckoutForm(forms.Form):
    payment_method = forms.ChoiceField(choices=PaymentMethod.choices, initial=PaymentMethod.CASH)
    start_time = forms.DateTimeField(required=False)
    coupon_code = forms.CharField(max_length=40, required=False)
    tax_rate_id = forms.UUIDField(required=False)
    loyalty_points = forms.IntegerField(min_value=0, required=False)
    notes = forms.CharField(max_length=1000, required=False)
