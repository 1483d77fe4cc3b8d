from decimal import Decimal

from django import forms

from apps.core.money import to_decimal

from .models import CompensationType, Employee
from .slabs import CommissionSlab


class PayPeriodForm(forms.Form):
    start_date = forms.DateField()
    end_date = forms.DateField()

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get('start_date'), cleaned.get('end_date')
        if start and end and end < start:
            raise forms.ValidationError('The period cannot end before it starts.')
        return cleaned


class AdjustmentForm(forms.Form):
    employee = forms.ModelChoiceField(queryset=Employee.objects.active())
    compensation_type = forms.ChoiceField(choices=CompensationType.choices, initial=CompensationType.OTHER)
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    description = forms.CharField(max_length=255, required=False)
    deduction = forms.BooleanField(required=False)


class CompensationForm(forms.Form):
    base_amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    effective_from = forms.DateField()


def parse_slabs(rows) -> list:
    """
    Turn posted slab rows into CommissionSlab records. Only the shape is
    checked here; range rules belong to validate_slabs().
    """
    if not isinstance(rows, list):
        raise forms.ValidationError('Slabs must be a list.')

    slabs = []
    for row in rows:
        if not isinstance(row, dict):
            raise forms.ValidationError('Each slab must be an object.')
        min_amount = to_decimal(row.get('min_amount'), default=None)
        percentage = to_decimal(row.get('percentage'), default=None)
        raw_max = row.get('max_amount')
        max_amount = None if raw_max in (None, '') else to_decimal(raw_max, default=None)
        if min_amount is None or percentage is None or (raw_max not in (None, '') and max_amount is None):
            raise forms.ValidationError('Slab amounts and percentages must be numbers.')
        slabs.append(CommissionSlab(min_amount, max_amount, percentage))
    return slabs
