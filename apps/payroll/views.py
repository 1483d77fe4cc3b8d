"""
Staff JSON endpoints for commission schedules, salaries and pay runs.

Slab editing endpoints are stateless: the client posts its current list and
gets the edited list back, so unsaved edits never touch the database.
"""
import json
import logging

from django import forms
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from apps.core.decorators import staff_required
from apps.core.money import money_str

from .engine import (
    add_adjustment,
    create_pay_run,
    mark_pay_run_paid,
    pay_run_summary,
    save_commission_template,
    save_employee_slabs,
    set_employee_compensation,
)
from .exceptions import PayrollError
from .forms import AdjustmentForm, CompensationForm, PayPeriodForm, parse_slabs
from .models import CommissionTemplate, Employee, PayPeriod, PayRun
from .slabs import add_slab, remove_slab, update_slab

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _json_body(request) -> dict:
    try:
        data = json.loads(request.body or b'{}')
    except (ValueError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _error(message, status=400):
    return JsonResponse({'error': message}, status=status)


def _slabs_payload(slabs) -> dict:
    return {'slabs': [s.as_dict() for s in slabs]}


def _summary_payload(pay_run) -> dict:
    rows = []
    for row in pay_run_summary(pay_run):
        rows.append({
            key: (money_str(value) if key not in ('employee_id', 'employee_name') else value)
            for key, value in row.items()
        })
    return {
        'id': str(pay_run.pk),
        'status': pay_run.status,
        'start_date': pay_run.pay_period.start_date.isoformat(),
        'end_date': pay_run.pay_period.end_date.isoformat(),
        'employees': rows,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Commission templates
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@staff_required
def template_save(request):
    data = _json_body(request)
    name = str(data.get('name', '')).strip()
    if not name:
        return _error('Template name is required.')
    try:
        slabs = parse_slabs(data.get('slabs'))
    except forms.ValidationError as exc:
        return _error(exc.messages[0])

    template = None
    if data.get('template_id'):
        template = get_object_or_404(CommissionTemplate, id=data['template_id'])

    errors = []
    template = save_commission_template(
        name, slabs, description=str(data.get('description', '')),
        template=template, on_error=errors.append,
    )
    if template is None:
        return _error(errors[0])
    return JsonResponse({'id': str(template.pk), 'name': template.name, **_slabs_payload(template.slab_records())})


@require_POST
@staff_required
def slab_edit(request, action):
    """add / remove / update one slab in the posted list."""
    data = _json_body(request)
    try:
        slabs = parse_slabs(data.get('slabs', []))
    except forms.ValidationError as exc:
        return _error(exc.messages[0])

    try:
        index = int(data.get('index', 0))
    except (TypeError, ValueError):
        return _error('Slab index must be a number.')

    if action == 'add':
        slabs = add_slab(slabs, percentage=data.get('percentage'))
    elif action == 'remove':
        if len(slabs) <= 1:
            return _error('At least one commission slab is required.')
        slabs = remove_slab(slabs, index)
    elif action == 'update':
        try:
            slabs = update_slab(slabs, index, data.get('field'), data.get('value'))
        except ValueError as exc:
            return _error(str(exc))
    else:
        return _error('Unknown slab action.', status=404)
    return JsonResponse(_slabs_payload(slabs))


@require_POST
@staff_required
def employee_slabs_save(request, employee_id):
    employee = get_object_or_404(Employee, id=employee_id, is_active=True)
    try:
        slabs = parse_slabs(_json_body(request).get('slabs'))
    except forms.ValidationError as exc:
        return _error(exc.messages[0])

    errors = []
    if save_employee_slabs(employee, slabs, on_error=errors.append) is None:
        return _error(errors[0])
    return JsonResponse({'employee_id': str(employee.pk), **_slabs_payload(employee.slab_records())})


@require_POST
@staff_required
def employee_compensation_save(request, employee_id):
    employee = get_object_or_404(Employee, id=employee_id, is_active=True)
    form = CompensationForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'errors': form.errors}, status=400)

    try:
        compensation = set_employee_compensation(
            employee, form.cleaned_data['base_amount'], form.cleaned_data['effective_from'],
        )
    except PayrollError as exc:
        return _error(str(exc), status=409)
    return JsonResponse({
        'employee_id': str(employee.pk),
        'base_amount': money_str(compensation.base_amount),
        'effective_from': compensation.effective_from.isoformat(),
        'history': [
            {
                'base_amount': money_str(entry.base_amount),
                'effective_from': entry.effective_from.isoformat(),
                'effective_to': entry.effective_to.isoformat() if entry.effective_to else None,
            }
            for entry in employee.compensations.all()
        ],
    }, status=201)


# ─────────────────────────────────────────────────────────────────────────────
# Pay runs
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@staff_required
def pay_run_create(request):
    form = PayPeriodForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'errors': form.errors}, status=400)

    period, _ = PayPeriod.objects.get_or_create(
        start_date=form.cleaned_data['start_date'],
        end_date=form.cleaned_data['end_date'],
    )
    try:
        pay_run = create_pay_run(period)
    except PayrollError as exc:
        return _error(str(exc), status=409)
    return JsonResponse(_summary_payload(pay_run), status=201)


@require_GET
@staff_required
def pay_run_detail(request, pay_run_id):
    pay_run = get_object_or_404(PayRun.objects.select_related('pay_period'), id=pay_run_id)
    return JsonResponse(_summary_payload(pay_run))


@require_POST
@staff_required
def pay_run_adjust(request, pay_run_id):
    pay_run = get_object_or_404(PayRun.objects.select_related('pay_period'), id=pay_run_id)
    form = AdjustmentForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'errors': form.errors}, status=400)

    cd = form.cleaned_data
    try:
        add_adjustment(
            pay_run, cd['employee'], cd['amount'],
            compensation_type=cd['compensation_type'],
            description=cd['description'],
            deduction=cd['deduction'],
        )
    except PayrollError as exc:
        return _error(str(exc), status=409)
    return JsonResponse(_summary_payload(pay_run))


@require_POST
@staff_required
def pay_run_pay(request, pay_run_id):
    pay_run = get_object_or_404(PayRun.objects.select_related('pay_period'), id=pay_run_id)
    try:
        mark_pay_run_paid(pay_run)
    except PayrollError as exc:
        return _error(str(exc), status=409)
    logger.info('Pay run %s paid by %s', pay_run.pk, request.user.username)
    return JsonResponse(_summary_payload(pay_run))
