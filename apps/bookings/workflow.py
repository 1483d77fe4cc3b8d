"""
Front-desk checkout workflow as an explicit state value.

    SERVICE_SELECTION ──proceed──▶ CHECKOUT ──saved──▶ SUMMARY
            ▲                         │                   │
            └───────────back──────────┘                   │
            └──────────────────create another─────────────┘

Every reducer takes a WorkflowState and returns a new one; nothing is
mutated. Guarded transitions return a Transition whose `error` is a
user-facing message. When a guard fails the state is handed back unchanged.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, NamedTuple, Optional, Tuple

from django.conf import settings

from apps.core.money import ZERO, to_decimal

from .pricing import DiscountType


class Screen:
    SERVICE_SELECTION = 'service_selection'
    CHECKOUT = 'checkout'
    SUMMARY = 'summary'

    ALL = (SERVICE_SELECTION, CHECKOUT, SUMMARY)


MSG_NO_CUSTOMER = 'Please select a customer.'
MSG_NO_ITEMS = 'Please select at least one service or package.'
MSG_NO_STYLIST = 'Please assign a stylist to every selected service and package.'
MSG_NOT_SAVED = 'The appointment could not be saved. Please try again.'
MSG_WRONG_SCREEN = 'That action is not available on this screen.'


@dataclass(frozen=True)
class WorkflowState:
    screen: str = Screen.SERVICE_SELECTION
    customer_id: Optional[str] = None
    service_ids: Tuple[str, ...] = ()
    package_ids: Tuple[str, ...] = ()
    # package id → extra service ids added to that package
    customized_services: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    # service or package id → employee id
    stylists: Dict[str, str] = field(default_factory=dict)
    discount_type: str = DiscountType.NONE
    discount_value: Decimal = ZERO
    coupon_code: str = ''
    tax_rate_id: Optional[str] = None
    loyalty_points: int = 0
    payment_method: str = 'cash'
    notes: str = ''
    start_time: Optional[str] = None
    appointment_id: Optional[str] = None

    @property
    def has_selection(self) -> bool:
        return bool(self.service_ids or self.package_ids)

    @property
    def selected_items(self) -> Tuple[str, ...]:
        return self.service_ids + self.package_ids

    def customized_map(self) -> Dict[str, list]:
        """Shape expected by the pricing functions."""
        return {pkg: list(ids) for pkg, ids in self.customized_services.items()}

    # ── Session serialisation ─────────────────────────────────────────────────

    def as_dict(self) -> dict:
        return {
            'screen': self.screen,
            'customer_id': self.customer_id,
            'service_ids': list(self.service_ids),
            'package_ids': list(self.package_ids),
            'customized_services': self.customized_map(),
            'stylists': dict(self.stylists),
            'discount_type': self.discount_type,
            'discount_value': str(self.discount_value),
            'coupon_code': self.coupon_code,
            'tax_rate_id': self.tax_rate_id,
            'loyalty_points': self.loyalty_points,
            'payment_method': self.payment_method,
            'notes': self.notes,
            'start_time': self.start_time,
            'appointment_id': self.appointment_id,
        }

    @classmethod
    def from_dict(cls, data) -> 'WorkflowState':
        """Rebuild from session data. Anything malformed falls back to the default."""
        if not isinstance(data, dict):
            return cls()

        def id_tuple(value):
            return tuple(str(v) for v in value) if isinstance(value, (list, tuple)) else ()

        customized = data.get('customized_services')
        stylists = data.get('stylists')
        screen = data.get('screen')
        try:
            points = max(0, int(data.get('loyalty_points') or 0))
        except (TypeError, ValueError):
            points = 0
        return cls(
            screen=screen if screen in Screen.ALL else Screen.SERVICE_SELECTION,
            customer_id=data.get('customer_id') or None,
            service_ids=id_tuple(data.get('service_ids')),
            package_ids=id_tuple(data.get('package_ids')),
            customized_services={
                str(pkg): id_tuple(ids) for pkg, ids in customized.items()
            } if isinstance(customized, dict) else {},
            stylists={
                str(k): str(v) for k, v in stylists.items() if v
            } if isinstance(stylists, dict) else {},
            discount_type=data.get('discount_type') or DiscountType.NONE,
            discount_value=to_decimal(data.get('discount_value')),
            coupon_code=data.get('coupon_code') or '',
            tax_rate_id=data.get('tax_rate_id') or None,
            loyalty_points=points,
            payment_method=data.get('payment_method') or 'cash',
            notes=data.get('notes') or '',
            start_time=data.get('start_time') or None,
            appointment_id=data.get('appointment_id') or None,
        )


class Transition(NamedTuple):
    state: WorkflowState
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


INITIAL_STATE = WorkflowState()


# ── Guards ────────────────────────────────────────────────────────────────────

def _setting(value, name):
    return getattr(settings, name, False) if value is None else value


def checkout_error(state: WorkflowState, require_stylist=None) -> Optional[str]:
    """Why the state cannot move to checkout, or None."""
    if not state.customer_id:
        return MSG_NO_CUSTOMER
    if not state.has_selection:
        return MSG_NO_ITEMS
    if _setting(require_stylist, 'BOOKING_REQUIRE_STYLIST'):
        if any(not state.stylists.get(item) for item in state.selected_items):
            return MSG_NO_STYLIST
    return None


def _auto_proceed(before: WorkflowState, after: WorkflowState, auto_proceed) -> WorkflowState:
    """Jump to checkout the moment the selection stops being empty, if allowed."""
    if not _setting(auto_proceed, 'BOOKING_AUTO_PROCEED'):
        return after
    if after.screen != Screen.SERVICE_SELECTION or before.has_selection or not after.has_selection:
        return after
    if checkout_error(after) is not None:
        return after
    return replace(after, screen=Screen.CHECKOUT)


def _toggle(items: Tuple[str, ...], item_id: str) -> Tuple[str, ...]:
    if item_id in items:
        return tuple(i for i in items if i != item_id)
    return items + (item_id,)


# ── Selection reducers ────────────────────────────────────────────────────────

def select_customer(state: WorkflowState, customer_id) -> WorkflowState:
    """Changing customer drops redeemed points, which belonged to the old one."""
    customer_id = str(customer_id) if customer_id else None
    if customer_id == state.customer_id:
        return state
    return replace(state, customer_id=customer_id, loyalty_points=0)


def toggle_service(state: WorkflowState, service_id, auto_proceed=None) -> WorkflowState:
    service_id = str(service_id)
    service_ids = _toggle(state.service_ids, service_id)
    stylists = dict(state.stylists)
    if service_id not in service_ids:
        stylists.pop(service_id, None)
    return _auto_proceed(state, replace(state, service_ids=service_ids, stylists=stylists), auto_proceed)


def toggle_package(state: WorkflowState, package_id, auto_proceed=None) -> WorkflowState:
    package_id = str(package_id)
    package_ids = _toggle(state.package_ids, package_id)
    stylists = dict(state.stylists)
    customized = dict(state.customized_services)
    if package_id not in package_ids:
        stylists.pop(package_id, None)
        customized.pop(package_id, None)
    new_state = replace(state, package_ids=package_ids, stylists=stylists, customized_services=customized)
    return _auto_proceed(state, new_state, auto_proceed)


def toggle_custom_service(state: WorkflowState, package_id, service_id) -> WorkflowState:
    """Add or remove an extra service on a selected package."""
    package_id, service_id = str(package_id), str(service_id)
    if package_id not in state.package_ids:
        return state
    customized = dict(state.customized_services)
    ids = _toggle(customized.get(package_id, ()), service_id)
    if ids:
        customized[package_id] = ids
    else:
        customized.pop(package_id, None)
    return replace(state, customized_services=customized)


def remove_service(state: WorkflowState, service_id) -> WorkflowState:
    if str(service_id) not in state.service_ids:
        return state
    return toggle_service(state, service_id, auto_proceed=False)


def remove_package(state: WorkflowState, package_id) -> WorkflowState:
    if str(package_id) not in state.package_ids:
        return state
    return toggle_package(state, package_id, auto_proceed=False)


def assign_stylist(state: WorkflowState, item_id, employee_id) -> WorkflowState:
    """Assign (or with a falsy employee_id, clear) the stylist for a selected item."""
    item_id = str(item_id)
    if item_id not in state.selected_items:
        return state
    stylists = dict(state.stylists)
    if employee_id:
        stylists[item_id] = str(employee_id)
    else:
        stylists.pop(item_id, None)
    return replace(state, stylists=stylists)


# ── Checkout field reducers ───────────────────────────────────────────────────

def set_discount(state: WorkflowState, discount_type, discount_value) -> WorkflowState:
    if discount_type not in (DiscountType.NONE, DiscountType.PERCENTAGE, DiscountType.FIXED):
        discount_type = DiscountType.NONE
    value = ZERO if discount_type == DiscountType.NONE else to_decimal(discount_value)
    return replace(state, discount_type=discount_type, discount_value=value)


def set_coupon(state: WorkflowState, code) -> WorkflowState:
    return replace(state, coupon_code=(code or '').strip().upper())


def set_tax_rate(state: WorkflowState, tax_rate_id) -> WorkflowState:
    return replace(state, tax_rate_id=str(tax_rate_id) if tax_rate_id else None)


def set_loyalty_points(state: WorkflowState, points) -> WorkflowState:
    try:
        points = max(0, int(points or 0))
    except (TypeError, ValueError):
        points = 0
    return replace(state, loyalty_points=points)


def set_payment_method(state: WorkflowState, method) -> WorkflowState:
    return replace(state, payment_method=method or 'cash')


def set_notes(state: WorkflowState, notes) -> WorkflowState:
    return replace(state, notes=notes or '')


def set_start_time(state: WorkflowState, start_time) -> WorkflowState:
    return replace(state, start_time=start_time or None)


# ── Screen transitions ────────────────────────────────────────────────────────

def proceed_to_checkout(state: WorkflowState, require_stylist=None) -> Transition:
    if state.screen != Screen.SERVICE_SELECTION:
        return Transition(state, MSG_WRONG_SCREEN)
    error = checkout_error(state, require_stylist)
    if error is not None:
        return Transition(state, error)
    return Transition(replace(state, screen=Screen.CHECKOUT))


def back_to_services(state: WorkflowState) -> WorkflowState:
    if state.screen != Screen.CHECKOUT:
        return state
    return replace(state, screen=Screen.SERVICE_SELECTION)


def complete_checkout(state: WorkflowState, appointment_id) -> Transition:
    """Move to the summary once the appointment has been persisted with an id."""
    if state.screen != Screen.CHECKOUT:
        return Transition(state, MSG_WRONG_SCREEN)
    if not appointment_id:
        return Transition(state, MSG_NOT_SAVED)
    return Transition(replace(state, screen=Screen.SUMMARY, appointment_id=str(appointment_id)))


def create_another(state: WorkflowState) -> WorkflowState:
    if state.screen != Screen.SUMMARY:
        return state
    return INITIAL_STATE
