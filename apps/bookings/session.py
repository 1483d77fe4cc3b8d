"""
Session helper for the front-desk checkout workflow.

The workflow state is stored in request.session['checkout'] as the dict
produced by WorkflowState.as_dict():
{
    "screen":              "service_selection | checkout | summary",
    "customer_id":         "<uuid>",
    "service_ids":         ["<uuid>", ...],
    "package_ids":         ["<uuid>", ...],
    "customized_services": {"<package uuid>": ["<service uuid>", ...]},
    "stylists":            {"<service or package uuid>": "<employee uuid>"},
    "discount_type":       "none | percentage | fixed",
    "discount_value":      "10",
    "coupon_code":         "WELCOME10",
    "tax_rate_id":         "<uuid>",
    "loyalty_points":      0,
    "payment_method":      "cash | online",
    "notes":               "...",
    "start_time":          "YYYY-MM-DDTHH:MM",
    "appointment_id":      "<uuid>",
}

Use the helpers below instead of accessing session['checkout'] directly.
"""
from .workflow import WorkflowState

SESSION_KEY = 'checkout'


def get_workflow(request) -> WorkflowState:
    return WorkflowState.from_dict(request.session.get(SESSION_KEY))


def save_workflow(request, state: WorkflowState) -> WorkflowState:
    request.session[SESSION_KEY] = state.as_dict()
    request.session.modified = True
    return state


def clear_workflow(request) -> None:
    request.session.pop(SESSION_KEY, None)
    request.session.modified = True
