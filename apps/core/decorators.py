"""
Staff authentication decorator for the admin JSON endpoints.

Unauthenticated or non-staff requests get a 403 JSON payload instead of a
login redirect: every caller is the admin single-page UI.
"""
from functools import wraps
from django.http import JsonResponse


def staff_required(view_func):
    """Require is_authenticated + is_staff."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated or not request.user.is_staff:
            return JsonResponse({'error': 'Staff access required.'}, status=403)
        return view_func(request, *args, **kwargs)
    return wrapper
