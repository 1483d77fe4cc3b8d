from django.urls import path
from . import views

app_name = 'payroll'

urlpatterns = [
    # ── Commission schedules ───────────────────────────────────────────────────
    path('templates/',                          views.template_save,       name='template_save'),
    path('slabs/<str:action>/',                 views.slab_edit,           name='slab_edit'),
    path('employees/<uuid:employee_id>/slabs/', views.employee_slabs_save, name='employee_slabs'),
    path('employees/<uuid:employee_id>/compensation/', views.employee_compensation_save, name='employee_compensation'),

    # ── Pay runs ───────────────────────────────────────────────────────────────
    path('pay-runs/',                           views.pay_run_create,      name='pay_run_create'),
    path('pay-runs/<uuid:pay_run_id>/',         views.pay_run_detail,      name='pay_run_detail'),
    path('pay-runs/<uuid:pay_run_id>/adjustments/', views.pay_run_adjust,  name='pay_run_adjust'),
    path('pay-runs/<uuid:pay_run_id>/pay/',     views.pay_run_pay,         name='pay_run_pay'),
]
