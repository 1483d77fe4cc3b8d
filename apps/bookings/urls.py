"""
Front-desk checkout URLs (staff JSON).

Flow:
  /bookings/checkout/                      GET current workflow state + quote
  /bookings/checkout/customer/             Service selection: pick / create customer
  /bookings/checkout/toggle/               Service selection: toggle service, package, extra
  /bookings/checkout/stylist/              Service selection: assign stylist to an item
  /bookings/checkout/proceed/              → Checkout (guarded)
  /bookings/checkout/discount/             Checkout: manual discount
  /bookings/checkout/details/              Checkout: coupon, tax, loyalty, payment, notes
  /bookings/checkout/back/                 Checkout → Service selection
  /bookings/checkout/save/                 Checkout → Summary (after persist)
  /bookings/checkout/another/              Summary → fresh Service selection
  /bookings/checkout/reset/                Drop the workflow from the session
  /bookings/appointments/<uuid>/edit/      Load a booked appointment into Checkout
  /bookings/appointments/<uuid>/status/    Pay / complete / cancel
"""
from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    # ── Checkout workflow ──────────────────────────────────────────────────────
    path('checkout/',               views.checkout_state,   name='state'),
    path('checkout/customer/',      views.select_customer,  name='customer'),
    path('checkout/toggle/',        views.toggle_item,      name='toggle'),
    path('checkout/stylist/',       views.assign_stylist,   name='stylist'),
    path('checkout/proceed/',       views.proceed,          name='proceed'),
    path('checkout/discount/',      views.set_discount,     name='discount'),
    path('checkout/details/',       views.set_details,      name='details'),
    path('checkout/back/',          views.back,             name='back'),
    path('checkout/save/',          views.save,             name='save'),
    path('checkout/another/',       views.create_another,   name='another'),
    path('checkout/reset/',         views.checkout_reset,   name='reset'),

    # ── Existing appointments ──────────────────────────────────────────────────
    path('appointments/<uuid:appointment_id>/edit/',   views.edit_appointment,   name='edit'),
    path('appointments/<uuid:appointment_id>/status/', views.appointment_status, name='status'),
]
