from django.urls import path
from . import views

app_name = 'payments'

urlpatterns = [
    # Razorpay order for an online checkout
    path('initiate/<uuid:appointment_id>/', views.initiate_payment, name='initiate'),

    # Cash taken at the desk
    path('cash/<uuid:appointment_id>/', views.cash_payment, name='cash'),

    # Razorpay posts here after the modal completes
    path('callback/', views.payment_callback, name='callback'),
]
