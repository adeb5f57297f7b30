from django.urls import path
from .views import CreatePaymentOrderView, PaymentFailedView, PaymentStatusView, VerifyPaymentView

urlpatterns = [
    path('create-order/', CreatePaymentOrderView.as_view(), name='payment-create-order'),
    path('verify-payment/', VerifyPaymentView.as_view(), name='payment-verify'),
    path('payment-failed/', PaymentFailedView.as_view(), name='payment-failed'),
    path('status/<uuid:order_id>/', PaymentStatusView.as_view(), name='payment-status'),
]
