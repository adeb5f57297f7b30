from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny
from django.conf import settings


class ServerInfoView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({
            "app_name": settings.PROJECT_NAME,
            "version": "1.0.0",
            "debug": settings.DEBUG,
            # Lets the frontend know whether the checkout widget talks to the real provider
            "payments_mode": settings.PAYMENTS_MODE,
            "razorpay_key_id": settings.RAZORPAY_KEY_ID,
            "currency": settings.PAYMENT_CURRENCY,
        })
