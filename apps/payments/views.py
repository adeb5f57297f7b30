from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from .services import payment_service
from .serializers import (
    CreatePaymentOrderSerializer,
    PaymentFailedSerializer,
    PaymentIntentSerializer,
    PaymentStatusSerializer,
    VerifyPaymentSerializer,
)


class CreatePaymentOrderView(APIView):
    """
    Creates (or reuses) the provider-side order the checkout widget needs.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CreatePaymentOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order, intent = payment_service().initiate_payment(serializer.validated_data["order_id"], request.user)
        return Response(
            {
                "success": True,
                "payment_order": PaymentIntentSerializer(intent).data,
                "order_id": str(order.id),
                "order_number": order.order_number,
            },
            status=status.HTTP_201_CREATED,
        )


class VerifyPaymentView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = payment_service().verify_payment(
            data["order_id"],
            request.user,
            provider_order_id=data["razorpay_order_id"],
            provider_payment_id=data["razorpay_payment_id"],
            signature=data["razorpay_signature"],
            payment_method=data.get("method", ""),
        )
        return Response({
            "success": True,
            "message": "Payment verified successfully",
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status,
        })


class PaymentFailedView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = PaymentFailedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = payment_service().record_failure(
            serializer.validated_data["order_id"],
            request.user,
            reason=serializer.validated_data["reason"],
        )
        return Response({
            "success": True,
            "message": "Payment failure recorded",
            "order_id": str(order.id),
            "status": order.status,
        })


class PaymentStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_id):
        payment = payment_service().get_status(order_id, request.user)
        return Response({"success": True, "payment": PaymentStatusSerializer(payment).data})
