from django.conf import settings
from django.core.cache import cache
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response

from apps.utils.exceptions import DuplicateRequest
from apps.utils.pagination import OrderResultsSetPagination
from .filters import OrderFilter
from .serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderRatingSerializer,
    OrderSerializer,
    RateOrderSerializer,
    TrackingSerializer,
    UpdateOrderStatusSerializer,
)
from .services import order_service


class OrderViewSet(viewsets.GenericViewSet):
    """
    Customer order endpoints. Every by-id action goes through the service's
    ownership check; staff-only fulfilment updates live under /status/.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = OrderResultsSetPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = OrderFilter

    def get_queryset(self):
        return order_service().orders_for(self.request.user)

    def list(self, request):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request, pk=None):
        order = order_service().get_order(pk, request.user)
        return Response({"success": True, "order": OrderSerializer(order).data})

    def create(self, request):
        # 1. Idempotency Check (optional header)
        idempotency_key = request.headers.get("X-Idempotency-Key")
        cache_key = None
        if idempotency_key:
            cache_key = f"order_create_idempotency_{request.user.pk}_{idempotency_key}"
            if not cache.add(cache_key, "processing", timeout=settings.IDEMPOTENCY_KEY_TTL):
                raise DuplicateRequest("Duplicate request detected")

        serializer = CreateOrderSerializer(data=request.data)
        try:
            serializer.is_valid(raise_exception=True)
            data = serializer.validated_data

            # 2. Atomic Order Creation (Delegated to Service)
            order = order_service().create_order(
                user=request.user,
                restaurant_id=data["restaurant"],
                items=data["items"],
                delivery_address=data["delivery_address"],
                contact_info=data["contact_info"],
                special_instructions=data.get("special_instructions", ""),
            )
        except Exception:
            # Failed attempts may be retried with the same key
            if cache_key:
                cache.delete(cache_key)
            raise

        return Response(
            {"success": True, "message": "Order created successfully", "order": OrderSerializer(order).data},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post", "patch"])
    def cancel(self, request, pk=None):
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        service = order_service()
        service.cancel_order(pk, request.user, reason=serializer.validated_data["reason"])
        order = service.get_order(pk, request.user)
        return Response({
            "success": True,
            "message": "Order cancelled successfully",
            "order": OrderSerializer(order).data,
        })

    @action(detail=True, methods=["post"])
    def rate(self, request, pk=None):
        serializer = RateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        rating = order_service().rate_order(pk, request.user, **serializer.validated_data)
        return Response({
            "success": True,
            "message": "Rating submitted successfully",
            "rating": OrderRatingSerializer(rating).data,
        })

    @action(detail=True, methods=["get"])
    def tracking(self, request, pk=None):
        tracking = order_service().get_tracking(pk, request.user)
        return Response({"success": True, "tracking": TrackingSerializer(tracking).data})

    @action(detail=True, methods=["patch"], url_path="status", permission_classes=[IsAdminUser])
    def update_status(self, request, pk=None):
        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = order_service().advance_status(
            pk,
            data["status"],
            description=data.get("description", ""),
            delivery_partner=data.get("delivery_partner"),
            actor=request.user,
        )
        return Response({
            "success": True,
            "message": f"Order status updated to {order.status}",
            "status": order.status,
        })
