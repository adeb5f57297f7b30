from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import OrderViewSet

# Mounted at api/v1/orders/, so the viewset takes the empty prefix
router = SimpleRouter()
router.register(r'', OrderViewSet, basename='order')

urlpatterns = [
    path('', include(router.urls)),
]
