import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError

from apps.utils.exceptions import NotFound, UpstreamUnavailable
from .models import Restaurant, MenuItem

logger = logging.getLogger(__name__)


class CatalogLookup:
    """
    Read-only catalog port consumed by the order core.
    Missing rows raise NotFound; storage failures surface as UpstreamUnavailable.
    """

    def get_restaurant(self, restaurant_id) -> Restaurant:
        try:
            return Restaurant.objects.get(id=restaurant_id)
        except (Restaurant.DoesNotExist, ValidationError, ValueError):
            raise NotFound("Restaurant not found or not available")
        except DatabaseError as e:
            logger.error(f"Catalog lookup failed for restaurant {restaurant_id}: {e}")
            raise UpstreamUnavailable("Catalog is temporarily unavailable. Please try again.")

    def get_menu_item(self, menu_item_id) -> MenuItem:
        try:
            return MenuItem.objects.get(id=menu_item_id)
        except (MenuItem.DoesNotExist, ValidationError, ValueError):
            raise NotFound(f"Menu item {menu_item_id} not found")
        except DatabaseError as e:
            logger.error(f"Catalog lookup failed for menu item {menu_item_id}: {e}")
            raise UpstreamUnavailable("Catalog is temporarily unavailable. Please try again.")
