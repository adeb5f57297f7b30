import uuid
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase

from apps.utils.exceptions import NotFound, UpstreamUnavailable
from .models import MenuItem, Restaurant
from .selectors import CatalogLookup


class CatalogLookupTests(TestCase):
    def setUp(self):
        self.restaurant = Restaurant.objects.create(
            name="Dosa Corner", delivery_fee=3000, minimum_order=10000, is_approved=True
        )
        self.item = MenuItem.objects.create(
            restaurant=self.restaurant,
            name="Masala Dosa",
            price=12000,
            customizations=[
                {"name": "Size", "options": [{"name": "Regular", "price": 0}, {"name": "Large", "price": 4000}]},
            ],
        )
        self.lookup = CatalogLookup()

    def test_get_restaurant(self):
        self.assertEqual(self.lookup.get_restaurant(self.restaurant.id), self.restaurant)
        self.assertTrue(self.restaurant.is_accepting_orders)

    def test_missing_or_malformed_ids_raise_not_found(self):
        with self.assertRaises(NotFound):
            self.lookup.get_restaurant(uuid.uuid4())
        with self.assertRaises(NotFound):
            self.lookup.get_restaurant("not-a-uuid")
        with self.assertRaises(NotFound):
            self.lookup.get_menu_item(uuid.uuid4())

    def test_storage_failure_is_upstream_unavailable(self):
        with mock.patch.object(MenuItem.objects, "get", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(UpstreamUnavailable):
                self.lookup.get_menu_item(self.item.id)

    def test_unapproved_restaurant_is_not_accepting_orders(self):
        self.restaurant.is_approved = False
        self.assertFalse(self.restaurant.is_accepting_orders)

    def test_option_price(self):
        self.assertEqual(self.item.option_price("Size", "Large"), 4000)
        self.assertEqual(self.item.option_price("Size", "Regular"), 0)
        self.assertIsNone(self.item.option_price("Size", "Family"))
        self.assertIsNone(self.item.option_price("Spice", "Hot"))
