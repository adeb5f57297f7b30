from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from .order import Order

SCORE_VALIDATORS = [MinValueValidator(1), MaxValueValidator(5)]


class OrderRating(models.Model):
    """
    Customer feedback. OneToOne => an order can be rated exactly once.
    """
    order = models.OneToOneField(Order, related_name="rating", on_delete=models.CASCADE)

    food = models.PositiveSmallIntegerField(validators=SCORE_VALIDATORS)
    delivery = models.PositiveSmallIntegerField(validators=SCORE_VALIDATORS)
    overall = models.PositiveSmallIntegerField(validators=SCORE_VALIDATORS)
    review = models.TextField(blank=True)

    rated_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Rating for {self.order_id}: {self.overall}/5"
