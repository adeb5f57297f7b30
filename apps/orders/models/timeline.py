from django.db import models
from django.utils import timezone

from .order import Order


class OrderTimelineManager(models.Manager):
    def append(self, order, status, description=""):
        """
        Append-only. The new entry never sorts before the previous one, even if
        the wall clock stepped backwards.
        """
        ts = timezone.now()
        last = self.filter(order=order).order_by("-timestamp", "-id").first()
        if last and last.timestamp > ts:
            ts = last.timestamp
        return self.create(order=order, status=status, description=description, timestamp=ts)


class OrderTimeline(models.Model):
    order = models.ForeignKey(Order, related_name="timeline", on_delete=models.CASCADE)

    status = models.CharField(max_length=20)  # Stores the status *after* change
    timestamp = models.DateTimeField(default=timezone.now)
    description = models.TextField(blank=True)

    objects = OrderTimelineManager()

    class Meta:
        ordering = ["timestamp", "id"]

    def __str__(self):
        return f"{self.order_id} -> {self.status} @ {self.timestamp:%Y-%m-%d %H:%M:%S}"
