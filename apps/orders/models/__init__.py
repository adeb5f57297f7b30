"""
Top-level models import shim for the Orders app.

Lets `from apps.orders.models import Order` work while the actual models
live in separate modules.
"""

from .order import *          # Order, ALLOWED_TRANSITIONS, FULFILMENT_FLOW, can_transition
from .item import *           # OrderItem
from .timeline import *       # OrderTimeline
from .rating import *         # OrderRating
from .refund import *         # OrderRefund
