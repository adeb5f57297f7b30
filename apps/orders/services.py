import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction, IntegrityError
from django.utils import timezone

from apps.catalog.selectors import CatalogLookup
from apps.utils.exceptions import (
    BelowMinimumOrder,
    Forbidden,
    InvalidItem,
    InvalidState,
    ItemRestaurantMismatch,
    NotFound,
)
from .models import (
    FULFILMENT_FLOW,
    Order,
    OrderItem,
    OrderRating,
    OrderRefund,
    OrderTimeline,
    can_transition,
)
from .pricing import LineItem, SelectedCustomization, compute_summary

logger = logging.getLogger(__name__)

STATUS_DESCRIPTIONS = {
    Order.Status.PENDING_PAYMENT: "Order created, waiting for payment",
    Order.Status.CONFIRMED: "Payment successful and order confirmed",
    Order.Status.PREPARING: "Restaurant is preparing your order",
    Order.Status.READY_FOR_PICKUP: "Order is ready for pickup",
    Order.Status.OUT_FOR_DELIVERY: "Order is out for delivery",
    Order.Status.DELIVERED: "Order delivered",
    Order.Status.CANCELLED: "Order cancelled by customer",
}


def get_owned_order(order_id, user, for_update=False):
    """
    Single ownership gate for every by-id operation.
    Missing -> NotFound, someone else's -> Forbidden.
    `for_update` must only be used inside transaction.atomic().
    """
    qs = Order.objects.select_for_update() if for_update else Order.objects.all()
    try:
        order = qs.get(id=order_id)
    except (Order.DoesNotExist, ValidationError, ValueError):
        raise NotFound("Order not found")

    if order.user_id != user.pk:
        logger.warning(
            f"Ownership check failed for order {order_id}",
            extra={"order_id": order_id, "user_id": user.pk},
        )
        raise Forbidden("Unauthorized access to order")
    return order


def save_guarded(order, expected_status, fields):
    """
    Conditional write: UPDATE ... WHERE id = <pk> AND status = <expected_status>.
    Zero rows means another request moved the order first.
    """
    values = {name: getattr(order, name) for name in fields}
    values["updated_at"] = timezone.now()
    updated = Order.objects.filter(pk=order.pk, status=expected_status).update(**values)
    if not updated:
        raise InvalidState("Order was modified by another request. Please refresh and try again.")
    order.updated_at = values["updated_at"]


def transition(order, target, description, extra_fields=()):
    """
    Move `order` to `target`, persist it and append exactly one tracking entry.
    """
    current = order.status
    if not can_transition(current, target):
        raise InvalidState(f"Order cannot move from '{current}' to '{target}'")

    order.status = target
    save_guarded(order, current, ["status", *extra_fields])
    OrderTimeline.objects.append(order, target, description)
    logger.info(
        f"Order {order.id}: {current} -> {target}",
        extra={"order_id": order.id, "user_id": order.user_id},
    )
    return order


class OrderService:
    """
    Order side of the lifecycle: creation, cancellation, rating, tracking and
    fulfilment status updates. Payment transitions live in PaymentService.
    """

    def __init__(self, catalog=None, tax_rate=None, eta_minutes=None):
        self.catalog = catalog or CatalogLookup()
        self.tax_rate = tax_rate if tax_rate is not None else settings.ORDER_TAX_RATE
        self.eta_minutes = eta_minutes if eta_minutes is not None else settings.ORDER_ESTIMATED_DELIVERY_MINUTES

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create_order(self, user, restaurant_id, items, delivery_address, contact_info, special_instructions=""):
        """
        Secure Order Creation:
        1. Restaurant must be live
        2. Every item re-priced from the catalog (client prices are never trusted)
        3. Pricing + minimum order check
        4. Order, items and first tracking entry written atomically
        """
        if not items:
            raise InvalidItem("At least one item is required")

        restaurant = self.catalog.get_restaurant(restaurant_id)
        if not restaurant.is_accepting_orders:
            raise NotFound("Restaurant not found or not available")

        priced = []
        for requested in items:
            menu_item = self._get_orderable_item(requested["menu_item"], restaurant)
            selections, snapshot = self._resolve_customizations(menu_item, requested.get("customizations") or [])
            line = LineItem(
                menu_item_id=str(menu_item.id),
                name=menu_item.name,
                unit_price=menu_item.price,
                quantity=requested["quantity"],
                customizations=tuple(selections),
            )
            priced.append((menu_item, line, snapshot, requested.get("special_instructions", "")))

        summary = compute_summary([line for _, line, _, _ in priced], restaurant.delivery_fee, tax_rate=self.tax_rate)

        if summary.subtotal < restaurant.minimum_order:
            rupees, paise = divmod(restaurant.minimum_order, 100)
            raise BelowMinimumOrder(f"Minimum order amount is ₹{rupees}.{paise:02d}")

        with transaction.atomic():
            order = Order.objects.create(
                user=user,
                restaurant=restaurant,
                delivery_address=delivery_address,
                contact_info=contact_info,
                special_instructions=special_instructions or "",
                status=Order.Status.PENDING_PAYMENT,
                payment_status=Order.PaymentStatus.PENDING,
                estimated_delivery_time=timezone.now() + timedelta(minutes=self.eta_minutes),
                **summary.as_dict(),
            )

            OrderItem.objects.bulk_create([
                OrderItem(
                    order=order,
                    menu_item=menu_item,
                    name_snapshot=line.name,
                    unit_price_snapshot=line.unit_price,
                    quantity=line.quantity,
                    customizations=snapshot,
                    special_instructions=instructions or "",
                    item_total=line.item_total,
                )
                for menu_item, line, snapshot, instructions in priced
            ])

            OrderTimeline.objects.append(
                order, Order.Status.PENDING_PAYMENT, STATUS_DESCRIPTIONS[Order.Status.PENDING_PAYMENT]
            )

        logger.info(
            f"Order {order.id} created: {len(priced)} items, total {summary.total}",
            extra={"order_id": order.id, "user_id": user.pk},
        )
        return self.get_order(order.id, user)

    def _get_orderable_item(self, menu_item_id, restaurant):
        try:
            menu_item = self.catalog.get_menu_item(menu_item_id)
        except NotFound:
            raise InvalidItem(f"Menu item {menu_item_id} is not available")

        if not menu_item.is_available:
            raise InvalidItem(f"Menu item {menu_item_id} is not available")

        if menu_item.restaurant_id != restaurant.id:
            raise ItemRestaurantMismatch(f"Menu item {menu_item.name} does not belong to this restaurant")
        return menu_item

    def _resolve_customizations(self, menu_item, requested_groups):
        """
        Price every selected option from the menu item's own configuration.
        Returns (pricing selections, JSON snapshot for the order item).
        """
        selections, snapshot = [], []
        for group in requested_groups:
            chosen = []
            for option in group.get("selected_options", []):
                price = menu_item.option_price(group["name"], option["name"])
                if price is None:
                    raise InvalidItem(
                        f"Customization '{group['name']}: {option['name']}' is not offered for {menu_item.name}"
                    )
                selections.append(SelectedCustomization(group=group["name"], name=option["name"], price=price))
                chosen.append({"name": option["name"], "price": price})
            snapshot.append({"name": group["name"], "selected_options": chosen})
        return selections, snapshot

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def orders_for(self, user):
        return (
            Order.objects.filter(user=user)
            .select_related("restaurant")
            .prefetch_related("items")
            .order_by("-created_at")
        )

    def get_order(self, order_id, user):
        order = get_owned_order(order_id, user)
        return (
            Order.objects.select_related("restaurant")
            .prefetch_related("items__menu_item", "timeline")
            .get(pk=order.pk)
        )

    def get_tracking(self, order_id, user):
        order = get_owned_order(order_id, user)
        return {
            "status": order.status,
            "estimated_delivery_time": order.estimated_delivery_time,
            "actual_delivery_time": order.actual_delivery_time,
            "delivery_partner": order.delivery_partner,
            "timeline": list(order.timeline.all()),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    @transaction.atomic
    def cancel_order(self, order_id, user, reason=""):
        """
        Allowed from pending_payment / confirmed / preparing.
        A paid order gets a refund *request*; settlement is done by finance.
        """
        order = get_owned_order(order_id, user, for_update=True)

        if not order.can_cancel:
            raise InvalidState("Order cannot be cancelled at this stage")

        description = STATUS_DESCRIPTIONS[Order.Status.CANCELLED]
        if reason:
            description = f"{description}: {reason}"
        transition(order, Order.Status.CANCELLED, description)
        # Local intents only; the provider-side order cannot be revoked
        order.payment_intents.filter(status="created").update(status="superseded")

        if order.payment_status == Order.PaymentStatus.PAID:
            OrderRefund.objects.create(
                order=order,
                amount=order.total,
                reason=reason or STATUS_DESCRIPTIONS[Order.Status.CANCELLED],
                status=OrderRefund.Status.REQUESTED,
            )
            logger.info(
                f"Refund requested for order {order.id}: {order.total}",
                extra={"order_id": order.id, "user_id": user.pk},
            )

        return order

    def rate_order(self, order_id, user, food, delivery, overall, review=""):
        with transaction.atomic():
            order = get_owned_order(order_id, user, for_update=True)

            if order.status != Order.Status.DELIVERED:
                raise InvalidState("Order must be delivered to rate")

            if OrderRating.objects.filter(order=order).exists():
                raise InvalidState("Order has already been rated")

            try:
                with transaction.atomic():
                    rating = OrderRating.objects.create(
                        order=order,
                        food=food,
                        delivery=delivery,
                        overall=overall,
                        review=review or "",
                    )
            except IntegrityError:
                raise InvalidState("Order has already been rated")

        logger.info(f"Order {order.id} rated {overall}/5", extra={"order_id": order.id, "user_id": user.pk})
        return rating

    @transaction.atomic
    def advance_status(self, order_id, target, description="", delivery_partner=None, actor=None):
        """
        Fulfilment updates pushed by restaurant / delivery staff:
        confirmed -> preparing -> ready_for_pickup -> out_for_delivery -> delivered
        """
        if target not in FULFILMENT_FLOW[1:]:
            raise InvalidState(f"Status '{target}' cannot be set directly")
        target = Order.Status(target)

        try:
            order = Order.objects.select_for_update().get(id=order_id)
        except (Order.DoesNotExist, ValidationError, ValueError):
            raise NotFound("Order not found")

        extra_fields = []
        if target == Order.Status.OUT_FOR_DELIVERY and delivery_partner:
            order.delivery_partner = delivery_partner
            extra_fields.append("delivery_partner")
        if target == Order.Status.DELIVERED:
            order.actual_delivery_time = timezone.now()
            extra_fields.append("actual_delivery_time")

        transition(order, target, description or STATUS_DESCRIPTIONS[target], extra_fields)
        if actor is not None:
            logger.info(f"Order {order.id} moved to {target} by staff {actor.pk}", extra={"order_id": order.id})
        return order


def order_service():
    return OrderService()
