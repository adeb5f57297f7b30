"""
Payment provider port.

One implementation is chosen at process level from settings.PAYMENTS_MODE and
injected into PaymentService. Business code never checks the mode itself.
"""
import abc
import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from functools import lru_cache

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError
import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from apps.utils.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

MODE_LIVE = "live"
MODE_SIMULATION = "simulation"


@dataclass(frozen=True)
class RemoteOrder:
    id: str
    amount: int
    currency: str
    receipt: str
    status: str
    created_at: datetime
    raw: dict = field(default_factory=dict, compare=False)


class PaymentGateway(abc.ABC):
    mode = None

    @abc.abstractmethod
    def create_remote_order(self, amount: int, currency: str, receipt: str, notes: dict) -> RemoteOrder:
        """Create a provider-side order for `amount` minor units."""

    @abc.abstractmethod
    def verify_signature(self, provider_order_id: str, provider_payment_id: str, signature: str) -> bool:
        """True iff the checkout callback signature is authentic."""


class RazorpayGateway(PaymentGateway):
    mode = MODE_LIVE

    def __init__(self, key_id, key_secret, timeout=10, client=None):
        if not key_id or not key_secret:
            raise ImproperlyConfigured(
                "RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are required when PAYMENTS_MODE=live"
            )
        self.timeout = timeout
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_remote_order(self, amount, currency, receipt, notes):
        try:
            data = self.client.order.create(
                data={
                    "amount": amount,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": notes,
                    "payment_capture": 1,
                },
                timeout=self.timeout,
            )
        except (requests.RequestException, BadRequestError, ServerError, GatewayError) as e:
            logger.error(f"Razorpay Order Create Failed: {e}")
            raise UpstreamUnavailable("Payment gateway is unavailable. Please try again.")

        created = data.get("created_at")
        return RemoteOrder(
            id=data["id"],
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
            created_at=(
                datetime.fromtimestamp(created, tz=dt_timezone.utc) if created
                else datetime.now(tz=dt_timezone.utc)
            ),
            raw=data,
        )

    def verify_signature(self, provider_order_id, provider_payment_id, signature):
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": provider_order_id,
                "razorpay_payment_id": provider_payment_id,
                "razorpay_signature": signature,
            })
            return True
        except SignatureVerificationError:
            logger.warning(f"Razorpay signature mismatch for {provider_order_id}")
            return False
        except Exception as e:
            logger.error(f"Signature validation error: {e}")
            return False


class SimulatedGateway(PaymentGateway):
    """
    Offline stand-in: fabricates provider orders and accepts every signature.
    """
    mode = MODE_SIMULATION

    def __init__(self):
        self._sequence = itertools.count(1)

    def create_remote_order(self, amount, currency, receipt, notes):
        now_ms = int(time.time() * 1000)
        order_id = f"order_mock_{now_ms}_{next(self._sequence)}"
        data = {
            "id": order_id,
            "amount": amount,
            "currency": currency,
            "receipt": receipt or f"mock_receipt_{now_ms}",
            "notes": notes or {},
            "status": "created",
            "created_at": now_ms // 1000,
        }
        return RemoteOrder(
            id=order_id,
            amount=amount,
            currency=currency,
            receipt=data["receipt"],
            status="created",
            created_at=datetime.fromtimestamp(now_ms / 1000, tz=dt_timezone.utc),
            raw=data,
        )

    def verify_signature(self, provider_order_id, provider_payment_id, signature):
        return True


def build_payment_gateway(mode=None) -> PaymentGateway:
    mode = mode or settings.PAYMENTS_MODE
    if mode == MODE_SIMULATION:
        logger.warning("Payments running in SIMULATION mode: no money moves, every signature is accepted.")
        return SimulatedGateway()
    if mode == MODE_LIVE:
        return RazorpayGateway(
            settings.RAZORPAY_KEY_ID,
            settings.RAZORPAY_KEY_SECRET,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
        )
    raise ImproperlyConfigured(f"Unknown PAYMENTS_MODE '{mode}' (expected 'live' or 'simulation')")


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    return build_payment_gateway()
