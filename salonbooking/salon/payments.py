"""Razorpay payment adapter.

Two flows are supported:

 * order based: create an order, let Razorpay Checkout collect the payment in
   the page, then verify ``HMAC_SHA256(order_id|payment_id)``;
 * link based: create a hosted payment link whose callback carries
   ``link_id|reference_id|status|payment_id`` signed the same way.

Provider failures are raised as :class:`PaymentGatewayError` and never
retried.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import time
from typing import Any

import requests

from .config import RAZORPAY_API_URL, Settings
from .system import ValidationError, coerce_number, plain_number, round_half_up

log = logging.getLogger(__name__)

CURRENCY = "INR"
MIN_AMOUNT_PAISE = 100
COUNTRY_CODE = "+91"
LINK_DESCRIPTION = "Hair Salon Appointment Payment"


class SignatureError(ValidationError):
    """Raised when a payment signature does not match."""


class GatewayNotConfigured(RuntimeError):
    """Raised when Razorpay credentials are missing."""


class PaymentGatewayError(RuntimeError):
    """Raised when Razorpay rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ----------------------------------------------------------------------
# Amounts & signatures
# ----------------------------------------------------------------------
def to_paise(amount: Any) -> int:
    """Convert a rupee amount to paise, rejecting anything below ₹1."""

    try:
        rupees = coerce_number(amount, "amount", minimum=None)
    except ValidationError:
        raise ValidationError("Amount must be at least ₹1") from None
    if not math.isfinite(rupees * 100):
        raise ValidationError("Amount must be at least ₹1")
    paise = round_half_up(rupees * 100)
    if paise < MIN_AMOUNT_PAISE:
        raise ValidationError("Amount must be at least ₹1")
    return paise


def require_customer(name: Any, phone: Any, amount: Any) -> tuple[str, str, int]:
    if not name or not phone or not amount:
        raise ValidationError("name, phone and amount are required")
    return str(name).strip(), str(phone).strip(), to_paise(amount)


def sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def order_signature(secret: str, order_id: str, payment_id: str) -> str:
    return sign(secret, f"{order_id}|{payment_id}")


def payment_link_signature(
    secret: str,
    link_id: str,
    reference_id: str,
    status: str,
    payment_id: str,
) -> str:
    return sign(secret, "|".join([link_id, reference_id, status, payment_id]))


def signatures_match(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode(), str(provided or "").encode())


# ----------------------------------------------------------------------
# REST client
# ----------------------------------------------------------------------
def _error_message(response: requests.Response) -> str:
    try:
        return response.json()["error"]["description"]
    except (ValueError, KeyError, TypeError):
        return f"Razorpay HTTP {response.status_code}: {response.text[:200]}"


class RazorpayClient:
    """Thin wrapper over the Razorpay v1 REST API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        base_url: str = RAZORPAY_API_URL,
        timeout: float = 20.0,
        session: requests.Session | None = None,
    ) -> None:
        self.key_id = key_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            log.error("[razorpay] %s %s failed: %s", method, path, exc)
            raise PaymentGatewayError(str(exc)) from exc
        if not response.ok:
            message = _error_message(response)
            log.error("[razorpay] %s %s -> %s: %s", method, path, response.status_code, message)
            raise PaymentGatewayError(message, status_code=response.status_code)
        return response.json()

    def create_order(self, payload: dict) -> dict:
        return self._request("POST", "/orders", payload)

    def create_payment_link(self, payload: dict) -> dict:
        return self._request("POST", "/payment_links", payload)

    def fetch_payment(self, payment_id: str) -> dict:
        return self._request("GET", f"/payments/{payment_id}")


# ----------------------------------------------------------------------
# Payment flows
# ----------------------------------------------------------------------
class PaymentService:
    """Order and payment-link flows on top of :class:`RazorpayClient`."""

    def __init__(self, settings: Settings, client: RazorpayClient | None = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> RazorpayClient:
        self._require_credentials()
        if self._client is None:
            self._client = RazorpayClient(
                self.settings.razorpay_key_id,
                self.settings.razorpay_key_secret,
                base_url=self.settings.razorpay_api_url,
                timeout=self.settings.request_timeout,
            )
        return self._client

    def _require_credentials(self) -> None:
        if not self.settings.payments_configured:
            raise GatewayNotConfigured("Payment gateway not configured")

    @property
    def callback_url(self) -> str:
        return f"{self.settings.frontend_url}/payment-status"

    def create_order(self, *, name: Any, phone: Any, amount: Any) -> dict:
        name, phone, paise = require_customer(name, phone, amount)
        order = self.client.create_order(
            {
                "amount": paise,
                "currency": CURRENCY,
                "receipt": f"rcpt_{int(time.time() * 1000)}",
                "notes": {
                    "customer_name": name,
                    "customer_phone": phone,
                    "amount_inr": str(amount),
                },
            }
        )
        log.info("Created order %s for %s paise", order.get("id"), paise)
        return {
            "order_id": order["id"],
            "amount": order.get("amount", paise),
            "currency": order.get("currency", CURRENCY),
            "key_id": self.settings.razorpay_key_id,
        }

    def verify_order_payment(
        self,
        *,
        order_id: str | None,
        payment_id: str | None,
        signature: str | None,
        name: str | None = None,
        phone: str | None = None,
        amount: Any = None,
    ) -> dict:
        self._require_credentials()
        if not order_id or not payment_id or not signature:
            raise ValidationError("Missing payment parameters")
        expected = order_signature(self.settings.razorpay_key_secret, order_id, payment_id)
        if not signatures_match(expected, signature):
            log.warning("Signature mismatch for order %s / payment %s", order_id, payment_id)
            raise SignatureError("Invalid payment signature")
        paise = coerce_number(amount, "amount", default=0)
        log.info("Verified payment %s for order %s", payment_id, order_id)
        return {
            "success": True,
            "payment_id": payment_id,
            "amount": plain_number(paise / 100),
            "name": name or "",
            "phone": phone or "",
        }

    def create_payment_link(self, *, name: Any, phone: Any, amount: Any) -> dict:
        name, phone, paise = require_customer(name, phone, amount)
        link = self.client.create_payment_link(
            {
                "amount": paise,
                "currency": CURRENCY,
                "accept_partial": False,
                "description": LINK_DESCRIPTION,
                "customer": {"name": name, "contact": COUNTRY_CODE + phone},
                "notify": {"sms": True, "email": False},
                "reminder_enable": False,
                "notes": {
                    "customer_name": name,
                    "customer_phone": phone,
                    "amount_inr": str(amount),
                },
                # Razorpay appends the razorpay_* query parameters to this URL
                "callback_url": self.callback_url,
                "callback_method": "get",
            }
        )
        log.info("Created payment link %s for %s paise", link.get("id"), paise)
        return {"payment_link_url": link["short_url"]}

    def verify_payment_link(
        self,
        *,
        payment_id: str | None,
        link_id: str | None,
        reference_id: str | None,
        status: str | None,
        signature: str | None,
    ) -> dict:
        self._require_credentials()
        if not payment_id or not link_id or not signature:
            raise ValidationError("Missing payment parameters")
        expected = payment_link_signature(
            self.settings.razorpay_key_secret,
            link_id,
            reference_id or "",
            status or "",
            payment_id,
        )
        if not signatures_match(expected, signature):
            log.warning("Signature mismatch for payment link %s", link_id)
            raise SignatureError("Invalid payment signature")

        payment = self.client.fetch_payment(payment_id)
        notes = payment.get("notes") or {}
        return {
            "success": True,
            "payment_id": payment_id,
            "amount": plain_number(payment.get("amount", 0) / 100),
            "currency": payment.get("currency", CURRENCY),
            "name": notes.get("customer_name", ""),
            "phone": notes.get("customer_phone", ""),
            "status": payment.get("status"),
        }
