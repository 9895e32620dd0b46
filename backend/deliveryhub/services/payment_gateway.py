# Overview: Stripe integration for Checkout sessions and webhook signature verification.

from __future__ import annotations

import json

import stripe


class PaymentGatewayError(Exception):
    """Raised when a Stripe API call fails or the gateway is not configured."""
    pass


class SignatureVerificationFailed(PaymentGatewayError):
    """Raised when a webhook payload does not carry a valid signature."""
    pass


class MalformedPayloadError(PaymentGatewayError):
    """Raised when a signed webhook payload is not a JSON event object."""
    pass


class PaymentGateway:
    """
    Stripe access with explicit keys (no module-global stripe.api_key).

    construct_event verifies the Stripe-Signature header against the raw body
    before anything is parsed, and returns the event as a plain dict.
    """

    def __init__(self, secret_key: str, webhook_secret: str, tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key and self.webhook_secret)

    def construct_event(self, payload: bytes, sig_header: str | None) -> dict:
        if not self.webhook_secret:
            raise SignatureVerificationFailed("Webhook secret is not configured")
        if not sig_header:
            raise SignatureVerificationFailed("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SignatureVerificationFailed("Payload is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(body, sig_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as exc:
            raise SignatureVerificationFailed(str(exc)) from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise MalformedPayloadError("Payload is not valid JSON") from exc
        if not isinstance(event, dict):
            raise MalformedPayloadError("Payload is not a JSON object")
        return event

    def create_checkout_session(
        self,
        *,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
        customer_email: str | None = None,
    ) -> dict:
        """One-off card payment for a single unit of price_id."""
        if not self.secret_key:
            raise PaymentGatewayError("Stripe is not configured")

        params = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Stripe error: {exc}") from exc

        return {"sessionId": session.id, "url": session.url}
