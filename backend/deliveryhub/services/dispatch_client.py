# Overview: HTTP client for the delivery-dispatch provider (Shipday-compatible API).

from __future__ import annotations

import httpx


class DispatchError(Exception):
    """Raised when the provider did not accept the order (network, timeout, non-2xx, bad body)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DispatchClient:
    """
    Thin synchronous client for POST {base_url}/orders.

    One request per call, no retries. A bounded timeout covers connect, read
    and write so a slow provider cannot hold the request handler open.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def create_order(self, payload: dict) -> str:
        """Submit an order and return the provider's order id."""
        if not self.is_configured:
            raise DispatchError("Dispatch provider is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                r = client.post(f"{self.base_url}/orders", headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise DispatchError(f"Dispatch provider timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise DispatchError(f"Dispatch provider unreachable: {exc}") from exc

        if r.status_code >= 300:
            raise DispatchError(f"Dispatch provider error: {r.status_code} {r.text[:200]}", r.status_code)

        try:
            body = r.json()
        except ValueError as exc:
            raise DispatchError("Dispatch provider returned invalid JSON", r.status_code) from exc

        order_id = body.get("orderId") if isinstance(body, dict) else None
        if order_id in (None, ""):
            raise DispatchError("Dispatch provider response missing orderId", r.status_code)
        return str(order_id)
