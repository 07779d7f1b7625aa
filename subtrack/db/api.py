from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

import httpx

from subtrack.core import Settings, get_settings
from subtrack.core.errors import (
    DuplicatePaymentError,
    NetworkError,
    NotFoundError,
    ServerError,
    SubtrackError,
    ValidationError,
)
from subtrack.db.models import (
    Budget,
    Payment,
    PaymentMethod,
    PaymentStats,
    SkipDuration,
    Subscription,
    normalize_payment,
    normalize_subscription,
)


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("message") or body.get("error")
    return None


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.status_code < 400:
        return

    message = _error_message(response) or f"{action} failed"
    status = response.status_code
    if status in (400, 422):
        raise ValidationError(message, status_code=status, detail=response.text)
    if status == 404:
        raise NotFoundError(message, status_code=status, detail=response.text)
    if status == 409:
        raise DuplicatePaymentError(message, status_code=status, detail=response.text)
    if status >= 500:
        raise ServerError(message, status_code=status, detail=response.text)
    raise SubtrackError(message, status_code=status, detail=response.text)


def _unwrap_list(body: Any, key: str) -> list[dict[str, Any]]:
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        items = body.get(key) or body.get("data") or []
        return items if isinstance(items, list) else []
    return []


def _unwrap_item(body: Any, key: str) -> dict[str, Any]:
    if isinstance(body, dict) and isinstance(body.get(key), dict):
        return body[key]
    if isinstance(body, dict):
        return body
    raise ServerError(f"Unexpected response shape for '{key}'", detail=str(body))


class SubaApiClient:
    """
    Minimal async client for the subscription backend.

    Each call is a single request bounded by the client-side timeout; nothing
    is retried. Transport failures surface as NetworkError, HTTP failures are
    mapped onto the engine's error taxonomy.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._settings.api_token:
            headers["Authorization"] = f"Bearer {self._settings.api_token}"

        self._http = httpx.AsyncClient(
            base_url=str(self._settings.api_base_url).rstrip("/"),
            headers=headers,
            timeout=self._settings.request_timeout,
            transport=transport,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    async def close(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{action} timed out", detail=str(exc)) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{action} failed: network unavailable", detail=str(exc)) from exc

        _raise_for_status(response, action)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ServerError(f"{action} returned invalid JSON", detail=response.text) from exc

    # Subscriptions

    async def list_subscriptions(self) -> list[Subscription]:
        body = await self._request("GET", "/subscriptions", "Fetch subscriptions")
        default_days = self._settings.default_reminder_days
        return [normalize_subscription(item, default_days) for item in _unwrap_list(body, "subscriptions")]

    async def get_subscription(self, subscription_id: str) -> Subscription:
        body = await self._request("GET", f"/subscriptions/{subscription_id}", "Fetch subscription")
        return normalize_subscription(_unwrap_item(body, "subscription"), self._settings.default_reminder_days)

    async def create_subscription(self, fields: dict[str, Any]) -> Subscription:
        body = await self._request(
            "POST",
            "/subscriptions",
            "Create subscription",
            json=_jsonable(fields),
        )
        return normalize_subscription(_unwrap_item(body, "subscription"), self._settings.default_reminder_days)

    async def update_subscription(self, subscription_id: str, fields: dict[str, Any]) -> Subscription:
        body = await self._request(
            "PUT",
            f"/subscriptions/{subscription_id}",
            "Update subscription",
            json=_jsonable(fields),
        )
        return normalize_subscription(_unwrap_item(body, "subscription"), self._settings.default_reminder_days)

    async def cancel_subscription(self, subscription_id: str) -> None:
        await self._request("PUT", f"/subscriptions/{subscription_id}/cancel", "Cancel subscription")

    async def delete_subscription(self, subscription_id: str) -> None:
        await self._request("DELETE", f"/subscriptions/{subscription_id}", "Delete subscription")

    # Payments

    async def mark_paid(
        self,
        subscription_id: str,
        *,
        amount: Decimal,
        currency: str,
        method: PaymentMethod = PaymentMethod.MANUAL,
        payment_date: date | None = None,
    ) -> Subscription | None:
        """
        Record a payment. Returns the updated subscription when the backend echoes it.
        """
        payload = {
            "payment_method": method.value,
            "payment_date": (payment_date or date.today()).isoformat(),
            "amount": str(amount),
            "currency": currency,
        }
        body = await self._request(
            "PUT",
            f"/payments/subscriptions/{subscription_id}/mark-paid",
            "Mark subscription as paid",
            json=payload,
        )
        if isinstance(body, dict) and isinstance(body.get("subscription"), dict):
            return normalize_subscription(body["subscription"], self._settings.default_reminder_days)
        return None

    async def skip_reminder(self, subscription_id: str, duration: SkipDuration) -> Subscription | None:
        body = await self._request(
            "PUT",
            f"/payments/subscriptions/{subscription_id}/skip",
            "Skip reminder",
            json={"skip_duration": duration.value},
        )
        if isinstance(body, dict) and isinstance(body.get("subscription"), dict):
            return normalize_subscription(body["subscription"], self._settings.default_reminder_days)
        return None

    async def list_payments(self, subscription_id: str, *, limit: int = 20, offset: int = 0) -> list[Payment]:
        """
        Payment history for a subscription, newest first.

        A subscription with no history answers 404; that is an empty list, not an error.
        """
        try:
            body = await self._request(
                "GET",
                f"/payments/subscriptions/{subscription_id}/payments",
                "Fetch payment history",
                params={"limit": limit, "offset": offset},
            )
        except NotFoundError:
            return []
        return [normalize_payment(item) for item in _unwrap_list(body, "payments")]

    async def get_payment_stats(self) -> PaymentStats:
        body = await self._request("GET", "/payments/users/current/stats", "Fetch payment stats")
        return PaymentStats.model_validate(_unwrap_item(body, "stats"))

    # Analytics

    async def get_spending(self, period: str, currency: str, mode: str = "expected") -> dict[str, Any]:
        body = await self._request(
            "GET",
            "/analytics/spending",
            "Fetch spending analytics",
            params={"period": period, "currency": currency, "mode": mode},
        )
        return _unwrap_item(body, "spending")

    async def get_categories(self, period: str, currency: str) -> list[dict[str, Any]]:
        body = await self._request(
            "GET",
            "/analytics/categories",
            "Fetch category analytics",
            params={"period": period, "currency": currency},
        )
        return _unwrap_list(body, "categories")

    async def get_trends(self, period: str, currency: str) -> list[dict[str, Any]]:
        body = await self._request(
            "GET",
            "/analytics/trends",
            "Fetch trend analytics",
            params={"period": period, "currency": currency},
        )
        return _unwrap_list(body, "trends")

    # Budget

    async def get_budget(self) -> Budget:
        body = await self._request("GET", "/budget", "Fetch budget")
        return Budget.model_validate(_unwrap_item(body, "budget"))

    async def update_budget(self, budget: Decimal, currency: str | None = None) -> Budget:
        payload: dict[str, Any] = {"budget": str(budget)}
        if currency:
            payload["currency"] = currency
        body = await self._request("PUT", "/budget", "Update budget", json=payload)
        row = _unwrap_item(body, "budget") if body else {}
        row.setdefault("budget", budget)
        if currency:
            row.setdefault("currency", currency)
        return Budget.model_validate(row)


def _jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, Decimal):
            payload[key] = str(value)
        elif isinstance(value, date):
            payload[key] = value.isoformat()
        elif hasattr(value, "value"):
            payload[key] = value.value
        else:
            payload[key] = value
    return payload


_api_client: SubaApiClient | None = None


def get_api_client() -> SubaApiClient:
    """
    Lazy singleton for SubaApiClient.

    The runner closes it on shutdown.
    """

    global _api_client
    if _api_client is None:
        _api_client = SubaApiClient()
    return _api_client
