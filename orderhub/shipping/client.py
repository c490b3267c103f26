"""Shiprocket shipping API client (orders, couriers, AWB, pickup, tracking).

Auth: POST /auth/login with account email/password returns a bearer
token valid for 10 days; we cache it for 9 and re-login after that or
on a 401 (once per request).  429 and 5xx responses and transport
errors are retried after RETRY_DELAYS, or after Retry-After when
Shiprocket sends one; anything still failing surfaces as
InternalServerError.  Never call this while a storage transaction is
open.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import httpx

from orderhub.config import Settings
from orderhub.errors import InternalServerError

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 9 * 24 * 3600
RETRY_DELAYS = (1.0, 2.0)
MAX_RETRY_AFTER = 30.0

_TRANSIENT_STATUS = frozenset({429, 500, 502, 503, 504})


def _retry_after(resp: httpx.Response) -> float | None:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return min(float(value), MAX_RETRY_AFTER)
    except ValueError:
        return None


class ShiprocketClient:

    def __init__(
        self,
        settings: Settings,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        retry_delays: tuple[float, ...] = RETRY_DELAYS,
    ):
        self._settings = settings
        self._transport = transport
        self._clock = clock
        self._retry_delays = retry_delays
        self._token: str | None = None
        self._token_expiry = 0.0
        self._lock = threading.Lock()

    def _http(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._settings.shiprocket_api_base_url.rstrip("/"),
            timeout=self._settings.shiprocket_timeout_seconds,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    def _get_token(self) -> str:
        with self._lock:
            if self._token and self._token_expiry > self._clock():
                return self._token
            try:
                with self._http() as http:
                    resp = http.post(
                        "/auth/login",
                        json={
                            "email": self._settings.shiprocket_email,
                            "password": self._settings.shiprocket_password,
                        },
                    )
                    resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("Shiprocket auth failed: %s", exc)
                raise InternalServerError("Failed to authenticate with Shiprocket") from exc
            self._token = resp.json()["token"]
            self._token_expiry = self._clock() + TOKEN_TTL_SECONDS
            logger.info("Shiprocket auth token refreshed")
            return self._token

    def _invalidate_token(self) -> None:
        with self._lock:
            self._token = None
            self._token_expiry = 0.0

    def _send(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        relogged = False
        attempt = 0
        while True:
            token = self._get_token()
            try:
                with self._http() as http:
                    resp = http.request(method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs)
            except httpx.TransportError as exc:
                if attempt >= len(self._retry_delays):
                    raise
                delay = self._retry_delays[attempt]
                logger.warning(
                    "Shiprocket %s %s failed (%s), retry %d in %.1fs",
                    method, path, type(exc).__name__, attempt + 1, delay,
                )
            else:
                if resp.status_code == 401 and not relogged:
                    logger.info("Shiprocket rejected the cached token, logging in again")
                    self._invalidate_token()
                    relogged = True
                    continue
                if resp.status_code not in _TRANSIENT_STATUS or attempt >= len(self._retry_delays):
                    resp.raise_for_status()
                    return resp.json() if resp.content else {}
                delay = _retry_after(resp) or self._retry_delays[attempt]
                logger.warning(
                    "Shiprocket %s %s returned %d, retry %d in %.1fs",
                    method, path, resp.status_code, attempt + 1, delay,
                )
            attempt += 1
            time.sleep(delay)

    def request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            return self._send(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Shiprocket %s %s failed: %s", method, path, exc)
            raise InternalServerError(f"Shiprocket request failed: {method} {path}") from exc

    # ── Endpoints ─────────────────────────────────────────────────────────

    def create_order(self, order: dict[str, Any]) -> dict[str, Any]:
        return self.request("POST", "/orders/create/adhoc", json=order)

    def get_available_couriers(
        self,
        *,
        pickup_postcode: str,
        delivery_postcode: str,
        weight: float,
        cod: bool,
        order_amount: float | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "pickup_postcode": pickup_postcode,
            "delivery_postcode": delivery_postcode,
            "weight": weight,
            "cod": 1 if cod else 0,
        }
        if order_amount is not None:
            params["order_amount"] = order_amount
        return self.request("GET", "/courier/serviceability/", params=params)

    def assign_courier(self, shipment_id: int, courier_id: int) -> dict[str, Any]:
        return self.request("POST", "/courier/assign/awb", json={"shipment_id": shipment_id, "courier_id": courier_id})

    def generate_pickup(self, shipment_id: int) -> dict[str, Any]:
        return self.request("POST", "/courier/generate/pickup", json={"shipment_id": [shipment_id]})

    def track_shipment(self, awb: str) -> dict[str, Any]:
        return self.request("GET", f"/courier/track/awb/{awb}")

    def cancel_shipments(self, awbs: list[str]) -> dict[str, Any]:
        return self.request("POST", "/orders/cancel/shipment/awbs", json={"awbs": awbs})
