"""Outbound catalog webhooks: push product/collection changes to Shiprocket.

Every push is serialized once, signed with the shared secret over those
exact bytes, and POSTed with a fixed timeout.  Any non-2xx response,
timeout or transport error raises, so the retry queue counts it as a
failed attempt.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

import httpx

from orderhub.catalog.feed import CatalogFeed
from orderhub.config import Settings
from orderhub.errors import InternalServerError
from orderhub.webhooks.verification import SIGNATURE_HEADER, sign_json

logger = logging.getLogger(__name__)

PRODUCT_PATH = "/wh/v1/custom/product"
COLLECTION_PATH = "/wh/v1/custom/collection"


class JobKind(str, Enum):
    PRODUCT = "product"
    COLLECTION = "collection"


class OutboundWebhookSender:

    def __init__(
        self,
        feed: CatalogFeed,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._feed = feed
        self._settings = settings
        self._transport = transport

    async def send(self, kind: JobKind, target_id: str) -> dict[str, Any]:
        if kind == JobKind.PRODUCT:
            return await self.send_product_update(target_id)
        return await self.send_collection_update(target_id)

    async def send_product_update(self, product_id: str) -> dict[str, Any]:
        payload = await asyncio.to_thread(self._feed.product_webhook_data, product_id)
        result = await self._post(PRODUCT_PATH, payload)
        logger.info("Product %s pushed to Shiprocket", product_id)
        return result

    async def send_collection_update(self, collection_id: str) -> dict[str, Any]:
        payload = await asyncio.to_thread(self._feed.collection_webhook_data, collection_id)
        result = await self._post(COLLECTION_PATH, payload)
        logger.info("Collection %s pushed to Shiprocket", collection_id)
        return result

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        api_key = self._settings.shiprocket_api_key
        secret = self._settings.shiprocket_webhook_secret
        if not api_key or not secret:
            raise InternalServerError("SHIPROCKET_API_KEY / SHIPROCKET_WEBHOOK_SECRET not configured")

        body, signature = sign_json(payload, secret)
        headers = {
            "X-Api-Key": api_key,
            SIGNATURE_HEADER: signature,
            "Content-Type": "application/json",
        }
        url = self._settings.shiprocket_checkout_base_url.rstrip("/") + path
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._settings.shiprocket_timeout_seconds
        ) as client:
            resp = await client.post(url, content=body, headers=headers)
            resp.raise_for_status()
        return resp.json() if resp.content else {}
