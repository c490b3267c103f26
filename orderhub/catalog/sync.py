"""Pull Shiprocket's view of our catalog and link variant ids by SKU.

Shiprocket assigns its own variant ids once it ingests a product.  The
checkout webhooks reference only those ids, so a variant without one
cannot be ordered.  Linking is write-once: an existing id is never
overwritten.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from orderhub.config import Settings
from orderhub.errors import BadRequestError, InternalServerError
from orderhub.serialization import utcnow
from orderhub.storage.base import Store
from orderhub.webhooks.outbound import OutboundWebhookSender
from orderhub.webhooks.verification import SIGNATURE_HEADER, sign_json

logger = logging.getLogger(__name__)

CATALOG_PATH = "/api/v1/custom/catalog"


class CatalogSync:

    def __init__(
        self,
        store: Store,
        settings: Settings,
        sender: OutboundWebhookSender,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._store = store
        self._settings = settings
        self._sender = sender
        self._transport = transport

    async def pull_catalog(self) -> list[dict[str, Any]]:
        """Fetch the catalog Shiprocket currently holds for us."""
        body, signature = sign_json(
            {"timestamp": utcnow().isoformat()}, self._settings.shiprocket_webhook_secret
        )
        headers = {
            "X-Api-Key": self._settings.shiprocket_api_key,
            SIGNATURE_HEADER: signature,
            "Content-Type": "application/json",
        }
        url = self._settings.shiprocket_checkout_base_url.rstrip("/") + CATALOG_PATH
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._settings.shiprocket_timeout_seconds
            ) as client:
                resp = await client.post(url, content=body, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Shiprocket catalog pull failed: %s", exc)
            raise InternalServerError("Failed to pull catalog from Shiprocket") from exc
        return resp.json().get("products") or []

    def link_variants(self, shiprocket_products: list[dict[str, Any]]) -> int:
        """Set shiprocket_variant_id on SKU-matched variants that lack one."""
        linked = 0
        for product in shiprocket_products:
            for remote in product.get("variants") or []:
                sku, remote_id = remote.get("sku"), remote.get("id")
                if not sku or remote_id in (None, ""):
                    continue
                variant = self._store.catalog.get_variant_by_sku(sku)
                if variant is None:
                    logger.debug("Shiprocket variant %s has unknown SKU %s", remote_id, sku)
                    continue
                if self._store.catalog.set_shiprocket_variant_id(variant.id, str(remote_id)):
                    linked += 1
        logger.info("Linked %d variant(s) to Shiprocket ids", linked)
        return linked

    async def sync_product(self, product_id: str) -> int:
        """Push one product, then pull the catalog back and link new variant ids.

        A product with no linked variants cannot be pushed yet; the pull
        still runs so the next push can include it.
        """
        try:
            await self._sender.send_product_update(product_id)
        except BadRequestError as exc:
            logger.info("Skipping push for product %s: %s", product_id, exc.message)
        products = await self.pull_catalog()
        return await asyncio.to_thread(self.link_variants, products)
