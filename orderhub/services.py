"""Service wiring: one place that builds every component from Settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from orderhub.catalog.feed import CatalogFeed
from orderhub.catalog.sync import CatalogSync
from orderhub.config import Settings, settings as default_settings
from orderhub.inventory.ledger import StockLedger
from orderhub.notifications.mail import Mailer
from orderhub.orders.service import OrderService
from orderhub.payments.service import PaymentService
from orderhub.shipping.client import ShiprocketClient
from orderhub.shipping.service import ShipmentService
from orderhub.storage import create_store
from orderhub.storage.base import Store
from orderhub.webhooks.outbound import OutboundWebhookSender
from orderhub.webhooks.processor import WebhookProcessor
from orderhub.webhooks.queue import WebhookRetryQueue
from orderhub.wishlist.service import WishlistService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: Store
    ledger: StockLedger
    mailer: Mailer
    orders: OrderService
    webhooks: WebhookProcessor
    feed: CatalogFeed
    sender: OutboundWebhookSender
    retry_queue: WebhookRetryQueue
    catalog_sync: CatalogSync
    shiprocket: ShiprocketClient
    shipments: ShipmentService
    payments: PaymentService
    wishlists: WishlistService


def build_services(settings: Settings | None = None, store: Store | None = None) -> Services:
    settings = settings or default_settings
    store = store or create_store(settings.database_url)
    ledger = StockLedger(store)
    mailer = Mailer(settings)
    orders = OrderService(store, ledger, mailer, price_tolerance=settings.price_tolerance)
    feed = CatalogFeed(store, vendor=settings.store_vendor)
    sender = OutboundWebhookSender(feed, settings)
    shiprocket = ShiprocketClient(settings)
    logger.info("Services built (store=%s)", type(store).__name__)
    return Services(
        settings=settings,
        store=store,
        ledger=ledger,
        mailer=mailer,
        orders=orders,
        webhooks=WebhookProcessor(orders, secret=settings.shiprocket_webhook_secret),
        feed=feed,
        sender=sender,
        retry_queue=WebhookRetryQueue(sender.send),
        catalog_sync=CatalogSync(store, settings, sender),
        shiprocket=shiprocket,
        shipments=ShipmentService(store, orders, shiprocket, settings),
        payments=PaymentService(store, orders),
        wishlists=WishlistService(store),
    )


_services: Services | None = None


def get_services() -> Services:
    """Process-wide services, built on first use."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Services | None) -> None:
    """Replace the process-wide services (tests, app startup)."""
    global _services
    _services = services
