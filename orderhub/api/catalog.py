"""Shiprocket catalog feed and outbound sync triggers.

The feed endpoints are polled by Shiprocket and sit behind the IP
allow-list.  The sync endpoints queue outbound pushes on the retry queue
and return immediately.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from orderhub.api.security import require_shiprocket_ip
from orderhub.errors import NotFoundError
from orderhub.services import get_services
from orderhub.webhooks.outbound import JobKind

router = APIRouter(prefix="/shiprocket", tags=["shiprocket"])

feed_router = APIRouter(dependencies=[Depends(require_shiprocket_ip)])


@feed_router.get("/products")
def products(page: int = Query(1, ge=1), limit: int = Query(100, ge=1, le=250)):
    return get_services().feed.fetch_products(page, limit)


@feed_router.get("/products-by-collection")
def products_by_collection(
    collection_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=250),
):
    return get_services().feed.fetch_products_by_collection(collection_id, page, limit)


@feed_router.get("/collections")
def collections(page: int = Query(1, ge=1), limit: int = Query(100, ge=1, le=250)):
    return get_services().feed.fetch_collections(page, limit)


@feed_router.get("/webhook-data/{product_id}")
def webhook_data(product_id: str):
    """The exact product body a push would send, for debugging."""
    return get_services().feed.product_webhook_data(product_id)


router.include_router(feed_router)


# ── Outbound sync ─────────────────────────────────────────────────────────


@router.post("/sync/products/{product_id}", status_code=202)
async def sync_product(product_id: str):
    services = get_services()
    if await run_in_threadpool(services.store.catalog.get_product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    job = services.retry_queue.add(JobKind.PRODUCT, product_id)
    return {"queued": True, "kind": job.kind.value, "target_id": product_id}


@router.post("/sync/collections/{collection_id}", status_code=202)
async def sync_collection(collection_id: str):
    services = get_services()
    if await run_in_threadpool(services.store.catalog.get_category, collection_id) is None:
        raise NotFoundError(f"Collection {collection_id} not found")
    job = services.retry_queue.add(JobKind.COLLECTION, collection_id)
    return {"queued": True, "kind": job.kind.value, "target_id": collection_id}


@router.post("/sync/catalog")
async def sync_catalog():
    """Pull Shiprocket's catalog and link variant ids by SKU."""
    services = get_services()
    remote = await services.catalog_sync.pull_catalog()
    linked = await run_in_threadpool(services.catalog_sync.link_variants, remote)
    return {"products": len(remote), "linked": linked}


@router.get("/sync/status")
def sync_status():
    return get_services().retry_queue.status()
