"""Health route."""

from __future__ import annotations

from fastapi import APIRouter

from orderhub import __version__
from orderhub.services import get_services

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    services = get_services()
    return {
        "status": "ok",
        "version": __version__,
        "store": type(services.store).__name__,
        "retry_queue": services.retry_queue.status()["queue_length"],
    }
