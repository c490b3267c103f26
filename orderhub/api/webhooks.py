"""Inbound Shiprocket webhook route.

Security contract:
- The raw body is read once and verified before anything parses it
- Signature failures return 401 {"error": "unauthorized"} and nothing else
- Other failures return {"error": message}; never a traceback
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from orderhub.api.security import WEBHOOK_RATE_LIMIT, limiter
from orderhub.errors import AuthenticationError
from orderhub.services import get_services
from orderhub.webhooks.processor import event_counts
from orderhub.webhooks.verification import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/shiprocket")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def shiprocket_webhook(request: Request):
    """Receive Shiprocket checkout and shipment events (signature-verified)."""
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    processor = get_services().webhooks
    try:
        result = await run_in_threadpool(processor.process, body, signature)
    except AuthenticationError:
        return JSONResponse({"error": "unauthorized"}, status_code=401)
    return JSONResponse(result)


@router.get("/status")
async def webhook_status():
    """Delivery counts per event kind since process start."""
    return {"counts": event_counts()}
