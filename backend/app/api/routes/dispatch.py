"""Dispatch trigger endpoint (called by cron / scheduler)."""
import json

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.api.deps import get_outbox_store, get_push_client, get_settings
from app.core.config import Settings
from app.notifications.dispatcher import dispatch_with_settings
from app.notifications.outbox import OutboxStore
from app.notifications.push_sender import PushClient

router = APIRouter()


async def _read_batch_size(request: Request):
    raw = await request.body()
    if not raw:
        return None
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    return body.get("batch_size")


@router.post("/")
async def run_dispatch(
    request: Request,
    store: OutboxStore = Depends(get_outbox_store),
    push_client: PushClient = Depends(get_push_client),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Run one dispatch batch. Store failures surface as 500 via the app error handler."""
    batch_size = await _read_batch_size(request)
    summary = await run_in_threadpool(dispatch_with_settings, store, push_client, settings, batch_size)
    return {"success": True, "summary": summary.as_dict()}


@router.api_route("/", methods=["PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"], include_in_schema=False)
async def method_not_allowed() -> JSONResponse:
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})
