"""
HTTP surface of the session API.

Routers:
- login_router: dashboard login (open)
- router: session control and lookups under /api (token)
- send_router: outbound sends under /api/send (token + rate limit)

Send-route order: admission -> idempotency lookup -> validation -> dispatch.
Validation errors are never recorded for idempotency; dispatch outcomes are.
A duplicate arriving while the first request runs waits for its response.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from transport.whatsapp.dispatcher import NarrationError
from transport.whatsapp.schemas import (
    CheckNumberBody,
    ContactRequest,
    LoginBody,
    MediaKind,
    MediaRequest,
    NarrationRequest,
    SendContactBody,
    SendNarrationBody,
    SendTextBody,
    TextRequest,
)

from .qr import qr_data_url
from .security import AdmissionRoute, ApiError, check_login, get_context, require_token

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "idempotency-key"

login_router = APIRouter(tags=["auth"])
router = APIRouter(prefix="/api", tags=["session"], dependencies=[Depends(require_token)])
send_router = APIRouter(prefix="/api/send", tags=["send"], route_class=AdmissionRoute)


def deduce_kind(mimetype: Optional[str]) -> MediaKind:
    """Media kind from an upload content type."""
    mimetype = mimetype or ""
    if mimetype.startswith("image/"):
        return "image"
    if mimetype.startswith("video/"):
        return "video"
    if mimetype.startswith("audio/"):
        return "audio"
    return "document"


# ============================================================================
# IDEMPOTENCY HELPERS
# ============================================================================

def _idempotency_key(request: Request, client_message_id: Optional[str]) -> Optional[str]:
    return request.headers.get(IDEMPOTENCY_HEADER) or client_message_id or None


async def _replay(context, key: Optional[str]) -> Optional[JSONResponse]:
    """Recorded response for the key, or None with the key claimed by this request."""
    entry = await context.idempotency.acquire(key)
    if entry is None:
        return None
    logger.info(f"Replaying recorded response for idempotency key {key}")
    return JSONResponse(status_code=entry.status_code, content=entry.body)


def _respond(context, key: Optional[str], body: Dict[str, Any], status_code: int = 200) -> JSONResponse:
    context.idempotency.put(key, status_code, body)
    return JSONResponse(status_code=status_code, content=body)


# ============================================================================
# LOGIN
# ============================================================================

@login_router.post("/login", summary="Dashboard login")
async def login(body: LoginBody, request: Request):
    context = get_context(request)
    if check_login(context, body.user or "", body.pass_ or ""):
        return {"token": context.api_token, "user": body.user}
    raise ApiError(401, "Invalid credentials.")


# ============================================================================
# SESSION
# ============================================================================

@router.get("/qr", summary="Pairing code and connection status")
async def get_qr(request: Request):
    status = get_context(request).session.status()
    snapshot = status.to_dict()
    return {
        "connected": snapshot["connected"],
        "qr": snapshot["qr"],
        "qrImage": qr_data_url(status.qr),
        "me": snapshot["me"],
        "pushName": snapshot["pushName"],
    }


@router.get("/status", summary="Connection status")
async def get_status(request: Request):
    return get_context(request).session.status().to_dict()


@router.post("/qr/new", summary="Wipe credentials and issue a new pairing code")
async def new_qr(request: Request):
    await get_context(request).session.force_new_qr()
    return {"success": True}


@router.post("/disconnect", summary="Log out and wipe credentials")
async def disconnect(request: Request):
    await get_context(request).session.disconnect()
    return {"success": True}


@router.post("/clear-cache", summary="Wipe credentials without reconnecting")
async def clear_cache(request: Request):
    await get_context(request).session.clear_cache_only()
    return {"success": True}


@router.post("/check-number", summary="Check whether a number is on WhatsApp")
async def check_number(body: CheckNumberBody, request: Request):
    if not body.to:
        raise ApiError(400, "Field 'to' is required.")
    try:
        result = await get_context(request).dispatcher.check_number(body.to)
    except Exception as e:
        logger.error(f"Number check failed: {e}", exc_info=True, extra={"to": body.to})
        return JSONResponse(status_code=500, content={"error": "Failed to check number."})
    return {"exists": result.exists, "jid": result.jid}


# ============================================================================
# SEND
# ============================================================================

@send_router.post("/text", summary="Send a text message")
async def send_text(body: SendTextBody, request: Request):
    context = get_context(request)
    idempotency_key = _idempotency_key(request, body.clientMessageId)
    cached = await _replay(context, idempotency_key)
    if cached is not None:
        return cached
    try:
        return await _send_text(context, idempotency_key, body)
    finally:
        context.idempotency.release(idempotency_key)


async def _send_text(context, idempotency_key: Optional[str], body: SendTextBody) -> JSONResponse:
    if not body.to or not body.message:
        raise ApiError(400, "Fields 'to' and 'message' are required.")

    try:
        key = await context.dispatcher.send(TextRequest(to=body.to, message=body.message))
    except Exception as e:
        logger.error(f"Text send failed: {e}", exc_info=True, extra={"to": body.to})
        return _respond(context, idempotency_key, {"error": "Failed to send text message."}, 500)
    return _respond(context, idempotency_key, {"success": True, "key": key})


@send_router.post("/media", summary="Send an image, video, audio or document")
async def send_media(
    request: Request,
    to: Optional[str] = Form(None),
    kind: Optional[str] = Form(None, description="image | video | audio | document"),
    caption: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
):
    context = get_context(request)
    if not to or file is None:
        raise ApiError(400, "Fields 'to' and file 'file' are required.")

    # One byte past the cap is enough to reject
    data = await file.read(context.media_max_bytes + 1)
    if len(data) > context.media_max_bytes:
        raise ApiError(413, f"File exceeds the {context.media_max_bytes} byte limit.")

    mimetype = file.content_type or "application/octet-stream"
    media = MediaRequest(
        to=to,
        kind=kind or deduce_kind(mimetype),
        data=data,
        mimetype=mimetype,
        filename=file.filename,
        caption=caption,
    )
    try:
        key = await context.dispatcher.send(media)
    except Exception as e:
        logger.error(f"Media send failed: {e}", exc_info=True, extra={"to": to, "kind": media.kind})
        return JSONResponse(status_code=500, content={"error": "Failed to send media."})
    return {"success": True, "key": key}


@send_router.post("/contact", summary="Send a contact card")
async def send_contact(body: SendContactBody, request: Request):
    if not body.to or not body.name or not body.phone:
        raise ApiError(400, "Fields 'to', 'name' and 'phone' are required.")

    try:
        key = await get_context(request).dispatcher.send(
            ContactRequest(to=body.to, name=body.name, phone=body.phone)
        )
    except Exception as e:
        logger.error(f"Contact send failed: {e}", exc_info=True, extra={"to": body.to})
        return JSONResponse(status_code=500, content={"error": "Failed to send contact."})
    return {"success": True, "key": key}


@send_router.post("/narration", summary="Send text as synthesized speech")
async def send_narration(body: SendNarrationBody, request: Request):
    context = get_context(request)
    idempotency_key = _idempotency_key(request, body.clientMessageId)
    cached = await _replay(context, idempotency_key)
    if cached is not None:
        return cached
    try:
        return await _send_narration(context, idempotency_key, body)
    finally:
        context.idempotency.release(idempotency_key)


async def _send_narration(context, idempotency_key: Optional[str], body: SendNarrationBody) -> JSONResponse:
    if not body.to or not body.text:
        raise ApiError(400, "Fields 'to' and 'text' are required.")

    narration = NarrationRequest(
        to=body.to,
        text=body.text,
        lang=body.lang or "pt-BR",
        slow=bool(body.slow),
    )
    try:
        key = await context.dispatcher.send(narration)
    except Exception as e:
        logger.error(f"Narration send failed: {e}", exc_info=True, extra={"to": body.to})
        detail = e.detail if isinstance(e, NarrationError) else str(e)
        return _respond(
            context,
            idempotency_key,
            {"error": "Failed to send narrated audio.", "detail": detail},
            500,
        )
    return _respond(context, idempotency_key, {"success": True, "key": key})
