from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import PlainTextResponse, Response

from app.conversation.router import ConversationRouter
from app.dependencies import (
    get_conversation_router,
    get_rate_limiter,
    get_repository,
    get_settings,
    get_whatsapp_client,
)
from app.models import InboundMessage, WhatsAppMessage
from app.webhook.parser import extract_messages
from app.webhook.security import validate_signature
from app.whatsapp.client import WhatsAppClient

logger = logging.getLogger(__name__)

router = APIRouter()

IMAGE_DOWNLOAD_FAILED_REPLY = "Maaf, gambar Anda tidak dapat diproses. Silakan coba lagi."

_in_flight: set[asyncio.Task] = set()


def _track_task(task: asyncio.Task) -> asyncio.Task:
    """Track a background task for graceful shutdown."""
    _in_flight.add(task)
    task.add_done_callback(_in_flight.discard)
    return task


async def wait_for_in_flight(timeout: float = 30.0) -> None:
    """Wait for all in-flight background tasks to complete."""
    if not _in_flight:
        return
    logger.info("Waiting for %d in-flight tasks (timeout=%.1fs)", len(_in_flight), timeout)
    done, pending = await asyncio.wait(_in_flight, timeout=timeout)
    if pending:
        logger.warning("%d tasks still running after timeout", len(pending))


@router.get("/webhook")
async def verify_webhook(
    request: Request,
    hub_mode: str = Query(alias="hub.mode", default=""),
    hub_verify_token: str = Query(alias="hub.verify_token", default=""),
    hub_challenge: str = Query(alias="hub.challenge", default=""),
) -> Response:
    settings = get_settings(request)
    if hub_mode == "subscribe" and hub_verify_token == settings.whatsapp_verify_token:
        return PlainTextResponse(content=hub_challenge)
    return PlainTextResponse(content="Forbidden", status_code=403)


@router.post("/webhook")
async def incoming_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> Response:
    settings = get_settings(request)
    body = await request.body()

    # Validate signature
    signature = request.headers.get("X-Hub-Signature-256", "")
    if not validate_signature(body, signature, settings.whatsapp_app_secret):
        logger.warning("Invalid webhook signature")
        return Response(status_code=200)

    payload = await request.json()
    messages = extract_messages(payload)

    repository = get_repository(request)
    wa_client = get_whatsapp_client(request)
    conversation_router = get_conversation_router(request)
    rate_limiter = get_rate_limiter(request)

    for msg in messages:
        logger.info(
            "Incoming [%s] (%s): %s",
            msg.from_number,
            msg.type,
            msg.text[:80] if msg.text else "(empty)",
        )
        if msg.from_number not in settings.allowed_phone_numbers:
            logger.warning("Message from non-whitelisted number: %s", msg.from_number)
            continue
        if not rate_limiter.is_allowed(msg.from_number):
            logger.warning("Rate limit exceeded for %s", msg.from_number)
            continue
        if await repository.try_claim_message(msg.message_id):
            logger.info("Duplicate message ignored: %s", msg.message_id)
            continue
        background_tasks.add_task(
            process_message,
            msg=msg,
            wa_client=wa_client,
            conversation_router=conversation_router,
        )

    return Response(status_code=200)


async def process_message(
    msg: WhatsAppMessage,
    wa_client: WhatsAppClient,
    conversation_router: ConversationRouter,
) -> None:
    task = asyncio.current_task()
    if task is not None:
        _track_task(task)

    try:
        await wa_client.mark_as_read(msg.message_id)
    except Exception:
        logger.debug("Failed to mark message %s as read", msg.message_id)

    attachment: bytes | None = None
    if msg.type == "image" and msg.media_id:
        try:
            attachment = await wa_client.download_media(msg.media_id)
        except Exception:
            logger.exception("Image download failed for %s", msg.from_number)
            await _send(wa_client, msg.from_number, IMAGE_DOWNLOAD_FAILED_REPLY)
            return

    inbound = InboundMessage(
        sender_id=msg.from_number,
        text=msg.text,
        has_attachment=attachment is not None,
        attachment_bytes=attachment,
    )
    replies = await conversation_router.handle(inbound)
    for reply in replies:
        await _send(wa_client, msg.from_number, reply)


async def _send(wa_client: WhatsAppClient, to: str, text: str) -> None:
    try:
        await wa_client.send_message(to, text)
    except Exception:
        logger.exception("Failed to send reply to %s", to)
