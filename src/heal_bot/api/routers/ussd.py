"""USSD gateway webhook."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ...models.ussd import UssdRequest
from ...services.ussd_service import UssdService, end
from ..deps import get_ussd_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_class=PlainTextResponse)
async def ussd_callback(
    request: Request,
    ussd: UssdService = Depends(get_ussd_service),
):
    """
    Handle one USSD gateway request.

    Accepts the Africa's Talking form post or the same fields as JSON:
    ``sessionId``, ``phoneNumber`` and ``text`` (the ``*``-joined input trail).
    The plain-text body always starts with ``CON`` or ``END``.
    """
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            data = await request.json()
        else:
            data = dict(await request.form())
        payload = UssdRequest.model_validate(data)
    except ValueError as e:
        logger.warning(f"Rejected malformed USSD request: {e}")
        return PlainTextResponse(end("Invalid request."), status_code=400)

    output = await ussd.handle(payload.session_id, payload.phone_number, payload.text)
    return PlainTextResponse(output)
