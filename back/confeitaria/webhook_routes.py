"""
Cakto payment webhook.

Cakto calls POST /webhooks/cakto with the shared secret in `x-cakto-secret`.
A `payment.confirmed` event creates the customer's account (or renews it when
the email is already registered). Every answer is a JSON object with either
`error` or `message`, as Cakto logs the body of failed deliveries.
"""

import hmac
import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlmodel import Session

from .db import get_session
from .provisioning import (
    PAYMENT_CONFIRMED_EVENT,
    CaktoWebhookPayload,
    process_payment_confirmed,
)
from .settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _secret_matches(received: str | None) -> bool:
    expected = settings.cakto_webhook_secret
    if not expected or not received:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


@router.post("/cakto")
async def cakto_webhook(request: Request, session: Session = Depends(get_session)):
    """Handle a Cakto payment notification."""
    logger.info("Cakto webhook received")

    if not _secret_matches(request.headers.get("x-cakto-secret")):
        logger.warning("Cakto webhook rejected: invalid secret")
        return _error(401, "Unauthorized")

    try:
        raw = await request.json()
        payload = CaktoWebhookPayload.model_validate(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning(f"Cakto webhook rejected: invalid body ({e})")
        return _error(400, "Invalid JSON payload")

    if payload.event != PAYMENT_CONFIRMED_EVENT:
        logger.info(f"Cakto event ignored: {payload.event}")
        return {"message": "Event ignored", "event": payload.event}

    customer = payload.data.customer if payload.data else None
    if not customer or not customer.email or not customer.name:
        logger.warning("Cakto webhook rejected: incomplete customer data")
        return _error(400, "Incomplete customer data")

    try:
        return await process_payment_confirmed(session, payload)
    except Exception as e:
        session.rollback()
        logger.exception(f"Cakto webhook failed for {customer.email}: {e}")
        return _error(
            500,
            "Internal server error",
            details=str(e),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


@router.api_route("/cakto", methods=["GET", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"], include_in_schema=False)
async def cakto_webhook_method_not_allowed():
    return _error(405, "Method not allowed")
