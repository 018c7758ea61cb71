"""
SMS Micro-Coaching Platform
Billing service — payment-processor status-change events.

The processor signs each delivery with a header of the form::

    t=<unix timestamp>,v1=<hex HMAC-SHA256 of "<t>.<raw body>">

keyed with PAYMENT_WEBHOOK_SECRET.  Verified events update the paid flag
of an organization:

    checkout.session.completed        → is_paid = true, plan, customer and
                                        subscription ids (kept when absent)
    customer.subscription.updated     → is_paid = status in {active, trialing}
    customer.subscription.deleted     → same rule

Anything else is acknowledged and ignored.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time

from sqlalchemy import select

from microcoach.core.exceptions import ValidationError
from microcoach.models import db
from microcoach.models.organization import Organization

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Payment-Signature"
PAID_SUBSCRIPTION_STATUSES = {"active", "trialing"}


class SignatureError(Exception):
    """Raised when a webhook delivery cannot be authenticated."""


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header value for ``payload``."""
    ts = int(time.time()) if timestamp is None else int(timestamp)
    mac = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256)
    return f"t={ts},v1={mac.hexdigest()}"


def verify_signature(payload: bytes, header: str | None, secret: str | None,
                     tolerance: int = 300, now: float | None = None) -> None:
    """
    Check ``header`` against ``payload``.

    Raises:
        SignatureError: header missing or malformed, stale timestamp, or no
            v1 signature matches.
    """
    if not secret:
        raise SignatureError("Webhook secret is not configured")
    if not header:
        raise SignatureError("Missing signature header")

    timestamp = None
    candidates = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            candidates.append(value)

    try:
        ts = int(timestamp)
    except (TypeError, ValueError):
        raise SignatureError("Malformed signature header") from None
    if not candidates:
        raise SignatureError("No v1 signature in header")

    current = time.time() if now is None else now
    if tolerance and abs(current - ts) > tolerance:
        raise SignatureError("Signature timestamp outside tolerance")

    expected = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, c) for c in candidates):
        raise SignatureError("Signature mismatch")


def parse_event(payload: bytes) -> dict:
    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise ValidationError("Webhook event has no type")
    return event


def _event_object(event: dict) -> dict:
    data = event.get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else {}


def _str_or_none(value):
    return value if isinstance(value, str) and value else None


def _checkout_completed(obj: dict) -> Organization | None:
    metadata = obj.get("metadata") or {}
    org_ref = obj.get("client_reference_id") or metadata.get("organization_id")
    try:
        org_id = int(org_ref)
    except (TypeError, ValueError):
        logger.warning("checkout.session.completed without organization reference")
        return None

    org = db.session.get(Organization, org_id)
    if org is None:
        logger.warning("checkout.session.completed for unknown organization %s", org_id)
        return None

    org.is_paid = True
    org.plan = _str_or_none(metadata.get("plan")) or org.plan
    org.payment_customer_id = _str_or_none(obj.get("customer")) or org.payment_customer_id
    org.payment_subscription_id = (
        _str_or_none(obj.get("subscription")) or org.payment_subscription_id
    )
    return org


def _subscription_changed(obj: dict) -> Organization | None:
    subscription_id = _str_or_none(obj.get("id"))
    if not subscription_id:
        return None

    org = db.session.execute(
        select(Organization).where(Organization.payment_subscription_id == subscription_id)
    ).scalars().first()
    if org is None:
        logger.info("Subscription %s does not belong to any organization", subscription_id)
        return None

    org.is_paid = obj.get("status") in PAID_SUBSCRIPTION_STATUSES
    return org


_HANDLERS = {
    "checkout.session.completed": _checkout_completed,
    "customer.subscription.updated": _subscription_changed,
    "customer.subscription.deleted": _subscription_changed,
}


def apply_payment_event(event: dict) -> Organization | None:
    """Apply one verified event. Returns the organization it changed, if any."""
    handler = _HANDLERS.get(event.get("type"))
    if handler is None:
        logger.debug("Ignoring payment event %s", event.get("type"))
        return None

    try:
        org = handler(_event_object(event))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if org is not None:
        logger.info("Payment event %s: organization %s is_paid=%s",
                    event["type"], org.id, org.is_paid)
    return org
