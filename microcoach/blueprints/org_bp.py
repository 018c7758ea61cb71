"""
Organization & Billing Blueprint.

Endpoints:
    GET  /api/v1/org/me             — organization profile
    PUT  /api/v1/org/me             — update name, contact email, timezone
    GET  /api/v1/billing/status     — {is_paid, plan}
    POST /api/v1/billing/webhook    — signed payment status-change events
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from microcoach.core.exceptions import NotFoundError, ValidationError
from microcoach.middleware.auth import require_auth, require_organization
from microcoach.models import db
from microcoach.services import billing_service, org_service
from microcoach.utils.errors import E, api_error

logger = logging.getLogger(__name__)

org_bp = Blueprint("org_bp", __name__, url_prefix="/api/v1")


@org_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.ORG_NOT_FOUND, "Organization not found")


# ── Profile ──────────────────────────────────────────────────────────────────


@org_bp.route("/org/me", methods=["GET"])
@require_auth
@require_organization
def get_profile():
    org = org_service.get_organization(g.jwt_organization_id)
    return jsonify(org.to_dict()), 200


@org_bp.route("/org/me", methods=["PUT"])
@require_auth
@require_organization
def update_profile():
    data = request.get_json(silent=True) or {}
    try:
        org = org_service.update_profile(g.jwt_organization_id, data)
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    return jsonify({"ok": True, "org": org.to_dict()}), 200


# ── Billing ──────────────────────────────────────────────────────────────────


@org_bp.route("/billing/status", methods=["GET"])
@require_auth
def billing_status():
    if not g.jwt_organization_id:
        return jsonify({"is_paid": False, "plan": None}), 200
    return jsonify(org_service.billing_status(g.jwt_organization_id)), 200


@org_bp.route("/billing/webhook", methods=["POST"])
def payment_webhook():
    payload = request.get_data()
    try:
        billing_service.verify_signature(
            payload,
            request.headers.get(billing_service.SIGNATURE_HEADER),
            current_app.config.get("PAYMENT_WEBHOOK_SECRET"),
            tolerance=current_app.config.get("PAYMENT_WEBHOOK_TOLERANCE", 300),
        )
    except billing_service.SignatureError as e:
        logger.warning("Payment webhook rejected: %s", e)
        return api_error(E.VALIDATION_INVALID, f"Webhook Error: {e}")

    try:
        event = billing_service.parse_event(payload)
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e))

    try:
        billing_service.apply_payment_event(event)
    except Exception:
        db.session.rollback()
        logger.exception("Payment webhook handler failed for %s", event.get("type"))
        return api_error(E.INTERNAL, "Webhook handler failed")

    return jsonify({"received": True}), 200
