"""
JWT auth middleware and route decorators.

``init_jwt_middleware`` parses ``Authorization: Bearer <token>`` on every
request and sets ``g.jwt_admin_id`` / ``g.jwt_organization_id``.  It never
blocks; the decorators below decide.

Usage:
    @bp.route("/cohorts/<int:cohort_id>/summary")
    @require_auth
    @require_paid_org
    def cohort_summary(cohort_id):
        ...
"""

import functools
import logging

import jwt as pyjwt
from flask import g, request

from microcoach.models import db
from microcoach.models.organization import Organization
from microcoach.services.jwt_service import decode_access_token
from microcoach.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def init_jwt_middleware(app):
    """Register JWT parsing as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_admin_id = None
        g.jwt_organization_id = None
        g.jwt_error = None

        header = request.headers.get("Authorization")
        if not header:
            g.jwt_error = "Missing Authorization header"
            return

        scheme, _, token = header.partition(" ")
        if scheme != "Bearer" or not token:
            g.jwt_error = "Invalid Authorization header"
            return

        try:
            payload = decode_access_token(token)
        except pyjwt.InvalidTokenError as exc:
            logger.info("JWT rejected: %s", exc)
            g.jwt_error = "Invalid or expired token"
            return

        try:
            g.jwt_admin_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            g.jwt_error = "Invalid or expired token"
            return
        g.jwt_organization_id = payload.get("organization_id")


def require_auth(f):
    """Decorator: 401 unless the request carries a valid admin access token."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "jwt_admin_id", None) is None:
            message = getattr(g, "jwt_error", None) or "Missing Authorization header"
            return api_error(E.UNAUTHORIZED, message)
        return f(*args, **kwargs)

    return decorated


def require_organization(f):
    """Decorator: 401 when the token carries no organization."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not getattr(g, "jwt_organization_id", None):
            return api_error(E.UNAUTHORIZED, "Missing org in token")
        return f(*args, **kwargs)

    return decorated


def require_paid_org(f):
    """
    Decorator: 402 unless the caller's organization is paid.

    Must be stacked below ``require_auth``.
    """

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        org_id = getattr(g, "jwt_organization_id", None)
        if not org_id:
            return api_error(E.PAYMENT_REQUIRED, "Organization not active")

        org = db.session.get(Organization, org_id)
        if org is None:
            return api_error(E.ORG_NOT_FOUND, "Organization not found")
        if not org.is_paid:
            return api_error(E.PAYMENT_REQUIRED, "Organization subscription is not active")
        return f(*args, **kwargs)

    return decorated
