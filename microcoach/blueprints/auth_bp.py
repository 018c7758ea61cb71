"""
Auth Blueprint — admin login.

  POST /api/v1/auth/login   — Email + password → access token
  GET  /api/v1/auth/me      — Current admin profile
"""

import logging

from flask import Blueprint, g, jsonify, request
from sqlalchemy import select

from microcoach.middleware.auth import require_auth
from microcoach.models import db
from microcoach.models.organization import AdminUser
from microcoach.services.jwt_service import generate_access_token
from microcoach.utils.crypto import verify_password
from microcoach.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return an access token.

    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")

    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    admin = db.session.execute(
        select(AdminUser).where(AdminUser.email == email)
    ).scalar_one_or_none()

    if admin is None or not verify_password(password, admin.password_hash):
        logger.info("Failed login attempt for %s", email)
        return api_error(E.UNAUTHORIZED, "Invalid email or password")

    token = generate_access_token(admin.id, admin.organization_id)
    return jsonify({
        "token": token,
        "token_type": "Bearer",
        "admin": admin.to_dict(),
    }), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    admin = db.session.get(AdminUser, g.jwt_admin_id)
    if admin is None:
        return api_error(E.UNAUTHORIZED, "Admin no longer exists")
    return jsonify({"admin": admin.to_dict()}), 200
