"""
Reflection Blueprint — admin behavior flag.

    PATCH /api/v1/reflections/<id>            body: {"behaviorObserved": bool}
    PATCH /api/v1/reflections/<id>/behavior   same, older path

Only reflections of the caller's organization can be changed; anything
else answers 404.
"""

import logging

from flask import Blueprint, g, jsonify, request

from microcoach.blueprints import parse_id
from microcoach.core.exceptions import NotFoundError
from microcoach.middleware.auth import require_auth, require_organization
from microcoach.models import db
from microcoach.services import reflection_service
from microcoach.utils.errors import E, api_error

logger = logging.getLogger(__name__)

reflection_bp = Blueprint("reflection_bp", __name__, url_prefix="/api/v1")


@reflection_bp.route("/reflections/<reflection_id>", methods=["PATCH"])
@reflection_bp.route("/reflections/<reflection_id>/behavior", methods=["PATCH"])
@require_auth
@require_organization
def update_behavior(reflection_id):
    rid = parse_id(reflection_id)
    if rid is None:
        return api_error(E.VALIDATION_INVALID, "Invalid reflection id")

    data = request.get_json(silent=True) or {}
    value = data.get("behaviorObserved")
    if not isinstance(value, bool):
        return api_error(E.VALIDATION_INVALID, "behaviorObserved must be boolean")

    try:
        reflection = reflection_service.set_behavior_observed(rid, g.jwt_organization_id, value)
    except NotFoundError:
        return api_error(E.NOT_FOUND, "Reflection not found")
    except Exception:
        db.session.rollback()
        logger.exception("Failed to update reflection %s", rid)
        return api_error(E.DATABASE, "Failed to update reflection")

    return jsonify({"reflection": reflection.to_dict()}), 200
