"""
Analytics Blueprint — admin dashboards.

Endpoints (all require a token of a paid organization):
    GET /api/v1/cohorts/<id>/summary             — cohort metrics + daily reflections
    GET /api/v1/cohorts/<id>/learners            — learner listing with readiness
    GET /api/v1/cohort-users/<id>/progress       — one learner's progress

Service layer owns all queries; this module parses ids and maps errors.
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from microcoach.blueprints import parse_id
from microcoach.core.exceptions import NotFoundError
from microcoach.middleware.auth import require_auth, require_paid_org
from microcoach.models import db
from microcoach.services import analytics_service
from microcoach.utils.errors import E, api_error

logger = logging.getLogger(__name__)

analytics_bp = Blueprint("analytics_bp", __name__, url_prefix="/api/v1")


@analytics_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@analytics_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    db.session.rollback()
    logger.exception("Unexpected error in analytics_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Failed to load analytics")


@analytics_bp.route("/cohorts/<cohort_id>/summary", methods=["GET"])
@require_auth
@require_paid_org
def cohort_summary(cohort_id):
    cid = parse_id(cohort_id)
    if cid is None:
        return api_error(E.VALIDATION_INVALID, "Invalid cohort id")
    return jsonify(analytics_service.cohort_summary(cid, g.jwt_organization_id)), 200


@analytics_bp.route("/cohorts/<cohort_id>/learners", methods=["GET"])
@require_auth
@require_paid_org
def cohort_learners(cohort_id):
    cid = parse_id(cohort_id)
    if cid is None:
        return api_error(E.VALIDATION_INVALID, "Invalid cohort id")
    return jsonify(analytics_service.cohort_learners(cid, g.jwt_organization_id)), 200


@analytics_bp.route("/cohort-users/<cohort_user_id>/progress", methods=["GET"])
@require_auth
@require_paid_org
def learner_progress(cohort_user_id):
    cuid = parse_id(cohort_user_id)
    if cuid is None:
        return api_error(E.VALIDATION_INVALID, "Invalid cohort user id")
    return jsonify(analytics_service.learner_progress(cuid, g.jwt_organization_id)), 200
