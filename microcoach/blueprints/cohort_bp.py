"""
Cohort Blueprint.

    GET /api/v1/cohorts   — cohorts of the caller's organization
"""

from flask import Blueprint, g, jsonify

from microcoach.middleware.auth import require_auth, require_organization
from microcoach.services import analytics_service

cohort_bp = Blueprint("cohort_bp", __name__, url_prefix="/api/v1")


@cohort_bp.route("/cohorts", methods=["GET"])
@require_auth
@require_organization
def list_cohorts():
    return jsonify({"cohorts": analytics_service.list_cohorts(g.jwt_organization_id)}), 200
