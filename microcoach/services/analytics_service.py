"""
SMS Micro-Coaching Platform
Analytics service — cohort summary, learner listing and learner progress.

Rules:
  - organization_id is always an explicit parameter (never from g).
  - Cohorts outside the caller's organization raise NotFoundError, same as
    missing ones.
  - All percentage and readiness arithmetic goes through
    ``microcoach.services.readiness``.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select

from microcoach.core.exceptions import NotFoundError
from microcoach.models import db
from microcoach.models.cohort import Cohort, CohortUser
from microcoach.services import engagement_store as store
from microcoach.services import readiness

logger = logging.getLogger(__name__)


def _iso(value):
    return value.isoformat() if value is not None else None


def _get_cohort(cohort_id: int, organization_id: int) -> Cohort:
    cohort = db.session.execute(
        select(Cohort).where(
            Cohort.id == cohort_id,
            Cohort.organization_id == organization_id,
        )
    ).scalar_one_or_none()
    if cohort is None:
        raise NotFoundError(resource="Cohort", resource_id=cohort_id,
                            organization_id=organization_id)
    return cohort


def list_cohorts(organization_id: int) -> list[dict]:
    """Cohorts of one organization, oldest first."""
    cohorts = db.session.execute(
        select(Cohort)
        .where(Cohort.organization_id == organization_id)
        .order_by(Cohort.id.asc())
    ).scalars().all()
    return [c.to_dict() for c in cohorts]


def cohort_summary(cohort_id: int, organization_id: int, today: date | None = None) -> dict:
    """
    Cohort header, aggregate metrics and reflections per day.

    completion_rate is None while nothing has been sent.
    """
    cohort = _get_cohort(cohort_id, organization_id)
    today = today or date.today()

    metrics = store.cohort_metrics(cohort.id)
    completion_rate = readiness.completion_percent(
        metrics["reflections_count"], metrics["messages_sent"], default=None,
    )

    return {
        "cohort": {
            **cohort.to_dict(),
            "today_day_number": cohort.day_number_on(today),
        },
        "metrics": {
            "learner_count": metrics["learner_count"],
            "messages_sent": metrics["messages_sent"],
            "reflections_count": metrics["reflections_count"],
            "completion_rate": completion_rate,
            "average_reflection_quality": metrics["avg_quality"],
        },
        "daily_reflections": store.daily_reflection_counts(cohort.id),
    }


def cohort_learners(cohort_id: int, organization_id: int) -> dict:
    """One row per enrollment, ordered by learner name."""
    cohort = _get_cohort(cohort_id, organization_id)

    learners = []
    for row in store.learner_rows(cohort.id):
        completion = readiness.completion_percent(
            row["reflections"], row["messages_sent"], default=None,
        )
        not_started = (
            row["messages_sent"] == 0
            and row["reflections"] == 0
            and row["avg_quality"] is None
        )
        learners.append({
            "cohort_user_id": row["cohort_user_id"],
            "user_id": row["user_id"],
            "name": row["name"],
            "role_level": row["role_level"],
            "messages_sent": row["messages_sent"],
            "reflections_received": row["reflections"],
            "completion_percent": completion,
            "readiness_score": None if not_started else readiness.compute_readiness(
                completion,
                row["avg_quality"],
                row["reflections"],
                row["behaviors_observed"],
            ),
            "last_reflection_at": _iso(row["last_reflection_at"]),
        })

    return {
        "cohort": {"id": cohort.id, "name": cohort.name, "role_level": cohort.role_level},
        "learners": learners,
    }


def learner_progress(cohort_user_id: int, organization_id: int) -> dict:
    """
    Learner header, stats, day-by-day engagement and quality trend.

    Unlike the listing, completion_percent is 0 (not None) when nothing was
    sent, and readiness_score is always a number.
    """
    enrollment = db.session.execute(
        select(CohortUser)
        .join(Cohort, Cohort.id == CohortUser.cohort_id)
        .where(
            CohortUser.id == cohort_user_id,
            Cohort.organization_id == organization_id,
        )
    ).scalar_one_or_none()
    if enrollment is None:
        raise NotFoundError(resource="Learner", resource_id=cohort_user_id,
                            organization_id=organization_id)

    cohort = enrollment.cohort
    learner = enrollment.learner
    counts = store.learner_counts(enrollment.id)

    completion = readiness.completion_percent(
        counts["reflections_submitted"], counts["lessons_sent"], default=0,
    )
    readiness_score = readiness.compute_readiness(
        completion,
        counts["avg_quality"],
        counts["reflections_submitted"],
        counts["behaviors_observed"],
    )

    engagement = [
        {**day, "sent_at": _iso(day["sent_at"]), "reflection_at": _iso(day["reflection_at"])}
        for day in store.engagement_by_day(enrollment.id, cohort.role_level)
    ]
    quality_trend = [
        {"day_number": day["day_number"], "quality_score": day["quality_score"]}
        for day in engagement
        if day["quality_score"] is not None
    ]

    return {
        "learner": {
            "cohort_user_id": enrollment.id,
            "cohort_id": cohort.id,
            "user_id": learner.id,
            "name": learner.name,
            "phone_number": learner.phone_number,
            "cohort_name": cohort.name,
            "role_level": cohort.role_level,
            "start_date": _iso(cohort.start_date),
            "duration_days": cohort.duration_days,
        },
        "stats": {
            "lessons_sent": counts["lessons_sent"],
            "reflections_submitted": counts["reflections_submitted"],
            "completion_percent": completion,
            "average_reflection_quality": counts["avg_quality"],
            "behaviors_observed": counts["behaviors_observed"],
            "behavior_percent": readiness.behavior_percent(
                counts["reflections_submitted"], counts["behaviors_observed"],
            ),
            "readiness_score": readiness_score,
        },
        "engagement_by_day": engagement,
        "quality_trend": quality_trend,
    }
