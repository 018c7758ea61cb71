"""
SMS Micro-Coaching Platform
Reflection service — inbound reply classification and admin behavior flag.

An inbound reply is attached to the learner's most recent send (across all
of their enrollments) and upserted, so one reflection exists per
(cohort_user, lesson) and a later reply to the same lesson overwrites the
earlier one.  behavior_observed is only ever changed by an admin.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from microcoach.core.exceptions import NotFoundError
from microcoach.models import db
from microcoach.models.cohort import Cohort, CohortUser
from microcoach.models.engagement import Reflection
from microcoach.services import engagement_store as store

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"

REFLECTIVE_KEYWORDS = (
    "because",
    "so that",
    "next time",
    "i will",
    "i'll",
    "learned",
    "i learned",
    "i realised",
    "i realized",
    "my plan",
    "i plan",
    "i tried",
    "i did",
)


def auto_quality_score(text: str) -> int:
    """Score a reply 1 (low effort), 2 (normal) or 3 (thoughtful)."""
    t = (text or "").strip().lower()
    if len(t) > 80 or any(k in t for k in REFLECTIVE_KEYWORDS):
        return 3
    if len(t) >= 20:
        return 2
    return 1


def normalize_sender(from_address: str | None) -> str:
    sender = (from_address or "").strip()
    if sender.startswith(WHATSAPP_PREFIX):
        sender = sender[len(WHATSAPP_PREFIX):]
    return sender


def record_inbound_reflection(from_address: str | None, text: str | None) -> Reflection | None:
    """
    Store an inbound reply as a reflection.

    Returns None (and stores nothing) for empty input, unknown numbers and
    learners who were never sent a lesson.  Store errors propagate after
    the session is rolled back.
    """
    phone = normalize_sender(from_address)
    body = (text or "").strip()
    if not phone or not body:
        return None

    learner = store.find_learner_by_phone(phone)
    if learner is None:
        logger.info("Inbound SMS from unknown number ignored")
        return None

    sent = store.latest_reservation_for_user(learner.id)
    if sent is None:
        logger.info("Inbound SMS from learner %s with no lesson sent; ignored", learner.id)
        return None

    score = auto_quality_score(body)
    try:
        reflection_id = store.upsert_reflection(sent.cohort_user_id, sent.lesson_id, body, score)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Reflection stored cohort_user=%s lesson=%s quality=%s",
        sent.cohort_user_id, sent.lesson_id, score,
        extra={"cohort_user_id": sent.cohort_user_id, "lesson_id": sent.lesson_id},
    )
    return db.session.get(Reflection, reflection_id, populate_existing=True)


def set_behavior_observed(reflection_id: int, organization_id: int, value: bool) -> Reflection:
    """Toggle behavior_observed on a reflection owned by the organization."""
    reflection = db.session.execute(
        select(Reflection)
        .join(CohortUser, CohortUser.id == Reflection.cohort_user_id)
        .join(Cohort, Cohort.id == CohortUser.cohort_id)
        .where(
            Reflection.id == reflection_id,
            Cohort.organization_id == organization_id,
        )
    ).scalar_one_or_none()
    if reflection is None:
        raise NotFoundError(resource="Reflection", resource_id=reflection_id,
                            organization_id=organization_id)

    reflection.behavior_observed = bool(value)
    db.session.commit()
    logger.info("Reflection %s behavior_observed=%s", reflection_id, reflection.behavior_observed)
    return reflection
