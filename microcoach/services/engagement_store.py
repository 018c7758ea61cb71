"""
SMS Micro-Coaching Platform
Engagement store — query surface shared by the dispatch job, the inbound
reflection writer and the analytics read paths.

Dispatch surface (explicit session, see DailyDispatchJob):
    list_due_enrollments, find_lesson, reserve_send, confirm_send,
    release_reservation

Reflection surface:
    find_learner_by_phone, latest_reservation_for_user, upsert_reflection

Read surface:
    cohort_metrics, daily_reflection_counts, learner_rows, learner_counts,
    engagement_by_day

The reservation insert is ``INSERT … ON CONFLICT DO NOTHING RETURNING id``
against the UNIQUE (cohort_user_id, lesson_id) constraint, committed at
once.  The database decides which caller owns a send; there is no
select-then-insert anywhere on this path.

"Today" for the due-enrollment query is the database's CURRENT_DATE
unless a date is passed in, and either way it is evaluated inside the one
SELECT so every row sees the same day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite

from microcoach.models import db
from microcoach.models.cohort import Cohort, CohortUser, Learner, Lesson
from microcoach.models.engagement import RESPONSE_SNIPPET_CHARS, Reflection, SentMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueEnrollment:
    """One candidate row for today's send."""

    cohort_user_id: int
    phone_number: str
    role_level: str
    duration_days: int
    day_number: int


# ═══════════════════════════════════════════════════════════════════════════
#  Dialect helpers
# ═══════════════════════════════════════════════════════════════════════════

def _dialect_name(session) -> str:
    return session.get_bind().dialect.name


def _upsert_insert(session, model):
    """Dialect insert() that supports ON CONFLICT."""
    name = _dialect_name(session)
    if name == "sqlite":
        return sqlite.insert(model)
    # PostgreSQL is the production store; other dialects are not supported
    return postgresql.insert(model)


def _today_expr(today: date | None):
    if today is None:
        return sa.func.current_date()
    return sa.literal(today, sa.Date)


def _day_number_expr(session, today_expr):
    """1-based cohort day: today - start_date + 1, computed by the database."""
    if _dialect_name(session) == "sqlite":
        delta = sa.func.julianday(today_expr) - sa.func.julianday(Cohort.start_date)
    else:
        delta = today_expr - Cohort.start_date
    return sa.cast(delta, sa.Integer) + 1


# ═══════════════════════════════════════════════════════════════════════════
#  Dispatch surface
# ═══════════════════════════════════════════════════════════════════════════

def list_due_enrollments(session, today: date | None = None) -> list[DueEnrollment]:
    """Enrollments of active learners whose cohort is active today, with day_number."""
    day_number = _day_number_expr(session, _today_expr(today))

    stmt = (
        sa.select(
            CohortUser.id.label("cohort_user_id"),
            Learner.phone_number,
            Cohort.role_level,
            Cohort.duration_days,
            day_number.label("day_number"),
        )
        .join(Learner, Learner.id == CohortUser.user_id)
        .join(Cohort, Cohort.id == CohortUser.cohort_id)
        .where(
            Learner.status == "active",
            day_number >= 1,
            day_number <= Cohort.duration_days,
        )
        .order_by(CohortUser.id)
    )
    return [
        DueEnrollment(
            cohort_user_id=row.cohort_user_id,
            phone_number=row.phone_number,
            role_level=row.role_level,
            duration_days=row.duration_days,
            day_number=int(row.day_number),
        )
        for row in session.execute(stmt)
    ]


def find_lesson(session, role_level: str, day_number: int) -> Lesson | None:
    return session.execute(
        sa.select(Lesson).where(
            Lesson.role_level == role_level,
            Lesson.day_number == day_number,
        )
    ).scalar_one_or_none()


def reserve_send(session, cohort_user_id: int, lesson_id: int) -> int | None:
    """
    Claim the (cohort_user, lesson) send.

    Returns the new reservation id, or None when a row already exists
    (another run, or an earlier one, owns this send).  Committed before
    returning so concurrent runs see the claim immediately.
    """
    stmt = _upsert_insert(session, SentMessage).values(
        cohort_user_id=cohort_user_id,
        lesson_id=lesson_id,
        sent_at=datetime.now(timezone.utc),
    )
    stmt = stmt.on_conflict_do_nothing(
        index_elements=["cohort_user_id", "lesson_id"],
    ).returning(SentMessage.id)

    reservation_id = session.execute(stmt).scalar_one_or_none()
    session.commit()
    return reservation_id


def confirm_send(session, reservation_id: int, message_sid: str | None) -> None:
    session.execute(
        sa.update(SentMessage)
        .where(SentMessage.id == reservation_id)
        .values(message_sid=message_sid)
    )
    session.commit()


def release_reservation(session, reservation_id: int) -> None:
    """Compensating delete after a failed send; the next run may try again."""
    session.execute(sa.delete(SentMessage).where(SentMessage.id == reservation_id))
    session.commit()


# ═══════════════════════════════════════════════════════════════════════════
#  Reflection surface
# ═══════════════════════════════════════════════════════════════════════════

def find_learner_by_phone(phone_number: str) -> Learner | None:
    return Learner.query.filter_by(phone_number=phone_number).first()


def latest_reservation_for_user(user_id: int) -> SentMessage | None:
    """Most recent send to this learner across all enrollments (ties: highest id)."""
    return (
        SentMessage.query
        .join(CohortUser, CohortUser.id == SentMessage.cohort_user_id)
        .filter(CohortUser.user_id == user_id)
        .order_by(SentMessage.sent_at.desc(), SentMessage.id.desc())
        .first()
    )


def upsert_reflection(cohort_user_id: int, lesson_id: int, response_text: str,
                      quality_score: int | None) -> int:
    """
    Insert the reflection or overwrite text/score and refresh received_at.

    behavior_observed is never written here.  Caller commits.
    """
    session = db.session
    now = datetime.now(timezone.utc)
    stmt = _upsert_insert(session, Reflection).values(
        cohort_user_id=cohort_user_id,
        lesson_id=lesson_id,
        response_text=response_text,
        quality_score=quality_score,
        behavior_observed=False,
        received_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["cohort_user_id", "lesson_id"],
        set_={
            "response_text": stmt.excluded.response_text,
            "quality_score": stmt.excluded.quality_score,
            "received_at": now,
        },
    ).returning(Reflection.id)
    return session.execute(stmt).scalar_one()


# ═══════════════════════════════════════════════════════════════════════════
#  Read surface
# ═══════════════════════════════════════════════════════════════════════════

def _float_or_none(value):
    return None if value is None else float(value)


def cohort_metrics(cohort_id: int) -> dict:
    """Learner, send and reflection totals for one cohort."""
    session = db.session

    learner_count = session.scalar(
        sa.select(sa.func.count(CohortUser.id)).where(CohortUser.cohort_id == cohort_id)
    )
    messages_sent = session.scalar(
        sa.select(sa.func.count(SentMessage.id))
        .join(CohortUser, CohortUser.id == SentMessage.cohort_user_id)
        .where(CohortUser.cohort_id == cohort_id)
    )
    reflections_count, avg_quality = session.execute(
        sa.select(sa.func.count(Reflection.id), sa.func.avg(Reflection.quality_score))
        .join(CohortUser, CohortUser.id == Reflection.cohort_user_id)
        .where(CohortUser.cohort_id == cohort_id)
    ).one()

    return {
        "learner_count": learner_count or 0,
        "messages_sent": messages_sent or 0,
        "reflections_count": reflections_count or 0,
        "avg_quality": _float_or_none(avg_quality),
    }


def daily_reflection_counts(cohort_id: int) -> list[dict]:
    """Reflections per (lesson day, received date), oldest first."""
    received_day = sa.func.date(Reflection.received_at)
    rows = db.session.execute(
        sa.select(
            Lesson.day_number,
            received_day.label("day"),
            sa.func.count(Reflection.id).label("reflections_count"),
        )
        .join(CohortUser, CohortUser.id == Reflection.cohort_user_id)
        .join(Lesson, Lesson.id == Reflection.lesson_id)
        .where(CohortUser.cohort_id == cohort_id)
        .group_by(Lesson.day_number, received_day)
        .order_by(received_day.asc(), Lesson.day_number.asc())
    ).all()

    return [
        {
            "day_number": row.day_number,
            "date": row.day.isoformat() if hasattr(row.day, "isoformat") else str(row.day)[:10],
            "reflections_count": row.reflections_count,
        }
        for row in rows
    ]


def learner_rows(cohort_id: int) -> list[dict]:
    """Per-enrollment aggregates for the cohort learner listing, ordered by name."""
    sent_sq = (
        sa.select(
            SentMessage.cohort_user_id,
            sa.func.count(SentMessage.id).label("messages_sent"),
        )
        .group_by(SentMessage.cohort_user_id)
        .subquery()
    )
    refl_sq = (
        sa.select(
            Reflection.cohort_user_id,
            sa.func.count(Reflection.id).label("reflections"),
            sa.func.avg(Reflection.quality_score).label("avg_quality"),
            sa.func.sum(sa.case((Reflection.behavior_observed.is_(True), 1), else_=0))
            .label("behaviors_observed"),
            sa.func.max(Reflection.received_at).label("last_reflection_at"),
        )
        .group_by(Reflection.cohort_user_id)
        .subquery()
    )

    rows = db.session.execute(
        sa.select(
            CohortUser.id.label("cohort_user_id"),
            Learner.id.label("user_id"),
            Learner.name,
            Learner.role_level,
            sa.func.coalesce(sent_sq.c.messages_sent, 0).label("messages_sent"),
            sa.func.coalesce(refl_sq.c.reflections, 0).label("reflections"),
            refl_sq.c.avg_quality,
            sa.func.coalesce(refl_sq.c.behaviors_observed, 0).label("behaviors_observed"),
            refl_sq.c.last_reflection_at,
        )
        .join(Learner, Learner.id == CohortUser.user_id)
        .outerjoin(sent_sq, sent_sq.c.cohort_user_id == CohortUser.id)
        .outerjoin(refl_sq, refl_sq.c.cohort_user_id == CohortUser.id)
        .where(CohortUser.cohort_id == cohort_id)
        .order_by(Learner.name, CohortUser.id)
    ).all()

    return [
        {
            "cohort_user_id": row.cohort_user_id,
            "user_id": row.user_id,
            "name": row.name,
            "role_level": row.role_level,
            "messages_sent": int(row.messages_sent),
            "reflections": int(row.reflections),
            "avg_quality": _float_or_none(row.avg_quality),
            "behaviors_observed": int(row.behaviors_observed),
            "last_reflection_at": row.last_reflection_at,
        }
        for row in rows
    ]


def learner_counts(cohort_user_id: int) -> dict:
    """Send / reflection aggregates for one enrollment."""
    session = db.session

    lessons_sent = session.scalar(
        sa.select(sa.func.count(SentMessage.id))
        .where(SentMessage.cohort_user_id == cohort_user_id)
    )
    reflections_submitted, avg_quality, behaviors_observed = session.execute(
        sa.select(
            sa.func.count(Reflection.id),
            sa.func.avg(Reflection.quality_score),
            sa.func.sum(sa.case((Reflection.behavior_observed.is_(True), 1), else_=0)),
        ).where(Reflection.cohort_user_id == cohort_user_id)
    ).one()

    return {
        "lessons_sent": lessons_sent or 0,
        "reflections_submitted": reflections_submitted or 0,
        "avg_quality": _float_or_none(avg_quality),
        "behaviors_observed": int(behaviors_observed or 0),
    }


def engagement_by_day(cohort_user_id: int, role_level: str) -> list[dict]:
    """One entry per lesson of the track: sent?, reflected?, quality, behavior, snippet."""
    rows = db.session.execute(
        sa.select(
            Lesson.day_number,
            Lesson.title,
            SentMessage.id.label("sent_message_id"),
            SentMessage.sent_at,
            Reflection.id.label("reflection_id"),
            Reflection.received_at,
            Reflection.quality_score,
            Reflection.behavior_observed,
            Reflection.response_text,
        )
        .select_from(Lesson)
        .outerjoin(
            SentMessage,
            sa.and_(SentMessage.lesson_id == Lesson.id,
                    SentMessage.cohort_user_id == cohort_user_id),
        )
        .outerjoin(
            Reflection,
            sa.and_(Reflection.lesson_id == Lesson.id,
                    Reflection.cohort_user_id == cohort_user_id),
        )
        .where(Lesson.role_level == role_level)
        .order_by(Lesson.day_number.asc())
    ).all()

    return [
        {
            "day_number": row.day_number,
            "title": row.title,
            "sent": row.sent_message_id is not None,
            "sent_at": row.sent_at,
            "reflection_id": row.reflection_id,
            "reflection_submitted": row.reflection_id is not None,
            "reflection_at": row.received_at,
            "quality_score": row.quality_score,
            "behavior_observed": bool(row.behavior_observed),
            "reflection_snippet": (
                None if row.response_text is None
                else row.response_text[:RESPONSE_SNIPPET_CHARS]
            ),
        }
        for row in rows
    ]
