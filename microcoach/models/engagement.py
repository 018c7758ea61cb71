"""
SMS Micro-Coaching Platform
Engagement models.

Models:
    - SentMessage: send reservation / confirmation record
    - Reflection: a learner's reply to one lesson

Both tables carry a UNIQUE (cohort_user_id, lesson_id) constraint.  For
sent_messages that constraint is the only mutual exclusion between
concurrent dispatch runs; for reflections it makes inbound replies an
upsert.
"""

from datetime import datetime, timezone

from microcoach.models import db


RESPONSE_SNIPPET_CHARS = 160


def _utcnow():
    return datetime.now(timezone.utc)


class SentMessage(db.Model):
    """
    Reservation row written before a lesson is sent.

    message_sid is NULL until the gateway confirms delivery (and stays NULL
    for gateways that return no identifier).  Rows whose delivery failed are
    deleted, so a leftover never blocks a later retry.
    """

    __tablename__ = "sent_messages"
    __table_args__ = (
        db.UniqueConstraint("cohort_user_id", "lesson_id",
                            name="uq_sent_messages_cohort_user_lesson"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cohort_user_id = db.Column(
        db.Integer,
        db.ForeignKey("cohort_users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    lesson_id = db.Column(
        db.Integer,
        db.ForeignKey("lessons.id", ondelete="RESTRICT"),
        nullable=False,
    )
    message_sid = db.Column(db.String(64), nullable=True,
                            comment="Provider message id; NULL until confirmed")
    sent_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow,
                        server_default=db.func.now())

    lesson = db.relationship("Lesson")

    def to_dict(self):
        return {
            "id": self.id,
            "cohort_user_id": self.cohort_user_id,
            "lesson_id": self.lesson_id,
            "message_sid": self.message_sid,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }

    def __repr__(self):
        return f"<SentMessage cu={self.cohort_user_id} lesson={self.lesson_id} sid={self.message_sid}>"


class Reflection(db.Model):
    """A learner's reply. One row per (cohort_user, lesson); newer replies overwrite."""

    __tablename__ = "reflections"
    __table_args__ = (
        db.UniqueConstraint("cohort_user_id", "lesson_id",
                            name="uq_reflections_cohort_user_lesson"),
        db.CheckConstraint("quality_score IS NULL OR quality_score BETWEEN 1 AND 3",
                           name="ck_reflections_quality_range"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cohort_user_id = db.Column(
        db.Integer,
        db.ForeignKey("cohort_users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    lesson_id = db.Column(
        db.Integer,
        db.ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
    )
    response_text = db.Column(db.Text, nullable=True)
    quality_score = db.Column(db.Integer, nullable=True, comment="1..3, auto-scored")
    behavior_observed = db.Column(db.Boolean, nullable=False, default=False,
                                  comment="Set by admins only")
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow,
                            server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "cohort_user_id": self.cohort_user_id,
            "lesson_id": self.lesson_id,
            "response_text": self.response_text,
            "quality_score": self.quality_score,
            "behavior_observed": self.behavior_observed,
            "received_at": self.received_at.isoformat() if self.received_at else None,
        }

    def __repr__(self):
        return f"<Reflection cu={self.cohort_user_id} lesson={self.lesson_id} q={self.quality_score}>"
