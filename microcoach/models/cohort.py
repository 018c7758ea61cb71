"""
SMS Micro-Coaching Platform
Cohort models.

Models:
    - Learner: an SMS recipient (table ``users``)
    - Cohort: a named group on a fixed schedule
    - CohortUser: enrollment of one learner in one cohort
    - Lesson: content keyed by (role_level, day_number)
"""

from datetime import datetime, timedelta, timezone

from microcoach.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ROLE_LEVELS = ("agent", "lead", "supervisor", "manager", "executive")
LEARNER_STATUSES = ("active", "paused", "removed")


class Learner(db.Model):
    """A learner reached by SMS. Only ``status='active'`` learners get lessons."""

    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in LEARNER_STATUSES) + ")",
            name="ck_users_status",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    phone_number = db.Column(db.String(32), unique=True, nullable=False)
    role_level = db.Column(db.String(20), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active")
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    enrollments = db.relationship("CohortUser", back_populates="learner", lazy="dynamic")

    def __repr__(self):
        return f"<Learner {self.id} {self.phone_number}>"


class Cohort(db.Model):
    """
    A group following one lesson track on a fixed schedule.

    Active on date D iff start_date <= D <= start_date + duration_days - 1.
    """

    __tablename__ = "cohorts"
    __table_args__ = (
        db.CheckConstraint("duration_days >= 1", name="ck_cohorts_duration_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    role_level = db.Column(db.String(20), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    duration_days = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    organization = db.relationship("Organization", back_populates="cohorts")
    members = db.relationship("CohortUser", back_populates="cohort", lazy="dynamic")

    @property
    def end_date(self):
        return self.start_date + timedelta(days=self.duration_days - 1)

    def day_number_on(self, day):
        """1-based schedule day for ``day``, or None outside the active window."""
        if day < self.start_date or day > self.end_date:
            return None
        return (day - self.start_date).days + 1

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "role_level": self.role_level,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "duration_days": self.duration_days,
        }

    def __repr__(self):
        return f"<Cohort {self.id} {self.name!r} {self.role_level}>"


class CohortUser(db.Model):
    """Enrollment row. Each row is an independent engagement stream."""

    __tablename__ = "cohort_users"
    __table_args__ = (
        db.UniqueConstraint("cohort_id", "user_id", name="uq_cohort_users_cohort_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cohort_id = db.Column(
        db.Integer,
        db.ForeignKey("cohorts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    cohort = db.relationship("Cohort", back_populates="members")
    learner = db.relationship("Learner", back_populates="enrollments")

    def __repr__(self):
        return f"<CohortUser {self.id} cohort={self.cohort_id} user={self.user_id}>"


class Lesson(db.Model):
    """Daily lesson content. At most one lesson per (role_level, day_number)."""

    __tablename__ = "lessons"
    __table_args__ = (
        db.UniqueConstraint("role_level", "day_number", name="uq_lessons_role_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    role_level = db.Column(db.String(20), nullable=False)
    day_number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    lesson_text = db.Column(db.Text, nullable=False)
    action_text = db.Column(db.Text, nullable=False)
    reflection_question = db.Column(db.Text, nullable=False)

    def message_body(self, day_number=None):
        """Compose the SMS text for this lesson."""
        day = self.day_number if day_number is None else day_number
        return "\n".join((
            f"Day {day}: {self.title}",
            self.lesson_text,
            f"Action: {self.action_text}",
            f"Reply: {self.reflection_question}",
        ))

    def to_dict(self):
        return {
            "id": self.id,
            "role_level": self.role_level,
            "day_number": self.day_number,
            "title": self.title,
            "lesson_text": self.lesson_text,
            "action_text": self.action_text,
            "reflection_question": self.reflection_question,
        }

    def __repr__(self):
        return f"<Lesson {self.role_level}:{self.day_number}>"
