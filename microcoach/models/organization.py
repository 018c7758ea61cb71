"""
SMS Micro-Coaching Platform
Organization & admin models.

Models:
    - Organization: billing / tenant boundary (paid flag, plan)
    - AdminUser: dashboard login scoped to one organization
"""

from datetime import datetime, timezone

from microcoach.models import db


PLANS = {"bronze", "silver", "gold", "subscription"}


class Organization(db.Model):
    """Tenant boundary. Cohorts belong to exactly one organization."""

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, default="")
    contact_email = db.Column(db.String(255), nullable=True, index=True)
    timezone = db.Column(db.String(64), nullable=True)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    plan = db.Column(db.String(30), nullable=True,
                     comment="bronze, silver, gold or subscription")
    payment_customer_id = db.Column(db.String(120), nullable=True)
    payment_subscription_id = db.Column(db.String(120), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    cohorts = db.relationship("Cohort", back_populates="organization", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name or "",
            "contact_email": self.contact_email or "",
            "timezone": self.timezone or "",
        }

    def __repr__(self):
        return f"<Organization {self.id} paid={self.is_paid}>"


class AdminUser(db.Model):
    """Dashboard user. Authenticates with email + bcrypt password."""

    __tablename__ = "admin_users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    organization = db.relationship("Organization")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "organization_id": self.organization_id,
        }

    def __repr__(self):
        return f"<AdminUser {self.email}>"
