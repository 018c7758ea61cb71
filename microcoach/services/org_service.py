"""
SMS Micro-Coaching Platform
Organization service — profile read/update, billing status, admin seeding.

db.session.commit() happens only in this file for organization edits.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from microcoach.core.exceptions import NotFoundError, ValidationError
from microcoach.models import db
from microcoach.models.organization import AdminUser, Organization
from microcoach.utils.crypto import hash_password

logger = logging.getLogger(__name__)


def get_organization(organization_id: int) -> Organization:
    org = db.session.get(Organization, organization_id)
    if org is None:
        raise NotFoundError(resource="Organization", resource_id=organization_id)
    return org


def update_profile(organization_id: int, data: dict) -> Organization:
    """
    Replace name, contact email and timezone.

    Body keys: name, contactEmail (or contact_email), timezone.

    Raises:
        ValidationError: name or email missing, or email malformed.
        NotFoundError: organization does not exist.
    """
    name = str(data.get("name") or "").strip()
    contact_email = str(data.get("contactEmail") or data.get("contact_email") or "").strip().lower()
    tz = str(data.get("timezone") or "").strip()

    if not name:
        raise ValidationError("Organization name is required", details={"name": "required"})
    if not contact_email:
        raise ValidationError("Contact email is required", details={"contact_email": "required"})
    try:
        contact_email = validate_email(contact_email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email format: {e}", details={"contact_email": "invalid"}) from e

    org = get_organization(organization_id)
    org.name = name
    org.contact_email = contact_email
    org.timezone = tz
    db.session.commit()

    logger.info("Organization %s profile updated", organization_id)
    return org


def billing_status(organization_id: int) -> dict:
    org = get_organization(organization_id)
    return {"is_paid": bool(org.is_paid), "plan": org.plan}


def seed_admin(org_name: str, email: str, password: str) -> tuple[Organization, AdminUser, bool]:
    """
    Ensure an organization and an admin login exist.

    Idempotent: an existing admin with this email is returned unchanged
    (its password is not reset).  Returns (organization, admin, created).
    """
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("email and password are required")

    admin = db.session.execute(
        select(AdminUser).where(AdminUser.email == email)
    ).scalar_one_or_none()
    if admin is not None:
        return admin.organization, admin, False

    org = db.session.execute(
        select(Organization).where(Organization.name == org_name)
    ).scalars().first()
    if org is None:
        org = Organization(name=org_name, contact_email=email)
        db.session.add(org)
        db.session.flush()

    admin = AdminUser(email=email, password_hash=hash_password(password),
                      organization_id=org.id)
    db.session.add(admin)
    db.session.commit()
    logger.info("Seeded admin %s for organization %s", email, org.id)
    return org, admin, True
