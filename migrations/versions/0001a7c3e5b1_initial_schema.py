"""initial_schema

Create organizations, admin_users, users, cohorts, cohort_users, lessons,
sent_messages, reflections and scheduled_jobs.

Revision ID: 0001a7c3e5b1
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001a7c3e5b1"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("timezone", sa.String(length=64), nullable=True),
            sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("plan", sa.String(length=30), nullable=True),
            sa.Column("payment_customer_id", sa.String(length=120), nullable=True),
            sa.Column("payment_subscription_id", sa.String(length=120), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_organizations_contact_email", "organizations", ["contact_email"])
        op.create_index("ix_organizations_payment_subscription_id", "organizations",
                        ["payment_subscription_id"])

    if "admin_users" not in existing_tables:
        op.create_table(
            "admin_users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_admin_users_organization_id", "admin_users", ["organization_id"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("phone_number", sa.String(length=32), nullable=False),
            sa.Column("role_level", sa.String(length=20), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("phone_number"),
            sa.CheckConstraint("status IN ('active', 'paused', 'removed')", name="ck_users_status"),
        )

    if "cohorts" not in existing_tables:
        op.create_table(
            "cohorts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("role_level", sa.String(length=20), nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("duration_days", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("duration_days >= 1", name="ck_cohorts_duration_positive"),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_cohorts_organization_id", "cohorts", ["organization_id"])

    if "cohort_users" not in existing_tables:
        op.create_table(
            "cohort_users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("cohort_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["cohort_id"], ["cohorts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("cohort_id", "user_id", name="uq_cohort_users_cohort_user"),
        )
        op.create_index("ix_cohort_users_cohort_id", "cohort_users", ["cohort_id"])
        op.create_index("ix_cohort_users_user_id", "cohort_users", ["user_id"])

    if "lessons" not in existing_tables:
        op.create_table(
            "lessons",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("role_level", sa.String(length=20), nullable=False),
            sa.Column("day_number", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("lesson_text", sa.Text(), nullable=False),
            sa.Column("action_text", sa.Text(), nullable=False),
            sa.Column("reflection_question", sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("role_level", "day_number", name="uq_lessons_role_day"),
        )

    if "sent_messages" not in existing_tables:
        op.create_table(
            "sent_messages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("cohort_user_id", sa.Integer(), nullable=False),
            sa.Column("lesson_id", sa.Integer(), nullable=False),
            sa.Column("message_sid", sa.String(length=64), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["cohort_user_id"], ["cohort_users.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("cohort_user_id", "lesson_id",
                                name="uq_sent_messages_cohort_user_lesson"),
        )
        op.create_index("ix_sent_messages_cohort_user_id", "sent_messages", ["cohort_user_id"])

    if "reflections" not in existing_tables:
        op.create_table(
            "reflections",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("cohort_user_id", sa.Integer(), nullable=False),
            sa.Column("lesson_id", sa.Integer(), nullable=False),
            sa.Column("response_text", sa.Text(), nullable=True),
            sa.Column("quality_score", sa.Integer(), nullable=True),
            sa.Column("behavior_observed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("received_at", sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.func.now()),
            sa.CheckConstraint("quality_score IS NULL OR quality_score BETWEEN 1 AND 3",
                               name="ck_reflections_quality_range"),
            sa.ForeignKeyConstraint(["cohort_user_id"], ["cohort_users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("cohort_user_id", "lesson_id",
                                name="uq_reflections_cohort_user_lesson"),
        )
        op.create_index("ix_reflections_cohort_user_id", "reflections", ["cohort_user_id"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    op.drop_table("scheduled_jobs")
    op.drop_index("ix_reflections_cohort_user_id", table_name="reflections")
    op.drop_table("reflections")
    op.drop_index("ix_sent_messages_cohort_user_id", table_name="sent_messages")
    op.drop_table("sent_messages")
    op.drop_table("lessons")
    op.drop_index("ix_cohort_users_user_id", table_name="cohort_users")
    op.drop_index("ix_cohort_users_cohort_id", table_name="cohort_users")
    op.drop_table("cohort_users")
    op.drop_index("ix_cohorts_organization_id", table_name="cohorts")
    op.drop_table("cohorts")
    op.drop_table("users")
    op.drop_index("ix_admin_users_organization_id", table_name="admin_users")
    op.drop_table("admin_users")
    op.drop_index("ix_organizations_payment_subscription_id", table_name="organizations")
    op.drop_index("ix_organizations_contact_email", table_name="organizations")
    op.drop_table("organizations")
