"""
Job registry, CLI commands and admin seeding.

Covers:
    1. daily_lesson_send is registered and records its runs
    2. Failed and unknown jobs
    3. flask send-daily-lessons / list-jobs
    4. seed_admin idempotency
"""

from datetime import date, timedelta
from unittest.mock import patch

import pytest

from microcoach.core.exceptions import ConfigurationError, ValidationError
from microcoach.models import db
from microcoach.models.engagement import SentMessage
from microcoach.models.organization import AdminUser, Organization
from microcoach.models.scheduling import ScheduledJob
from microcoach.services import daily_dispatch, scheduler_service
from microcoach.services.org_service import seed_admin
from microcoach.services.scheduler_service import SchedulerService, get_registered_jobs
from microcoach.utils.crypto import verify_password

TODAY = date(2026, 3, 10)


@pytest.fixture()
def due_learner(make_cohort, make_learner, enroll, make_lesson):
    cohort = make_cohort(start_date=TODAY - timedelta(days=1), duration_days=5)
    enroll(cohort, make_learner())
    make_lesson(day_number=2)


def _job_record(name):
    return db.session.execute(
        db.select(ScheduledJob).where(ScheduledJob.job_name == name)
    ).scalar_one_or_none()


class TestRegistry:

    def test_daily_send_registered(self):
        assert get_registered_jobs()["daily_lesson_send"] is daily_dispatch.send_daily_lessons

    def test_scheduler_attached_to_app(self, app):
        assert app.extensions["scheduler"] is SchedulerService


class TestRunJob:

    def test_success_recorded(self, due_learner):
        outcome = SchedulerService.run_job("daily_lesson_send", today=TODAY)

        assert outcome["status"] == "success"
        assert outcome["result"] == {"attempted": 1, "sent": 1}
        assert outcome["error"] is None

        record = _job_record("daily_lesson_send")
        assert record.run_count == 1
        assert record.error_count == 0
        assert record.last_run_status == "success"
        assert record.last_run_result == {"attempted": 1, "sent": 1}
        assert record.schedule_config["hour"] == "9"

    def test_rerun_is_idempotent(self, due_learner):
        SchedulerService.run_job("daily_lesson_send", today=TODAY)
        second = SchedulerService.run_job("daily_lesson_send", today=TODAY)

        assert second["result"] == {"attempted": 1, "sent": 0}
        assert db.session.scalar(db.select(db.func.count(SentMessage.id))) == 1
        assert _job_record("daily_lesson_send").run_count == 2

    def test_failure_recorded_not_raised(self, monkeypatch):
        def broken(app):
            raise RuntimeError("boom")

        monkeypatch.setitem(scheduler_service._job_registry, "broken_job", broken)

        outcome = SchedulerService.run_job("broken_job")

        assert outcome["status"] == "failed"
        assert outcome["error"] == "boom"
        record = _job_record("broken_job")
        assert record.error_count == 1
        assert record.last_error == "boom"

    def test_unknown_job(self):
        outcome = SchedulerService.run_job("no_such_job")

        assert outcome["status"] == "error"
        assert "Unknown job" in outcome["error"]
        assert _job_record("no_such_job") is None

    def test_gateway_misconfiguration_fails_run(self, due_learner):
        with patch.object(daily_dispatch, "get_sms_gateway",
                          side_effect=ConfigurationError("missing TWILIO_NUMBER")):
            outcome = SchedulerService.run_job("daily_lesson_send", today=TODAY)

        assert outcome["status"] == "failed"
        assert "TWILIO_NUMBER" in outcome["error"]

    def test_list_jobs(self, due_learner):
        SchedulerService.run_job("daily_lesson_send", today=TODAY)

        jobs = {j["job_name"]: j for j in SchedulerService.list_jobs()}

        assert jobs["daily_lesson_send"]["registered"] is True
        assert jobs["daily_lesson_send"]["db_record"]["run_count"] == 1


class TestCli:

    def test_send_daily_lessons(self, app, due_learner):
        result = app.test_cli_runner().invoke(args=["send-daily-lessons", "--date", "2026-03-10"])

        assert result.exit_code == 0, result.output
        assert "attempted=1 sent=1" in result.output

    def test_bad_date(self, app):
        result = app.test_cli_runner().invoke(args=["send-daily-lessons", "--date", "10/03/2026"])

        assert result.exit_code == 2
        assert "YYYY-MM-DD" in result.output

    def test_failure_exits_non_zero(self, app, due_learner):
        with patch.object(daily_dispatch, "get_sms_gateway",
                          side_effect=ConfigurationError("missing TWILIO_NUMBER")):
            result = app.test_cli_runner().invoke(
                args=["send-daily-lessons", "--date", "2026-03-10"])

        assert result.exit_code == 1
        assert "Daily send failed" in result.output

    def test_list_jobs(self, app):
        result = app.test_cli_runner().invoke(args=["list-jobs"])

        assert result.exit_code == 0
        assert "daily_lesson_send" in result.output


class TestSeedAdmin:

    def test_creates_org_and_admin(self):
        org, admin, created = seed_admin("Acme Support", " Boss@Acme.com ", "S3cret!")

        assert created is True
        assert admin.email == "boss@acme.com"
        assert admin.organization_id == org.id
        assert org.contact_email == "boss@acme.com"
        assert verify_password("S3cret!", admin.password_hash)

    def test_idempotent(self):
        seed_admin("Acme Support", "boss@acme.com", "S3cret!")
        org, admin, created = seed_admin("Acme Support", "boss@acme.com", "other")

        assert created is False
        assert verify_password("S3cret!", admin.password_hash)
        assert db.session.scalar(db.select(db.func.count(AdminUser.id))) == 1
        assert db.session.scalar(db.select(db.func.count(Organization.id))) == 1

    def test_reuses_existing_org(self, org):
        _, admin, _ = seed_admin("Acme Support", "second@acme.com", "pw")
        assert admin.organization_id == org.id

    def test_requires_credentials(self):
        with pytest.raises(ValidationError):
            seed_admin("Acme", "", "pw")
