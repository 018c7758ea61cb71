"""
SMS Micro-Coaching Platform
Daily lesson dispatch job.

For every active learner whose cohort is running today:

    reserve  →  send  →  confirm            (delivery succeeded)
    reserve  →  send  →  release            (delivery raised)
    reserve fails                           (already sent: skip)

The reservation is an INSERT … ON CONFLICT DO NOTHING against the UNIQUE
(cohort_user_id, lesson_id) constraint on sent_messages.  Whoever gets the
row back owns the send; everybody else skips.  That makes the job safe to
run twice on the same day, from two hosts at once, or again after a crash,
without any application lock.

Failures are isolated per learner: a gateway error (including a timeout)
deletes the reservation so the next scheduled run can try again, is logged,
and the loop moves on.  There is no retry inside a run.  Store errors are
not caught here; they abort the run and the scheduler records a failure.
Reservations committed before such an error stay valid and are not resent.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from microcoach.integrations.sms_gateway import SmsGateway, get_sms_gateway
from microcoach.models import db
from microcoach.services import engagement_store as store
from microcoach.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


class DailyDispatchJob:
    """
    One pass over today's due enrollments.

    Args:
        gateway: SMS gateway used for every send in this run.
        session_factory: Returns the session held for the whole run.
                         Defaults to the Flask-SQLAlchemy scoped session.
        today: Override the database's CURRENT_DATE (manual reruns, tests).
    """

    def __init__(
        self,
        gateway: SmsGateway,
        session_factory: Callable | None = None,
        today: date | None = None,
    ) -> None:
        self.gateway = gateway
        self.session_factory = session_factory or db.session
        self.today = today

    def run(self) -> dict[str, int]:
        attempted = 0
        sent = 0

        session = self.session_factory()
        try:
            for row in store.list_due_enrollments(session, today=self.today):
                attempted += 1

                # The query already filters the window; guard against clock/timezone skew anyway
                if row.day_number < 1 or row.day_number > row.duration_days:
                    continue

                lesson = store.find_lesson(session, row.role_level, row.day_number)
                if lesson is None:
                    logger.debug("No lesson for role=%s day=%s",
                                 row.role_level, row.day_number)
                    continue

                lesson_id = lesson.id
                body = lesson.message_body(row.day_number)

                reservation_id = store.reserve_send(session, row.cohort_user_id, lesson_id)
                if reservation_id is None:
                    continue

                if self._deliver(session, row, lesson_id, body, reservation_id):
                    sent += 1
        finally:
            session.close()

        result = {"attempted": attempted, "sent": sent}
        logger.info("Daily send finished: %s", result, extra={"job_name": "daily_lesson_send"})
        return result

    def _deliver(self, session, row, lesson_id, body, reservation_id) -> bool:
        try:
            result = self.gateway.send(row.phone_number, body)
        except Exception as exc:
            store.release_reservation(session, reservation_id)
            logger.error(
                "Failed to send lesson %s to cohort_user %s: %s",
                lesson_id, row.cohort_user_id, exc,
                extra={"cohort_user_id": row.cohort_user_id, "lesson_id": lesson_id},
            )
            return False

        store.confirm_send(session, reservation_id, result.message_id)
        return True


# ═══════════════════════════════════════════════════════════════════════════
#  Scheduled job entry point
# ═══════════════════════════════════════════════════════════════════════════

@register_job("daily_lesson_send")
def send_daily_lessons(app, today: date | None = None) -> dict[str, int]:
    """Send each active learner today's lesson (at most once per lesson)."""
    gateway = get_sms_gateway(app.config)
    return DailyDispatchJob(gateway, today=today).run()
