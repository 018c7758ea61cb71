"""
SMS Micro-Coaching Platform
Scheduler Service — job registry and run bookkeeping.

There is no in-process scheduler.  An external trigger (cron, a platform
scheduler, or an operator) runs ``flask send-daily-lessons``; this
service looks the job up, executes it inside an app context and records
the outcome on its ScheduledJob row.

Architecture:
    - @register_job("name") adds a job function to the registry
    - SchedulerService.run_job() executes one job and records the run
    - ScheduledJob rows are created on first run
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from microcoach.models import db
from microcoach.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}

# Hints for whoever configures the external trigger
_DEFAULT_SCHEDULES = {
    "daily_lesson_send": {"hour": "9", "minute": "0", "description": "Daily at 09:00"},
}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("daily_lesson_send")
        def send_daily_lessons(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """Runs registered jobs within the Flask app context and records each run."""

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.debug("SchedulerService initialized with %d registered jobs",
                     len(_job_registry))

    @classmethod
    def run_job(cls, job_name: str, **kwargs) -> dict:
        """
        Execute a single job by name.

        Any exception raised by the job marks the run failed; the error is
        logged and returned, never re-raised.

        Returns:
            Dict with job_name, status, duration_ms, result, error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app, **kwargs)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = cls._get_or_create_record(job_name, fn)
                job_record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else None,
                    error=error,
                )
                db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name)

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @staticmethod
    def _get_or_create_record(job_name: str, fn: Callable) -> ScheduledJob:
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record is None:
            job_record = ScheduledJob(
                job_name=job_name,
                description=(fn.__doc__ or f"Scheduled job: {job_name}").strip(),
                schedule_config=_DEFAULT_SCHEDULES.get(job_name, {}),
                is_enabled=True,
                run_count=0,
                error_count=0,
            )
            db.session.add(job_record)
        return job_record
