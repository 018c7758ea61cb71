"""
SMS Micro-Coaching Platform
Lesson import service — load lesson content from a JSON array.

Each entry needs role_level, day_number, title, lesson_text,
reflection_question and one of action_text / action_step (the older
field name).  day_number may be an int or a numeric string.  Every text
field is trimmed and must be non-empty.

The whole file is validated before anything is written; validation errors
are collected per entry and raised together.  The write is one
transaction:

    upsert  insert new (role, day) pairs, overwrite existing content
    skip    insert new pairs, leave existing lessons untouched
"""

import json
import logging

from sqlalchemy import select

from microcoach.core.exceptions import ValidationError
from microcoach.models import db
from microcoach.models.cohort import ROLE_LEVELS, Lesson

logger = logging.getLogger(__name__)

IMPORT_MODES = ("upsert", "skip")
TEXT_FIELDS = ("title", "lesson_text", "action_text", "reflection_question")


def _parse_day(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        day = value
    elif isinstance(value, float) and value.is_integer():
        day = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        day = int(value.strip())
    else:
        return None
    return day if day >= 1 else None


def _normalize_entry(entry) -> tuple[dict | None, list[str]]:
    if not isinstance(entry, dict):
        return None, ["entry must be an object"]

    errors = []
    role = entry.get("role_level")
    if role not in ROLE_LEVELS:
        errors.append(f"role_level must be one of: {', '.join(ROLE_LEVELS)}")

    day = _parse_day(entry.get("day_number"))
    if day is None:
        errors.append(f"Invalid day_number: {entry.get('day_number')!r}")

    action = entry.get("action_text")
    if action is None:
        action = entry.get("action_step")

    lesson = {"role_level": role, "day_number": day}
    for field, raw in (
        ("title", entry.get("title")),
        ("lesson_text", entry.get("lesson_text")),
        ("action_text", action),
        ("reflection_question", entry.get("reflection_question")),
    ):
        text = raw.strip() if isinstance(raw, str) else ""
        if not text:
            label = "action_text/action_step" if field == "action_text" else field
            errors.append(f"{label} is required")
        lesson[field] = text

    return (None if errors else lesson), errors


def validate_lessons(entries) -> list[dict]:
    """
    Validate and normalize a parsed lesson file.

    Raises:
        ValidationError: with ``details`` mapping entry index → messages,
            or ``duplicates`` listing repeated "role:day" keys.
    """
    if not isinstance(entries, list) or not entries:
        raise ValidationError("Lesson file must be a non-empty JSON array")

    lessons = []
    problems = {}
    for idx, entry in enumerate(entries):
        lesson, errors = _normalize_entry(entry)
        if errors:
            problems[str(idx)] = errors
        else:
            lessons.append(lesson)
    if problems:
        raise ValidationError(f"{len(problems)} invalid lesson(s)", details=problems)

    seen = set()
    duplicates = []
    for lesson in lessons:
        key = f"{lesson['role_level']}:{lesson['day_number']}"
        if key in seen:
            duplicates.append(key)
        seen.add(key)
    if duplicates:
        raise ValidationError(f"Duplicate lesson in file: {', '.join(duplicates)}",
                              details={"duplicates": duplicates})

    return lessons


def load_lesson_file(path: str) -> list[dict]:
    """Read and validate a lesson file from disk."""
    with open(path, encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid JSON in {path}: {exc}") from exc
    return validate_lessons(data)


def import_lessons(lessons: list[dict], mode: str = "upsert") -> dict:
    """
    Write validated lessons in one transaction.

    Returns:
        {"total", "inserted", "updated", "skipped", "mode"}
    """
    if mode not in IMPORT_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(IMPORT_MODES)}")

    inserted = updated = skipped = 0
    try:
        for item in lessons:
            existing = db.session.execute(
                select(Lesson).where(
                    Lesson.role_level == item["role_level"],
                    Lesson.day_number == item["day_number"],
                )
            ).scalar_one_or_none()

            if existing is None:
                db.session.add(Lesson(**item))
                inserted += 1
            elif mode == "skip":
                skipped += 1
            else:
                for field in TEXT_FIELDS:
                    setattr(existing, field, item[field])
                updated += 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    result = {
        "total": len(lessons),
        "inserted": inserted,
        "updated": updated,
        "skipped": skipped,
        "mode": mode,
    }
    logger.info("Lesson import complete: %s", result)
    return result
