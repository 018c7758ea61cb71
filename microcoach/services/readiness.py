"""
SMS Micro-Coaching Platform
Readiness scoring engine.

Pure functions that turn engagement aggregates into 0..100 percentages and
one weighted readiness score:

    readiness = round(0.4 * completion% + 0.4 * quality% + 0.2 * behavior%)

Every function is total: None, NaN, infinities and non-numeric values are
normalised to a defined number instead of raising.  Rounding is half-up
(0.5 rounds toward +infinity), applied to each percentage first and again
to the weighted sum; analytics figures depend on that exact double rounding.

Both read paths (cohort learner listing and learner progress) must call
into this module so the arithmetic cannot drift apart.
"""

from __future__ import annotations

import math
from typing import Any

COMPLETION_WEIGHT = 0.4
QUALITY_WEIGHT = 0.4
BEHAVIOR_WEIGHT = 0.2

MAX_QUALITY_SCORE = 3


def _as_float(value: Any) -> float:
    """Coerce to float; anything unusable becomes NaN."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def round_half_up(value: Any) -> float | int:
    """Round to the nearest integer, halves toward +infinity.

    Non-finite input is returned unchanged (as float) for the clamp to handle.
    """
    x = _as_float(value)
    if not math.isfinite(x):
        return x
    return math.floor(x + 0.5)


def clamp_percent(value: Any) -> float | int:
    """Clamp to [0, 100]; NaN, None and non-numbers map to 0."""
    x = _as_float(value)
    if math.isnan(x):
        return 0
    if x <= 0:
        return 0
    if x >= 100:
        return 100
    return int(x) if x.is_integer() else x


def completion_percent(reflections_submitted: Any, lessons_sent: Any, default=0):
    """Share of sent lessons that got a reflection.

    ``default`` is returned when nothing was sent; the progress view passes
    0, the cohort listing passes None ("not started").
    """
    sent = _as_float(lessons_sent)
    if math.isnan(sent) or sent <= 0:
        return default
    reflections = _as_float(reflections_submitted)
    if math.isnan(reflections):
        reflections = 0.0
    return round_half_up(reflections / sent * 100)


def quality_to_percent(avg_quality: Any) -> int:
    """Map the mean quality score (1..3) onto 0..100. Absent quality counts as 0%."""
    q = _as_float(avg_quality)
    if math.isnan(q):
        return 0
    return int(clamp_percent(round_half_up(q / MAX_QUALITY_SCORE * 100)))


def behavior_percent(reflections_submitted: Any, behaviors_observed: Any) -> int:
    """Share of reflections an admin marked as behavior observed."""
    reflections = _as_float(reflections_submitted)
    if math.isnan(reflections) or reflections <= 0:
        return 0
    behaviors = _as_float(behaviors_observed)
    if math.isnan(behaviors):
        return 0
    return int(clamp_percent(round_half_up(behaviors / reflections * 100)))


def compute_readiness(
    completion_percent: Any,
    avg_quality: Any,
    reflections_submitted: Any,
    behaviors_observed: Any,
) -> int:
    """Weighted 0..100 readiness score (40% completion, 40% quality, 20% behavior)."""
    completion = clamp_percent(completion_percent)
    quality = quality_to_percent(avg_quality)
    behavior = behavior_percent(reflections_submitted, behaviors_observed)

    weighted = (
        COMPLETION_WEIGHT * completion
        + QUALITY_WEIGHT * quality
        + BEHAVIOR_WEIGHT * behavior
    )
    return int(clamp_percent(round_half_up(weighted)))
